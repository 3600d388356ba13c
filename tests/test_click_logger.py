import asyncio
import logging
import time

from services.click_logger import ClickEvent, ClickLogger

from conftest import FailingSink, RecordingSink, SlowSink


def _event(**overrides):
    data = dict(click_id="clk_test_1", tour_id="t-1", tour_slug="blue-eye-spring",
                ip_anonymized="203.0.113.0", user_agent_hash="abc123")
    data.update(overrides)
    return ClickEvent(**data)


async def test_submit_persists_in_background():
    sink = RecordingSink()
    logger = ClickLogger(sink)

    logger.submit(_event())
    assert logger.pending == 1
    await logger.drain()

    assert [e.click_id for e in sink.events] == ["clk_test_1"]
    assert logger.pending == 0


async def test_failures_are_swallowed_and_logged(caplog):
    sink = FailingSink()
    logger = ClickLogger(sink)

    with caplog.at_level(logging.ERROR, logger="services.click_logger"):
        logger.submit(_event())
        await logger.drain()

    assert sink.attempts == 1
    assert "Click logging error" in caplog.text


async def test_slow_store_times_out_without_blocking():
    sink = SlowSink(delay=5.0)
    logger = ClickLogger(sink, timeout=0.05)

    started = time.perf_counter()
    logger.submit(_event())
    assert time.perf_counter() - started < 0.05

    await logger.drain()
    assert sink.events == []
    assert time.perf_counter() - started < 1.0


async def test_no_retry_after_failure():
    sink = FailingSink()
    logger = ClickLogger(sink)
    for i in range(3):
        logger.submit(_event(click_id=f"clk_{i}"))
    await logger.drain()
    assert sink.attempts == 3


def test_submit_without_loop_drops_quietly(caplog):
    logger = ClickLogger(RecordingSink())
    with caplog.at_level(logging.ERROR, logger="services.click_logger"):
        logger.submit(_event())
    assert logger.pending == 0
    assert "dropped" in caplog.text


async def test_event_timestamps_are_utc():
    event = _event()
    assert event.clicked_at.tzinfo is not None
    assert event.clicked_at.utcoffset().total_seconds() == 0
    await asyncio.sleep(0)
