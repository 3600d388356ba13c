# infra/security_filters.py
"""
Log filter that keeps visitor PII and secrets out of log output
"""

import re
import logging

MASK = "[REDACTED]"
PII_PATTERNS = [
    (re.compile(r'[\w\.-]+@[\w\.-]+\.\w+'), MASK),                          # emails
    (re.compile(r'\b(\d{1,3}\.\d{1,3}\.\d{1,3})\.(?!0\b)\d{1,3}\b'), r'\1.0'),  # raw IPv4 -> /24
    (re.compile(r'\b[a-f0-9]{64}\.[a-f0-9]{64}\b'), MASK),                   # signed cookie values
    (re.compile(r'(?i)\b(secret|token|password)=[^\s&]+'), r'\1=' + MASK),   # key=value secrets
]


class PiiMaskFilter(logging.Filter):
    """Filter that masks PII in log messages"""

    def filter(self, record):
        if hasattr(record, 'msg') and record.msg:
            msg = record.getMessage()
            for pattern, replacement in PII_PATTERNS:
                msg = pattern.sub(replacement, msg)
            record.msg = msg
            record.args = ()
        return True
