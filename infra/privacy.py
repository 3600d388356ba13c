# infra/privacy.py
"""
Privacy helpers for click analytics
Raw IPs and user agents never reach the click log
"""

import hashlib
import ipaddress
from typing import Optional

from fastapi import Request


def anonymize_ip(ip: Optional[str]) -> Optional[str]:
    """Zero the host part: last IPv4 octet, everything past the /48 for IPv6"""
    if not ip:
        return None
    try:
        addr = ipaddress.ip_address(ip.strip())
    except ValueError:
        return None

    if addr.version == 4:
        network = ipaddress.ip_network(f"{addr}/24", strict=False)
    else:
        network = ipaddress.ip_network(f"{addr}/48", strict=False)
    return str(network.network_address)


def hash_user_agent(user_agent: Optional[str]) -> str:
    """Short SHA-256 fingerprint of the user agent"""
    if not user_agent:
        return "unknown"
    return hashlib.sha256(user_agent.encode("utf-8")).hexdigest()[:16]


def client_ip(request: Request) -> str:
    """First X-Forwarded-For hop, then X-Real-IP, then the socket peer"""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    return request.client.host if request.client else "unknown"
