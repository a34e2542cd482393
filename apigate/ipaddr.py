"""Client address resolution from proxy headers."""

from __future__ import annotations

from typing import Mapping, Optional


def _header(headers: Optional[Mapping[str, str]], name: str) -> str:
    if not headers:
        return ""
    value = headers.get(name)
    if value is None:
        lowered = name.lower()
        value = next((v for k, v in headers.items() if k.lower() == lowered), "")
    if isinstance(value, bytes):
        value = value.decode("latin-1")
    return value


def client_ip(headers: Optional[Mapping[str, str]], remote_ip: object) -> str:
    """Return the real client IP.

    Prefers the first X-Forwarded-For entry, then X-Real-Ip, then the
    peer address of the connection.
    """
    forwarded = _header(headers, "X-Forwarded-For").split(",", 1)[0].strip()
    if forwarded:
        return forwarded
    real_ip = _header(headers, "X-Real-Ip").strip()
    if real_ip:
        return real_ip
    return str(remote_ip)