"""Client address normalization shared by the proxy-header resolver and the rate limiter."""

from __future__ import annotations

import ipaddress


def parse_ip(value: str | None) -> str | None:
    """Return the canonical text form of ``value`` if it is a bare IP address."""

    if not value:
        return None
    candidate = value.strip()
    try:
        return str(ipaddress.ip_address(candidate))
    except ValueError:
        return None


def strip_port(addr: str) -> str:
    """Strip a ``:port`` suffix from ``addr``.

    Handles ``1.2.3.4:80``, ``[::1]:80`` and bare IPv4/IPv6 literals, and
    returns IPs in the canonical form of :func:`parse_ip` so every spelling
    of an address yields the same key. Anything that cannot be split is
    returned unchanged so the caller still gets a usable key.
    """

    addr = addr.strip()
    ip = parse_ip(addr)
    if ip is not None:
        return ip

    if addr.startswith("["):
        end = addr.find("]")
        if end != -1:
            rest = addr[end + 1 :]
            if rest == "" or (rest.startswith(":") and rest[1:].isdigit()):
                return parse_ip(addr[1:end]) or addr[1:end]
        return addr

    host, sep, port = addr.rpartition(":")
    if sep and host and port.isdigit() and ":" not in host:
        return parse_ip(host) or host
    return addr


def _first_forwarded(forwarded_for: str) -> str:
    return forwarded_for.split(",", 1)[0].strip()


def resolve_client_ip(
    remote_addr: str,
    forwarded_for: str | None = None,
    real_ip: str | None = None,
) -> str:
    """Pick the client identity for a request.

    Order: first ``X-Forwarded-For`` entry, then ``X-Real-IP``, then the
    socket peer address with its port removed. Header values must be bare
    IPs; values carrying a port or garbage are ignored.
    """

    if forwarded_for:
        ip = parse_ip(_first_forwarded(forwarded_for))
        if ip is not None:
            return ip

    if real_ip:
        ip = parse_ip(real_ip)
        if ip is not None:
            return ip

    return strip_port(remote_addr)


def format_peer(client: tuple[str, int] | None) -> str:
    """Render an ASGI ``scope["client"]`` tuple as ``host:port``."""

    if not client:
        return ""
    host, port = client[0], client[1]
    if ":" in host:
        return f"[{host}]:{port}"
    return f"{host}:{port}"


__all__ = ["format_peer", "parse_ip", "resolve_client_ip", "strip_port"]
