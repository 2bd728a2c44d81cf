"""Network helpers."""

from crux.core.net.client_ip import format_peer, parse_ip, resolve_client_ip, strip_port

__all__ = ["format_peer", "parse_ip", "resolve_client_ip", "strip_port"]
