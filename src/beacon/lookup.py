"""Local address discovery."""

import socket
import urllib.parse

import psutil

from .errors import ResolutionError


def _split_remote(remote: str) -> tuple[str, int]:
    """Return (host, port) from a URL or a host[:port] string."""
    if "://" not in remote:
        remote = f"//{remote}"
    parsed = urllib.parse.urlsplit(remote)
    if not parsed.hostname:
        raise ResolutionError(f"Cannot determine a host from {remote!r}")
    try:
        port = parsed.port
    except ValueError as exc:
        raise ResolutionError(f"Invalid port in {remote!r}") from exc
    if port is None:
        port = 443 if parsed.scheme == "https" else 80
    return parsed.hostname, port


def resolve_local_address(remote_hint: str) -> str:
    """Return the local address the OS would use to reach *remote_hint*.

    A UDP socket is connected towards the remote; nothing is sent.
    """
    host, port = _split_remote(remote_hint)
    try:
        infos = socket.getaddrinfo(host, port, type=socket.SOCK_DGRAM)
    except socket.gaierror as exc:
        raise ResolutionError(f"Cannot resolve {host}: {exc}") from exc

    last_error: OSError | None = None
    for family, socktype, proto, _, sockaddr in infos:
        try:
            with socket.socket(family, socktype, proto) as probe:
                probe.connect(sockaddr)
                address = probe.getsockname()[0]
        except OSError as exc:
            last_error = exc
            continue
        if address:
            return address.split("%", 1)[0]
    raise ResolutionError(f"No local address routes to {host}: {last_error}")


def resolve_interface_address(interface_name: str) -> str:
    """Return the first IPv4 (else IPv6) address bound to *interface_name*."""
    addrs = psutil.net_if_addrs().get(interface_name)
    if not addrs:
        raise ResolutionError(f"No such interface: {interface_name}")
    for family in (socket.AF_INET, socket.AF_INET6):
        for addr in addrs:
            if addr.family == family and addr.address:
                return addr.address.split("%", 1)[0]
    raise ResolutionError(f"Interface {interface_name} has no IP address")
