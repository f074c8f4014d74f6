import socket
from collections import namedtuple

import pytest

from beacon import lookup
from beacon.errors import ResolutionError

snicaddr = namedtuple("snicaddr", "family address netmask broadcast ptp")


def test_local_address_towards_loopback():
    assert lookup.resolve_local_address("http://127.0.0.1:4001") == "127.0.0.1"


def test_local_address_accepts_host_port():
    assert lookup.resolve_local_address("127.0.0.1:4001") == "127.0.0.1"


def test_local_address_unresolvable_host():
    with pytest.raises(ResolutionError):
        lookup.resolve_local_address("http://does-not-exist.invalid:4001")


def test_interface_prefers_ipv4(monkeypatch):
    monkeypatch.setattr(lookup.psutil, "net_if_addrs", lambda: {
        "eth0": [
            snicaddr(socket.AF_INET6, "fe80::1%eth0", None, None, None),
            snicaddr(socket.AF_INET, "192.168.1.20", "255.255.255.0", None, None),
        ],
    })
    assert lookup.resolve_interface_address("eth0") == "192.168.1.20"


def test_interface_falls_back_to_ipv6(monkeypatch):
    monkeypatch.setattr(lookup.psutil, "net_if_addrs", lambda: {
        "eth0": [snicaddr(socket.AF_INET6, "fe80::1%eth0", None, None, None)],
    })
    assert lookup.resolve_interface_address("eth0") == "fe80::1"


def test_unknown_interface(monkeypatch):
    monkeypatch.setattr(lookup.psutil, "net_if_addrs", lambda: {})
    with pytest.raises(ResolutionError):
        lookup.resolve_interface_address("nope0")
