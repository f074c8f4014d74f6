#!/usr/bin/env python3
"""
etcd v2 key/value transport

This module provides:
- put_value: a single form-encoded PUT refreshing a key with a ttl
- EtcdNode / EtcdResponse: the decoded shape of a v2 keys response
- ServiceInfo: a registered service decoded from a node value
- EtcdClient: thin HTTP client for reading registered services
"""

import json
import math
import re
import urllib.error
import urllib.parse
import urllib.request
from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Any, Dict, List, Optional

from ..errors import DecodeError, TransportError
from ..formatting import join_key_path


DEFAULT_API_ROOT = "/v2/keys"
FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"

# Keys may contain host:port pairs; keep them readable in the URL.
_PATH_SAFE = "/:@-._~"

# RFC 3339 with optional fractional seconds of any precision.
_RFC3339 = re.compile(
    r"^(?P<base>\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2})"
    r"(?:\.(?P<frac>\d+))?"
    r"(?P<tz>Z|[+-]\d{2}:\d{2})$"
)


def build_opener() -> urllib.request.OpenerDirector:
    """Opener that ignores http_proxy; the registry is usually on the local network."""
    return urllib.request.build_opener(urllib.request.ProxyHandler({}))


def key_url(etcd_host: str, key_path: str) -> str:
    """Return the URL for *key_path* on the registry at *etcd_host*."""
    parsed = urllib.parse.urlsplit(etcd_host)
    if not parsed.scheme or not parsed.netloc:
        raise TransportError(f"Bad etcd host: {etcd_host!r}")
    path = join_key_path(parsed.path, key_path) or "/"
    return urllib.parse.urlunsplit(
        (parsed.scheme, parsed.netloc, urllib.parse.quote(path, safe=_PATH_SAFE), "", "")
    )


def encode_form(ttl: float, value: str) -> bytes:
    """Form-encode a ttl (whole seconds) and value for a PUT body."""
    return urllib.parse.urlencode({"ttl": str(int(math.ceil(ttl))), "value": value}).encode()


def put_value(url: str, ttl: float, value: str,
              opener: Optional[urllib.request.OpenerDirector] = None,
              timeout: float = 10) -> None:
    """PUT *value* to *url* with the given ttl. Raises TransportError on failure."""
    opener = opener or build_opener()
    request = urllib.request.Request(
        url, data=encode_form(ttl, value), method="PUT",
        headers={"Content-Type": FORM_CONTENT_TYPE},
    )
    try:
        with opener.open(request, timeout=timeout) as resp:
            resp.read()
    except urllib.error.HTTPError as exc:
        raise TransportError(f"PUT {url} returned HTTP {exc.code}") from exc
    except (urllib.error.URLError, OSError) as exc:
        reason = getattr(exc, "reason", exc)
        raise TransportError(f"PUT {url} failed: {reason}") from exc


def parse_expiration(raw: Optional[str]) -> Optional[datetime]:
    """Parse an etcd expiration timestamp. Nanosecond precision is truncated."""
    if not raw:
        return None
    match = _RFC3339.match(raw)
    if match is None:
        raise DecodeError(f"Invalid expiration timestamp: {raw!r}")
    text = match.group("base")
    frac = match.group("frac")
    if frac:
        text += "." + frac[:6].ljust(6, "0")
    tz = match.group("tz")
    text += "+00:00" if tz == "Z" else tz
    return datetime.fromisoformat(text)


@dataclass
class EtcdNode:
    """A single node of a v2 keys response."""
    key: str = ""
    dir: bool = False
    value: str = ""
    nodes: List['EtcdNode'] = field(default_factory=list)
    modified_index: int = 0
    created_index: int = 0
    expiration: Optional[datetime] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'EtcdNode':
        if not isinstance(data, dict):
            raise DecodeError(f"Expected a node object, got {type(data).__name__}")
        try:
            return cls(
                key=data.get("key", ""),
                dir=bool(data.get("dir", False)),
                value=data.get("value", ""),
                nodes=[cls.from_dict(n) for n in data.get("nodes") or []],
                modified_index=int(data.get("modifiedIndex", 0)),
                created_index=int(data.get("createdIndex", 0)),
                expiration=parse_expiration(data.get("expiration")),
            )
        except (TypeError, ValueError) as exc:
            raise DecodeError(f"Malformed node {data.get('key', '')!r}: {exc}") from exc


@dataclass
class EtcdResponse:
    """The envelope returned by the v2 keys API."""
    action: str
    node: EtcdNode

    @classmethod
    def from_json(cls, body: bytes | str) -> 'EtcdResponse':
        try:
            data = json.loads(body)
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise DecodeError(f"Invalid JSON from registry: {exc}") from exc
        if not isinstance(data, dict) or not isinstance(data.get("node"), dict):
            raise DecodeError("Registry response has no node")
        return cls(action=data.get("action", ""), node=EtcdNode.from_dict(data["node"]))


@dataclass
class ServiceInfo:
    """A registered service, decoded from a node value."""
    host: str = ""
    port: int = 0
    start_time: str = ""
    tag: str = ""
    raw_value: str = ""
    key: str = ""
    expiration: Optional[datetime] = None

    @classmethod
    def from_node(cls, node: EtcdNode) -> 'ServiceInfo':
        """Decode *node*. Values that are not service objects keep only raw_value."""
        service = cls(raw_value=node.value, key=node.key, expiration=node.expiration)
        try:
            data = json.loads(node.value)
        except (json.JSONDecodeError, TypeError):
            return service
        if isinstance(data, dict):
            service.host = str(data.get("host", ""))
            try:
                service.port = int(data.get("port", 0))
            except (TypeError, ValueError):
                service.port = 0
            service.start_time = str(data.get("start_time", ""))
            service.tag = str(data.get("tag", ""))
        return service

    @property
    def address(self) -> str:
        if self.port > 0:
            if ":" in self.host:
                return f"[{self.host}]:{self.port}"
            return f"{self.host}:{self.port}"
        return self.host

    def __str__(self) -> str:
        if not self.host:
            return self.raw_value
        text = f"Node: {self.address}"
        if self.tag:
            text += f" Tag: {self.tag}"
        if self.start_time:
            text += f" Started: {self.start_time}"
        return text

    def to_dict(self) -> Dict[str, Any]:
        """Convert to JSON-serialisable dictionary."""
        data = asdict(self)
        data["expiration"] = self.expiration.isoformat() if self.expiration else None
        return data


# ---------------------------------------------------------------------------
# HTTP client (read side)
# ---------------------------------------------------------------------------

class EtcdClient:
    """Thin HTTP client for the v2 keys API."""

    def __init__(self, etcd_host: str, timeout: float = 10):
        self.etcd_host = etcd_host
        self.timeout = timeout
        self._opener = build_opener()

    def key_url(self, key_path: str) -> str:
        return key_url(self.etcd_host, key_path)

    def get(self, key_path: str) -> EtcdResponse:
        url = self.key_url(key_path)
        try:
            with self._opener.open(url, timeout=self.timeout) as resp:
                body = resp.read()
        except urllib.error.HTTPError as exc:
            raise TransportError(f"GET {url} returned HTTP {exc.code}") from exc
        except (urllib.error.URLError, OSError) as exc:
            reason = getattr(exc, "reason", exc)
            raise TransportError(f"GET {url} failed: {reason}") from exc
        return EtcdResponse.from_json(body)

    def list_services(self, key_path: str) -> List[ServiceInfo]:
        """Return one ServiceInfo per child of the directory at *key_path*."""
        response = self.get(key_path)
        return [ServiceInfo.from_node(n) for n in response.node.nodes]
