"""Periodic re-registration of a key in the etcd registry."""

import sys
import threading
import time
from enum import Enum
from typing import Callable, Optional

from .errors import TransportError
from .registry import build_opener, key_url, put_value


class RegistryState(Enum):
    """Lifecycle of a HeartbeatRegistry"""
    IDLE = "idle"
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"


class HeartbeatRegistry:
    """Keeps ``key_path`` alive in etcd by PUTting ``value`` every ``interval`` seconds.

    The PUT carries ``ttl`` so the record expires on its own once the loop
    stops. A failed PUT is logged and retried on the next tick; the registry
    TTL is the failure signal, not an error raised here.

    All ticks run on a single thread, so at most one PUT is in flight. A PUT
    that hangs delays ``stop()`` by up to ``request_timeout`` seconds.
    """

    def __init__(
        self,
        etcd_host: str,
        key_path: str,
        value: str,
        ttl: float,
        interval: float,
        request_timeout: float = 10,
        put: Optional[Callable[[str, float, str], None]] = None,
    ):
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        self.etcd_host = etcd_host
        self.key_path = key_path
        self.value = value
        self.ttl = ttl
        self.interval = interval
        self.request_timeout = request_timeout
        self._opener = build_opener()
        self._put = put or self._default_put

        self._state = RegistryState.IDLE
        self._lock = threading.Lock()
        self._quit = threading.Event()
        self._done = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def state(self) -> RegistryState:
        return self._state

    def _default_put(self, url: str, ttl: float, value: str) -> None:
        put_value(url, ttl, value, opener=self._opener, timeout=self.request_timeout)

    def start(self) -> threading.Thread:
        """Begin heartbeating. Returns the loop thread."""
        with self._lock:
            if self._state is not RegistryState.IDLE:
                raise RuntimeError(f"Registry cannot start from state {self._state.value}")
            self._state = RegistryState.RUNNING
            self._thread = threading.Thread(
                target=self._run, name=f"heartbeat:{self.key_path}", daemon=True,
            )
        self._thread.start()
        return self._thread

    def _tick(self, url: str) -> None:
        try:
            self._put(url, self.ttl, self.value)
        except TransportError as exc:
            print(f"[heartbeat] Error updating etcd: {exc}", file=sys.stderr)

    def _run(self) -> None:
        try:
            try:
                url = key_url(self.etcd_host, self.key_path)
            except TransportError as exc:
                print(f"[heartbeat] {exc}", file=sys.stderr)
                return

            self._tick(url)
            next_tick = time.monotonic() + self.interval
            while not self._quit.wait(max(0.0, next_tick - time.monotonic())):
                self._tick(url)
                now = time.monotonic()
                next_tick += self.interval
                if next_tick <= now:
                    # Skip ticks missed while a slow PUT was in flight.
                    missed = int((now - next_tick) // self.interval) + 1
                    next_tick += missed * self.interval
        finally:
            self._finish()

    def _finish(self) -> None:
        with self._lock:
            if self._state is RegistryState.RUNNING:
                self._state = RegistryState.STOPPING
            self._state = RegistryState.STOPPED
        self._done.set()

    def stop(self) -> None:
        """Stop after the current tick and block until the loop has exited."""
        with self._lock:
            state = self._state
            if state is RegistryState.IDLE or state is RegistryState.RUNNING:
                self._state = RegistryState.STOPPING
                self._quit.set()
        if state is RegistryState.IDLE:
            # Never started: no loop will ever set done.
            self._finish()
        self.wait()

    def safe_stop(self) -> None:
        """Stop, then wait out 2 x ttl so observers see the key expire."""
        self.stop()
        print(
            f"[heartbeat] Stopped updating {self.key_path}; waiting {2 * self.ttl:g}s for expiry",
            file=sys.stderr,
        )
        time.sleep(2 * self.ttl)

    def wait(self) -> None:
        """Block until the loop has exited."""
        self._done.wait()
