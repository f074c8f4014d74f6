"""Translate OS signals into registry and child shutdown sequences."""

import os
import queue
import signal
import sys
import threading
from typing import Callable, Optional

from .errors import ProcessError
from .heartbeat import HeartbeatRegistry
from .supervisor import Command, CommandState


SIGQUIT = getattr(signal, "SIGQUIT", None)

HANDLED_SIGNALS = tuple(
    s for s in (signal.SIGINT, signal.SIGTERM, SIGQUIT) if s is not None
)

_STOP = object()


def _signal_name(signum: int) -> str:
    try:
        return signal.Signals(signum).name
    except ValueError:
        return str(signum)


class ShutdownCoordinator:
    """Runs one shutdown protocol per received signal, one signal at a time.

    SIGQUIT with a supervised child drains: the registry is stopped and its
    key left to expire before the child is killed. Every other signal stops
    the registry at once and relays the signal to the child, escalating to a
    kill if the relay fails.

    A failed kill ends the sidecar through ``exit_func`` with status 1; the
    listener runs on its own thread and cannot raise into the main thread.
    """

    def __init__(
        self,
        registry: HeartbeatRegistry,
        command: Optional[Command] = None,
        exit_func: Callable[[int], None] = os._exit,
        queue_size: int = 16,
    ):
        self.registry = registry
        self.command = command
        self._exit = exit_func
        self._events: queue.Queue = queue.Queue(maxsize=queue_size)
        self._listener: Optional[threading.Thread] = None
        self._previous: dict = {}

    def start(self) -> threading.Thread:
        """Install signal handlers and start the listener. Call from the main thread."""
        for sig in HANDLED_SIGNALS:
            self._previous[sig] = signal.signal(sig, self._on_signal)
        self._listener = threading.Thread(target=self._listen, name="coordinator", daemon=True)
        self._listener.start()
        return self._listener

    def close(self) -> None:
        """Restore the previous handlers and let the listener exit."""
        for sig, handler in self._previous.items():
            signal.signal(sig, handler)
        self._previous.clear()
        if self._listener is not None:
            try:
                self._events.put_nowait(_STOP)
            except queue.Full:
                pass  # listener is daemonic and will die with the process

    def _on_signal(self, signum, frame) -> None:
        try:
            self._events.put_nowait(signum)
        except queue.Full:
            print(f"[coordinator] Dropping {_signal_name(signum)}: queue full", file=sys.stderr)

    def _listen(self) -> None:
        while True:
            event = self._events.get()
            if event is _STOP:
                return
            self.handle(event)

    def handle(self, signum: int) -> None:
        """Run the shutdown protocol for *signum* to completion."""
        print(f"[coordinator] Received {_signal_name(signum)}", file=sys.stderr)
        if signum == SIGQUIT and self.command is not None:
            self._drain_and_kill()
        else:
            self._stop_and_relay(signum)

    def _child_running(self) -> bool:
        if self.command is None:
            return False
        if self.command.state is not CommandState.RUNNING:
            print(
                f"[coordinator] Command {self.command} is {self.command.state.value}; nothing to signal",
                file=sys.stderr,
            )
            return False
        return True

    def _drain_and_kill(self) -> None:
        self.registry.safe_stop()
        if not self._child_running():
            return
        print(f"[coordinator] Killing {self.command}", file=sys.stderr)
        self._kill()

    def _stop_and_relay(self, signum: int) -> None:
        self.registry.stop()
        if not self._child_running():
            return
        try:
            self.command.signal(signum)
            return
        except ProcessError as exc:
            print(f"[coordinator] {exc}; killing instead", file=sys.stderr)
        self._kill()

    def _kill(self) -> None:
        try:
            self.command.kill()
        except ProcessError as exc:
            # The child may have been reaped since the state check.
            if self.command.state is CommandState.EXITED:
                print(f"[coordinator] Command {self.command} already exited", file=sys.stderr)
                return
            self._fail(f"Failed to kill command: {exc}")

    def _fail(self, message: str) -> None:
        print(f"[coordinator] {message}", file=sys.stderr)
        sys.stdout.flush()
        sys.stderr.flush()
        self._exit(1)
