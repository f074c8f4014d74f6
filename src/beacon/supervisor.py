"""Supervision of a single child process."""

import shlex
import subprocess
import sys
import threading
from enum import Enum
from typing import Optional

from .errors import ProcessError


class CommandState(Enum):
    NOT_STARTED = "not_started"
    RUNNING = "running"
    EXITED = "exited"


class Command:
    """A child process sharing the sidecar's stdin, stdout and stderr.

    A watcher thread reaps the child and sets the completion event exactly
    once, whether the child exits on its own or is killed.
    """

    def __init__(self, args: list[str]):
        if not args:
            raise ValueError("Command requires at least one argument")
        self.args = list(args)
        self._proc: Optional[subprocess.Popen] = None
        self._state = CommandState.NOT_STARTED
        self._lock = threading.Lock()
        self._done = threading.Event()
        self._watcher: Optional[threading.Thread] = None

    def __str__(self) -> str:
        return shlex.join(self.args)

    @property
    def state(self) -> CommandState:
        return self._state

    @property
    def pid(self) -> Optional[int]:
        return self._proc.pid if self._proc else None

    @property
    def returncode(self) -> Optional[int]:
        """Exit status once the child has been reaped."""
        if self._state is not CommandState.EXITED or self._proc is None:
            return None
        return self._proc.returncode

    def start(self) -> threading.Thread:
        """Launch the child and return the thread that waits for it."""
        with self._lock:
            if self._state is not CommandState.NOT_STARTED:
                raise ProcessError(f"Command {self} already started")
            try:
                # stdin/stdout/stderr are inherited from the sidecar
                self._proc = subprocess.Popen(self.args)
            except OSError as exc:
                self._state = CommandState.EXITED
                self._done.set()
                raise ProcessError(f"Failed to start {self}: {exc}") from exc
            self._state = CommandState.RUNNING
            self._watcher = threading.Thread(
                target=self._watch, name=f"supervisor:{self._proc.pid}", daemon=True,
            )
        self._watcher.start()
        return self._watcher

    def _watch(self) -> None:
        returncode = self._proc.wait()
        if returncode != 0:
            print(f"[supervisor] Command {self.args} exited with status {returncode}", file=sys.stderr)
        with self._lock:
            self._state = CommandState.EXITED
        self._done.set()

    def wait(self) -> None:
        """Block until the child has exited. The exit status is not raised."""
        if self._state is CommandState.NOT_STARTED:
            raise ProcessError(f"Command {self} was never started")
        self._done.wait()

    def _require_running(self) -> subprocess.Popen:
        with self._lock:
            if self._state is not CommandState.RUNNING or self._proc is None:
                raise ProcessError(f"Command {self} is not running ({self._state.value})")
            return self._proc

    def signal(self, sig: int) -> None:
        """Deliver *sig* to the child."""
        proc = self._require_running()
        try:
            proc.send_signal(sig)
        except OSError as exc:
            raise ProcessError(f"Failed to send signal {sig} to {self}: {exc}") from exc

    def kill(self) -> None:
        """Kill the child and block until it has been reaped."""
        proc = self._require_running()
        try:
            proc.kill()
        except OSError as exc:
            raise ProcessError(f"Failed to kill {self}: {exc}") from exc
        self._done.wait()
