"""
Background worker framework: the wakeable wait primitive, the base class for
long-lived worker loops, and the supervisor that restarts them.

Manages:
- Latch: timed wait woken by set(), timeout or death of the parent process
- BackgroundWorker: state tracking, shutdown/reload requests, signal wiring
- WorkerSupervisor: runs a worker in a child process, restarts it after a
  cooldown when it exits with a non-zero status
"""

from __future__ import annotations

import logging
import multiprocessing
import os
import select
import signal
import socket
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum, IntFlag
from typing import Any, Callable, Optional

from powa_ops.config.settings import WORKER_RESTART_SECONDS
from powa_ops.framework.exceptions import ExitReason, WorkerExit

logger = logging.getLogger("powa_ops.worker")


class WaitEvent(IntFlag):
    LATCH_SET = 1
    TIMEOUT = 2
    PARENT_DEATH = 4


class WorkerState(Enum):
    STARTING = "starting"
    CONNECTING = "connecting"
    RUNNING = "running"
    SLEEPING = "sleeping"
    TERMINATING = "terminating"


class Latch:
    """
    Self-pipe latch.

    set() only writes a byte to a socket pair, so it is safe to call from a
    signal handler or another thread; wait() blocks in select() and returns
    as soon as that byte arrives.
    """

    def __init__(self, parent_pid: Optional[int] = None, poll_interval: float = 1.0):
        self._reader, self._writer = socket.socketpair()
        self._reader.setblocking(False)
        self._writer.setblocking(False)
        self._is_set = False
        self.parent_pid = os.getppid() if parent_pid is None else parent_pid
        self.poll_interval = poll_interval

    def set(self) -> None:
        self._is_set = True
        try:
            self._writer.send(b"\0")
        except (BlockingIOError, OSError):
            # Buffer full: the latch is already signalled
            pass

    def reset(self) -> None:
        self._is_set = False
        self._drain()

    def is_set(self) -> bool:
        return self._is_set

    def parent_alive(self) -> bool:
        return os.getppid() == self.parent_pid

    def wait(self, timeout_ms: int,
             events: WaitEvent = WaitEvent.LATCH_SET | WaitEvent.TIMEOUT | WaitEvent.PARENT_DEATH
             ) -> WaitEvent:
        """Block until one of `events` occurs; returns the events that did."""
        deadline = time.monotonic() + max(timeout_ms, 0) / 1000.0
        while True:
            if events & WaitEvent.LATCH_SET and self._is_set:
                return WaitEvent.LATCH_SET
            if events & WaitEvent.PARENT_DEATH and not self.parent_alive():
                return WaitEvent.PARENT_DEATH
            remaining = deadline - time.monotonic()
            if events & WaitEvent.TIMEOUT and remaining <= 0:
                return WaitEvent.TIMEOUT
            slice_ = self.poll_interval
            if events & WaitEvent.TIMEOUT:
                slice_ = min(slice_, remaining)
            try:
                readable, _, _ = select.select([self._reader], [], [], slice_)
            except InterruptedError:
                continue
            if readable:
                self._drain()
                self._is_set = True

    def _drain(self) -> None:
        try:
            while self._reader.recv(4096):
                pass
        except (BlockingIOError, OSError):
            pass

    def close(self) -> None:
        self._reader.close()
        self._writer.close()


class BackgroundWorker(ABC):
    """Abstract base class for long-lived worker loops."""

    def __init__(self, name: str, latch: Optional[Latch] = None):
        self.name = name
        self.latch = latch or Latch()
        self.state = WorkerState.STARTING
        self._shutdown_requested = False
        self._reload_requested = False

    def request_shutdown(self) -> None:
        """Ask the loop to exit at its next check; wakes a pending wait."""
        self._shutdown_requested = True
        self.latch.set()

    def request_reload(self) -> None:
        """Ask the loop to re-read its configuration; wakes a pending wait."""
        self._reload_requested = True
        self.latch.set()

    def install_signal_handlers(self) -> None:
        """SIGHUP reloads, SIGTERM/SIGINT shut down. Main thread only."""
        if hasattr(signal, "SIGHUP"):
            signal.signal(signal.SIGHUP, lambda signum, frame: self.request_reload())
        for sig in (signal.SIGTERM, signal.SIGINT):
            signal.signal(sig, lambda signum, frame: self.request_shutdown())

    def check_for_interrupts(self) -> None:
        """Process pending shutdown and reload requests."""
        if self._shutdown_requested:
            logger.info(f"[{self.name}] terminating on shutdown request")
            raise WorkerExit(ExitReason.SHUTDOWN_REQUESTED)
        if self._reload_requested:
            self._reload_requested = False
            self.on_reload()

    def set_state(self, state: WorkerState) -> None:
        if state != self.state:
            logger.debug(f"[{self.name}] {self.state.value} -> {state.value}")
            self.state = state

    def on_reload(self) -> None:
        """Hook called when a reload request is processed."""

    @abstractmethod
    def run(self) -> None:
        """Worker main loop. Only ever leaves by raising."""


@dataclass
class WorkerRun:
    """One start of a supervised worker."""
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    exit_code: Optional[int] = None

    def __str__(self):
        return f"worker run started {self.started_at.isoformat()} exited with status {self.exit_code}"


class WorkerSupervisor:
    """
    Keeps a background worker running in a child process.

    A child exiting with a non-zero status is restarted after
    `restart_seconds`; status 0 means the worker must not be restarted.
    """

    def __init__(
        self,
        target: Callable[..., Any],
        args: tuple = (),
        restart_seconds: float = WORKER_RESTART_SECONDS,
        process_factory: Optional[Callable[..., Any]] = None,
        max_restarts: Optional[int] = None,
    ):
        self.target = target
        self.args = args
        self.restart_seconds = restart_seconds
        self.max_restarts = max_restarts
        self._process_factory = process_factory or multiprocessing.Process
        self._process = None
        self._stop = threading.Event()
        self.runs: list[WorkerRun] = []

    def install_signal_handlers(self) -> None:
        for sig in (signal.SIGTERM, signal.SIGINT):
            signal.signal(sig, lambda signum, frame: self.stop())

    def stop(self) -> None:
        """Stop restarting and ask the current child to terminate."""
        self._stop.set()
        process = self._process
        if process is not None and process.is_alive():
            process.terminate()

    def run(self) -> int:
        """Supervise until stopped; returns the last child exit status."""
        last_code = 0
        while not self._stop.is_set():
            run = WorkerRun()
            self.runs.append(run)
            self._process = self._process_factory(target=self.target, args=self.args, name="powa")
            self._process.start()
            logger.info(f"Started worker process (pid {self._process.pid})")
            self._process.join()
            run.exit_code = last_code = self._process.exitcode
            logger.info(str(run))

            if last_code == 0:
                logger.info("Worker exited cleanly, not restarting")
                break
            if self.max_restarts is not None and len(self.runs) > self.max_restarts:
                logger.error(f"Worker restarted {self.max_restarts} times, giving up")
                break
            if self._stop.wait(self.restart_seconds):
                break
        self._process = None
        return last_code
