"""
SnapshotScheduler: the PoWA collector loop.

Takes a snapshot (SELECT powa_take_snapshot()) every powa.frequency
milliseconds. The time spent taking the snapshot is subtracted from the
following wait, so snapshots start at a stable interval; a snapshot that
overran the interval is followed by the next one right away.

The loop exits (always with a non-zero status) when:
- a shutdown is requested (SIGTERM/SIGINT)
- powa.frequency becomes negative (configuration change and SIGHUP)
- powa.frequency is reloaded to a value below the allowed minimum
- the parent process dies
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Optional

from powa_ops.config.settings import RuntimeConfig, SettingsHolder
from powa_ops.framework.exceptions import ExitReason, WorkerExit
from powa_ops.framework.worker import BackgroundWorker, Latch, WaitEvent, WorkerState
from powa_ops.sql import queries
from powa_ops.utils.pg_client import ActivityState, PgSession, quote_identifier

logger = logging.getLogger("powa_ops.collector")


def die_on_too_small_frequency(config: RuntimeConfig) -> None:
    if config.frequency_too_small:
        logger.critical(
            f"POWA frequency cannot be smaller than {config.min_frequency_ms} milliseconds"
        )
        raise WorkerExit(ExitReason.FREQUENCY_TOO_SMALL)


def compute_wait(frequency_ms: int, elapsed_ms: float) -> int:
    """Milliseconds to wait before the next snapshot; <= 0 means start now."""
    return frequency_ms - int(elapsed_ms)


@dataclass
class TickResult:
    """One snapshot taken by the collector."""
    tick: int
    elapsed_ms: float
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __str__(self):
        return f"snapshot #{self.tick} took {self.elapsed_ms:.0f} ms"


class SnapshotScheduler(BackgroundWorker):
    """Background worker taking PoWA snapshots at a fixed start-to-start interval."""

    def __init__(
        self,
        settings: SettingsHolder,
        connect: Callable[[str], PgSession],
        latch: Optional[Latch] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        super().__init__(name="powa", latch=latch)
        self.settings = settings
        self._connect = connect
        self._clock = clock
        self.session: Optional[PgSession] = None
        self.ticks = 0
        self.last_tick: Optional[TickResult] = None

    def on_reload(self) -> None:
        config = self.settings.reload()
        die_on_too_small_frequency(config)

    def run(self) -> None:
        self.set_state(WorkerState.STARTING)
        config = self.settings.current
        die_on_too_small_frequency(config)

        # Only connect when powa.frequency >= 0, otherwise powa is deactivated
        if config.is_deactivated:
            logger.info(f"POWA is deactivated (powa.frequency = {config.frequency_ms}), exiting")
            raise WorkerExit(ExitReason.DEACTIVATED)

        self.set_state(WorkerState.CONNECTING)
        self.session = self._connect(config.database)
        logger.info(f"POWA connected to database {quote_identifier(config.database)}")

        try:
            self.session.report_activity(ActivityState.RUNNING, queries.APPNAME_QUERY)
            self.session.execute_in_transaction(queries.APPNAME_QUERY)
            self.session.report_activity(ActivityState.IDLE)

            while True:
                # A request arriving from here on keeps the latch set
                self.latch.reset()
                self.check_for_interrupts()

                # A reload may have deactivated powa: exit to disconnect
                config = self.settings.current
                if config.is_deactivated:
                    logger.info("POWA exits to disconnect from the database now")
                    raise WorkerExit(ExitReason.DISABLED_AT_RUNTIME)

                tick = self.take_snapshot(config)

                # Off schedule (long snapshot, purge or coalesce): go again right now
                time_to_wait = compute_wait(config.frequency_ms, tick.elapsed_ms)
                logger.debug(f"Waiting for {time_to_wait} milliseconds")
                if time_to_wait > 0:
                    self.sleep(time_to_wait)
        finally:
            self.set_state(WorkerState.TERMINATING)
            self.session.close()

    def take_snapshot(self, config: RuntimeConfig) -> TickResult:
        """Run the snapshot procedure in its own unit of work."""
        self.set_state(WorkerState.RUNNING)
        begin = self._clock()

        self.session.report_activity(ActivityState.RUNNING, queries.SNAPSHOT_QUERY)
        self.session.execute_in_transaction(queries.SNAPSHOT_QUERY,
                                            settings=config.session_settings())
        self.session.report_activity(ActivityState.IDLE)

        self.ticks += 1
        self.last_tick = TickResult(tick=self.ticks, elapsed_ms=(self._clock() - begin) * 1000.0)
        logger.debug(str(self.last_tick))
        return self.last_tick

    def sleep(self, time_to_wait: int) -> None:
        self.set_state(WorkerState.SLEEPING)
        self.session.report_activity(ActivityState.IDLE,
                                     f"-- sleeping for {time_to_wait // 1000} seconds")
        events = self.latch.wait(time_to_wait)
        if events & WaitEvent.PARENT_DEATH:
            logger.critical("Parent process died, POWA exits")
            raise WorkerExit(ExitReason.PARENT_DIED)
