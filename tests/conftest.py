from datetime import datetime, timezone

import pytest

from powa_ops.config.settings import RuntimeConfig, SettingsHolder
from powa_ops.framework.worker import WaitEvent
from powa_ops.sql import queries
from powa_ops.stats.models import FunctionStatCounters, RelationStatCounters, to_timestamptz
from powa_ops.stats.store import InMemoryStatsStore, StatsCollector


# --- collector fakes --------------------------------------------------------

class FakeClock:
    """Monotonic clock in seconds, advanced by hand."""

    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class FakeSession:
    """Stands in for PgSession; snapshots take `durations` seconds each."""

    def __init__(self, clock, durations=(1.0,), fail_with=None):
        self.clock = clock
        self.durations = list(durations)
        self.fail_with = fail_with
        self.statements = []
        self.snapshot_starts = []
        self.snapshot_settings = []
        self.activities = []
        self.closed = False
        self.on_snapshot = None

    def report_activity(self, state, query=None):
        self.activities.append((state, query))

    def execute_in_transaction(self, statement, params=None, settings=None):
        self.statements.append(statement)
        if statement != queries.SNAPSHOT_QUERY:
            return
        self.snapshot_starts.append(self.clock())
        self.snapshot_settings.append(dict(settings or {}))
        duration = self.durations[min(len(self.snapshot_starts) - 1, len(self.durations) - 1)]
        self.clock.advance(duration)
        if self.fail_with is not None:
            raise self.fail_with
        if self.on_snapshot:
            self.on_snapshot(len(self.snapshot_starts))

    def close(self):
        self.closed = True


class FakeLatch:
    """Records waits and lets the fake clock run through them."""

    def __init__(self, clock, result=WaitEvent.TIMEOUT):
        self.clock = clock
        self.result = result
        self.waits = []
        self.resets = 0
        self._set = False
        self.on_wait = None

    def set(self):
        self._set = True

    def reset(self):
        self._set = False
        self.resets += 1

    def is_set(self):
        return self._set

    def wait(self, timeout_ms, events=None):
        self.waits.append(timeout_ms)
        if self.on_wait:
            self.on_wait(len(self.waits))
        if self._set:
            return WaitEvent.LATCH_SET
        self.clock.advance(timeout_ms / 1000.0)
        return self.result


class MutableSettings:
    """Loader whose next result is set by the test."""

    def __init__(self, config):
        self.config = config

    def __call__(self, previous):
        return self.config


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def latch(clock):
    return FakeLatch(clock)


@pytest.fixture
def make_settings():
    def _make(**kwargs):
        source = MutableSettings(RuntimeConfig(**kwargs))
        return source, SettingsHolder(source)
    return _make


# --- statistics fixtures ----------------------------------------------------

HOME_DB = 1
SALES_DB = 16384
EMPTY_DB = 16500
UNKNOWN_DB = 99999


def relation(relid, **kwargs):
    return RelationStatCounters(tableid=relid, **kwargs)


def ts(*args):
    return to_timestamptz(datetime(*args, tzinfo=timezone.utc))


@pytest.fixture
def collector():
    c = StatsCollector()
    c.report_relation(HOME_DB, relation(1259, numscans=4))
    c.report_function(HOME_DB, FunctionStatCounters(functionid=1, numcalls=1))

    c.report_relation(SALES_DB, relation(
        16401, numscans=12, tuples_returned=300, tuples_fetched=250,
        tuples_inserted=40, tuples_updated=7, tuples_deleted=2, tuples_hot_updated=5,
        n_live_tuples=38, n_dead_tuples=9, changes_since_analyze=11,
        blocks_fetched=120, blocks_hit=100,
        vacuum_timestamp=ts(2024, 3, 1, 2, 0), vacuum_count=3,
        autovac_vacuum_count=0,
        analyze_timestamp=ts(2024, 3, 1, 2, 5), analyze_count=1,
        autovac_analyze_timestamp=ts(2024, 3, 2, 14, 30, 15), autovac_analyze_count=6,
    ))
    c.report_relation(SALES_DB, relation(16405, numscans=1))
    c.report_relation(SALES_DB, relation(16410))

    c.report_database(EMPTY_DB)
    return c


@pytest.fixture
def store(collector):
    return InMemoryStatsStore(collector, my_database_id=HOME_DB)
