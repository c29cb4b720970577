"""
Statistics data model: per-database entries and their per-object counters,
as kept by the server's cumulative statistics system.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional

# PostgreSQL TimestampTz: microseconds since 2000-01-01 00:00:00 UTC, 0 = never
POSTGRES_EPOCH = datetime(2000, 1, 1, tzinfo=timezone.utc)
TIMESTAMP_UNSET = 0


def to_timestamptz(value: Optional[datetime]) -> int:
    if value is None:
        return TIMESTAMP_UNSET
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return (value - POSTGRES_EPOCH) // timedelta(microseconds=1)


def from_timestamptz(value: int) -> Optional[datetime]:
    if value == TIMESTAMP_UNSET:
        return None
    return POSTGRES_EPOCH + timedelta(microseconds=value)


class StatKind(Enum):
    FUNCTION = "function"
    RELATION = "relation"


FUNCTION_COLUMNS = ("funcid", "calls", "total_time", "self_time")

RELATION_COLUMNS = (
    "relid",
    "numscan",
    "tup_returned",
    "tup_fetched",
    "n_tup_ins",
    "n_tup_upd",
    "n_tup_del",
    "n_tup_hot_upd",
    "n_live_tup",
    "n_dead_tup",
    "n_mod_since_analyze",
    "blks_read",
    "blks_hit",
    "last_vacuum",
    "vacuum_count",
    "last_autovacuum",
    "autovacuum_count",
    "last_analyze",
    "analyze_count",
    "last_autoanalyze",
    "autoanalyze_count",
)

STAT_FUNC_COLS = len(FUNCTION_COLUMNS)
STAT_TAB_COLS = len(RELATION_COLUMNS)

COLUMNS_BY_KIND = {
    StatKind.FUNCTION: FUNCTION_COLUMNS,
    StatKind.RELATION: RELATION_COLUMNS,
}


@dataclass
class RelationStatCounters:
    """Counters of one table or index. Timestamps are TimestampTz values."""
    tableid: int
    numscans: int = 0
    tuples_returned: int = 0
    tuples_fetched: int = 0
    tuples_inserted: int = 0
    tuples_updated: int = 0
    tuples_deleted: int = 0
    tuples_hot_updated: int = 0
    n_live_tuples: int = 0
    n_dead_tuples: int = 0
    changes_since_analyze: int = 0
    blocks_fetched: int = 0
    blocks_hit: int = 0
    vacuum_timestamp: int = TIMESTAMP_UNSET
    vacuum_count: int = 0
    autovac_vacuum_timestamp: int = TIMESTAMP_UNSET
    autovac_vacuum_count: int = 0
    analyze_timestamp: int = TIMESTAMP_UNSET
    analyze_count: int = 0
    autovac_analyze_timestamp: int = TIMESTAMP_UNSET
    autovac_analyze_count: int = 0


@dataclass
class FunctionStatCounters:
    """Counters of one function; times are in microseconds."""
    functionid: int
    numcalls: int = 0
    total_time: int = 0
    self_time: int = 0


@dataclass
class DatabaseStatsEntry:
    """
    Aggregate entry of one database.

    `relations` and `functions` are None when the entry was read without its
    per-object collections (any database other than the reader's own).
    """
    database_id: int
    relations: Optional[dict[int, RelationStatCounters]] = None
    functions: Optional[dict[int, FunctionStatCounters]] = None
