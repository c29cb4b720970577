"""
StatsStore: read access to the cumulative statistics of a cluster.

A store answers for the database it is currently scoped to. The first fetch
after clear_snapshot() takes a snapshot that every later fetch reuses until
the next clear; only the scope database is read with its per-relation and
per-function collections, other databases come back without them.
"""

from __future__ import annotations

import copy
import logging
import threading
from abc import ABC, abstractmethod
from typing import Optional

from .models import DatabaseStatsEntry, FunctionStatCounters, RelationStatCounters

logger = logging.getLogger("powa_ops.stats")


class StatsStore(ABC):
    """Abstract statistics accessor, scoped to one database at a time."""

    def __init__(self, my_database_id: int):
        self.my_database_id = my_database_id
        self._snapshot: Optional[dict[int, DatabaseStatsEntry]] = None

    def clear_snapshot(self) -> None:
        """Discard cached statistics; the next fetch reads fresh data."""
        self._snapshot = None

    def fetch_db_entry(self, database_id: int) -> Optional[DatabaseStatsEntry]:
        """Entry for `database_id`, or None when no statistics exist for it."""
        if self._snapshot is None:
            self._snapshot = self.read_snapshot(self.my_database_id)
        return self._snapshot.get(database_id)

    @abstractmethod
    def read_snapshot(self, scope_database_id: int) -> dict[int, DatabaseStatsEntry]:
        """Read all database entries, with collections for the scope database only."""


class StatsCollector:
    """Live, process-wide statistics shared by every InMemoryStatsStore."""

    def __init__(self):
        self._lock = threading.Lock()
        self._databases: dict[int, DatabaseStatsEntry] = {}

    def _entry(self, database_id: int) -> DatabaseStatsEntry:
        entry = self._databases.get(database_id)
        if entry is None:
            entry = DatabaseStatsEntry(database_id=database_id, relations={}, functions={})
            self._databases[database_id] = entry
        return entry

    def report_database(self, database_id: int) -> None:
        with self._lock:
            self._entry(database_id)

    def report_relation(self, database_id: int, counters: RelationStatCounters) -> None:
        with self._lock:
            self._entry(database_id).relations[counters.tableid] = copy.copy(counters)

    def report_function(self, database_id: int, counters: FunctionStatCounters) -> None:
        with self._lock:
            self._entry(database_id).functions[counters.functionid] = copy.copy(counters)

    def drop_database(self, database_id: int) -> None:
        with self._lock:
            self._databases.pop(database_id, None)

    def read(self, deep_database_id: int) -> dict[int, DatabaseStatsEntry]:
        with self._lock:
            snapshot = {}
            for database_id, entry in self._databases.items():
                if database_id == deep_database_id:
                    snapshot[database_id] = copy.deepcopy(entry)
                else:
                    snapshot[database_id] = DatabaseStatsEntry(database_id=database_id)
            return snapshot


class InMemoryStatsStore(StatsStore):
    """Session view over a StatsCollector."""

    def __init__(self, collector: StatsCollector, my_database_id: int):
        super().__init__(my_database_id)
        self.collector = collector

    def read_snapshot(self, scope_database_id: int) -> dict[int, DatabaseStatsEntry]:
        return self.collector.read(scope_database_id)
