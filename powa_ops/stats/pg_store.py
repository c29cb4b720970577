"""
PgStatsStore: StatsStore backed by a live PostgreSQL server.

The pg_stat_get_* accessors only report objects of the database a
connection is attached to, so the scope database is read through a
connection to that database: the home session for its own database, a
cached per-database session otherwise.
"""

from __future__ import annotations

import logging
from typing import Optional

import psycopg

from powa_ops.sql import queries
from powa_ops.utils.pg_client import PgClient, PgSession

from .models import (
    DatabaseStatsEntry,
    FunctionStatCounters,
    RelationStatCounters,
    to_timestamptz,
)
from .store import StatsStore

logger = logging.getLogger("powa_ops.stats")

_TIMESTAMP_FIELDS = (
    "vacuum_timestamp",
    "autovac_vacuum_timestamp",
    "analyze_timestamp",
    "autovac_analyze_timestamp",
)


def relation_counters_from_row(row: dict) -> RelationStatCounters:
    values = {k: v for k, v in row.items() if k != "relid"}
    for name in _TIMESTAMP_FIELDS:
        values[name] = to_timestamptz(values.get(name))
    for name, value in values.items():
        if value is None:
            values[name] = 0
    return RelationStatCounters(tableid=row["relid"], **values)


def function_counters_from_row(row: dict) -> FunctionStatCounters:
    # The server reports milliseconds as float8; counters keep microseconds
    return FunctionStatCounters(
        functionid=row["funcid"],
        numcalls=row.get("numcalls") or 0,
        total_time=round((row.get("total_time_ms") or 0.0) * 1000),
        self_time=round((row.get("self_time_ms") or 0.0) * 1000),
    )


class PgStatsStore(StatsStore):
    """Statistics of a PostgreSQL cluster, seen from one home session."""

    def __init__(self, session: PgSession, client: Optional[PgClient] = None):
        rows = session.execute_query(queries.CURRENT_DATABASE_OID)
        super().__init__(rows[0]["oid"])
        self.session = session
        self.client = client
        self.home_database_id = self.my_database_id
        self._sessions: dict[int, PgSession] = {}

    def _session_for(self, database_id: int) -> Optional[PgSession]:
        if database_id == self.home_database_id:
            return self.session
        if database_id in self._sessions:
            return self._sessions[database_id]
        if self.client is None:
            logger.warning(f"No client to read database {database_id}, skipping per-object stats")
            return None
        rows = self.session.execute_query(queries.DATABASE_NAME_BY_OID, (database_id,))
        if not rows:
            return None
        try:
            session = self.client.connect(rows[0]["datname"])
        except psycopg.OperationalError as e:
            logger.warning(f"Cannot connect to database {database_id}, skipping per-object stats: {e}")
            return None
        self._sessions[database_id] = session
        return session

    def read_snapshot(self, scope_database_id: int) -> dict[int, DatabaseStatsEntry]:
        snapshot = {
            row["datid"]: DatabaseStatsEntry(database_id=row["datid"])
            for row in self.session.execute_query(queries.DATABASE_STATS_ENTRIES)
        }
        if scope_database_id not in snapshot:
            return snapshot

        session = self._session_for(scope_database_id)
        if session is None:
            return snapshot

        relations = {}
        for row in session.execute_query(queries.RELATION_STAT_COUNTERS):
            counters = relation_counters_from_row(row)
            relations[counters.tableid] = counters
        functions = {}
        for row in session.execute_query(queries.FUNCTION_STAT_COUNTERS):
            counters = function_counters_from_row(row)
            functions[counters.functionid] = counters

        snapshot[scope_database_id] = DatabaseStatsEntry(
            database_id=scope_database_id, relations=relations, functions=functions,
        )
        logger.debug(f"Read {len(relations)} relations and {len(functions)} functions "
                     f"for database {scope_database_id}")
        return snapshot

    def close(self) -> None:
        """Close the per-database sessions opened by this store."""
        for session in self._sessions.values():
            session.close()
        self._sessions.clear()
