"""
StatsSnapshotExtractor: per-object counters of any database of the cluster.

The statistics store only answers with per-relation and per-function detail
for the database it is scoped to. To read another database:

- clear the current snapshot, which may hold another database's data
- scope the store to the wanted database
- fetch the entry
- restore the scope
- clear the snapshot again, so later reads in the same session see their
  own database

Rows are fully materialized before returning; nothing is read from the store
after the scope has been restored.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator, Optional

from powa_ops.framework.exceptions import ExtractionContractError

from .functions import FunctionStatsMixin
from .models import COLUMNS_BY_KIND, DatabaseStatsEntry, StatKind
from .relations import RelationStatsMixin
from .store import StatsStore
from .tuplestore import ReturnMode, ReturnSetInfo, TupleSink

logger = logging.getLogger("powa_ops.stats")


@contextmanager
def database_scope(store: StatsStore, database_id: int) -> Iterator[StatsStore]:
    """Scope `store` to `database_id`; the previous scope is restored on exit."""
    backend_database_id = store.my_database_id
    store.my_database_id = database_id
    try:
        yield store
    finally:
        store.my_database_id = backend_database_id


class StatsSnapshotExtractor(FunctionStatsMixin, RelationStatsMixin):
    """Materializes function or relation statistics of a database."""

    def __init__(self, store: StatsStore):
        self.store = store

    def _prepare_result(self, rsinfo: Optional[ReturnSetInfo], kind: StatKind) -> TupleSink:
        if rsinfo is None or not isinstance(rsinfo, ReturnSetInfo):
            raise ExtractionContractError(
                "set-valued function called in context that cannot accept a set")
        if not rsinfo.allowed_modes & ReturnMode.MATERIALIZE:
            raise ExtractionContractError(
                "materialize mode required, but it is not allowed in this context")
        desc = rsinfo.expected_desc
        if desc is None or desc.natts != len(COLUMNS_BY_KIND[kind]):
            raise ExtractionContractError("return type must be a row type")

        sink = TupleSink(desc)
        rsinfo.return_mode = ReturnMode.MATERIALIZE
        rsinfo.set_result = sink
        rsinfo.set_desc = desc
        return sink

    def fetch_entry(self, database_id: int) -> Optional[DatabaseStatsEntry]:
        """Fresh entry of `database_id` with its per-object collections."""
        self.store.clear_snapshot()
        with database_scope(self.store, database_id):
            return self.store.fetch_db_entry(database_id)

    def extract(self, database_id: int, kind: StatKind,
                rsinfo: Optional[ReturnSetInfo] = None) -> TupleSink:
        """
        Fill a materialized result with one row per `kind` entry of the
        database. A database without statistics gives an empty result.
        """
        sink = self._prepare_result(rsinfo, kind)

        try:
            dbentry = self.fetch_entry(database_id)
            if dbentry is None:
                logger.debug(f"No statistics entry for database {database_id}")
            elif kind == StatKind.FUNCTION:
                self.emit_function_rows(dbentry, sink)
            else:
                self.emit_relation_rows(dbentry, sink)
        finally:
            # Later reads in this session must not see the borrowed entry
            self.store.clear_snapshot()

        sink.done_storing()
        logger.debug(f"{len(sink)} {kind.value} rows for database {database_id}")
        return sink
