"""Relation-level (tables and indexes) statistics rows."""

from __future__ import annotations

from .models import (
    STAT_TAB_COLS,
    DatabaseStatsEntry,
    RelationStatCounters,
    StatKind,
    from_timestamptz,
)
from .tuplestore import ReturnSetInfo, TupleSink, materialize_rsinfo


def relation_stat_values(tabentry: RelationStatCounters) -> tuple:
    values = (
        # Oid of the table (or index)
        tabentry.tableid,
        tabentry.numscans,

        tabentry.tuples_returned,
        tabentry.tuples_fetched,
        tabentry.tuples_inserted,
        tabentry.tuples_updated,
        tabentry.tuples_deleted,
        tabentry.tuples_hot_updated,

        tabentry.n_live_tuples,
        tabentry.n_dead_tuples,
        tabentry.changes_since_analyze,

        tabentry.blocks_fetched - tabentry.blocks_hit,
        tabentry.blocks_hit,

        from_timestamptz(tabentry.vacuum_timestamp),
        tabentry.vacuum_count,
        from_timestamptz(tabentry.autovac_vacuum_timestamp),
        tabentry.autovac_vacuum_count,
        from_timestamptz(tabentry.analyze_timestamp),
        tabentry.analyze_count,
        from_timestamptz(tabentry.autovac_analyze_timestamp),
        tabentry.autovac_analyze_count,
    )
    assert len(values) == STAT_TAB_COLS
    return values


class RelationStatsMixin:
    """Mixin emitting relation counters of a database entry."""

    def emit_relation_rows(self, dbentry: DatabaseStatsEntry, sink: TupleSink) -> int:
        if dbentry.relations is None:
            return 0
        for tabentry in dbentry.relations.values():
            sink.put_values(relation_stat_values(tabentry))
        return len(dbentry.relations)

    def relation_stats(self, database_id: int, rsinfo: ReturnSetInfo = None) -> TupleSink:
        """
        Per-relation counters of `database_id`.

        Block reads are reported as blocks fetched minus blocks hit; the four
        last-maintenance timestamps are None when the operation never ran.
        """
        if rsinfo is None:
            rsinfo = materialize_rsinfo(StatKind.RELATION)
        return self.extract(database_id, StatKind.RELATION, rsinfo)
