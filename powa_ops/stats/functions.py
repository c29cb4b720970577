"""Function-level statistics rows."""

from __future__ import annotations

from .models import STAT_FUNC_COLS, DatabaseStatsEntry, FunctionStatCounters, StatKind
from .tuplestore import ReturnSetInfo, TupleSink, materialize_rsinfo


def function_stat_values(funcentry: FunctionStatCounters) -> tuple:
    """One output row: function oid, calls, total and self time in milliseconds."""
    values = (
        funcentry.functionid,
        funcentry.numcalls,
        funcentry.total_time / 1000.0,
        funcentry.self_time / 1000.0,
    )
    assert len(values) == STAT_FUNC_COLS
    return values


class FunctionStatsMixin:
    """Mixin emitting function counters of a database entry."""

    def emit_function_rows(self, dbentry: DatabaseStatsEntry, sink: TupleSink) -> int:
        if dbentry.functions is None:
            return 0
        for funcentry in dbentry.functions.values():
            sink.put_values(function_stat_values(funcentry))
        return len(dbentry.functions)

    def function_stats(self, database_id: int, rsinfo: ReturnSetInfo = None) -> TupleSink:
        """Per-function counters of `database_id`: (funcid, calls, total_time, self_time)."""
        if rsinfo is None:
            rsinfo = materialize_rsinfo(StatKind.FUNCTION)
        return self.extract(database_id, StatKind.FUNCTION, rsinfo)
