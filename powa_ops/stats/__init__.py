from .extractor import StatsSnapshotExtractor, database_scope
from .models import (
    FUNCTION_COLUMNS,
    RELATION_COLUMNS,
    DatabaseStatsEntry,
    FunctionStatCounters,
    RelationStatCounters,
    StatKind,
)
from .store import InMemoryStatsStore, StatsCollector, StatsStore
from .tuplestore import ReturnMode, ReturnSetInfo, TupleDesc, TupleSink, materialize_rsinfo

__all__ = [
    "StatsSnapshotExtractor",
    "database_scope",
    "FUNCTION_COLUMNS",
    "RELATION_COLUMNS",
    "DatabaseStatsEntry",
    "FunctionStatCounters",
    "RelationStatCounters",
    "StatKind",
    "InMemoryStatsStore",
    "StatsCollector",
    "StatsStore",
    "ReturnMode",
    "ReturnSetInfo",
    "TupleDesc",
    "TupleSink",
    "materialize_rsinfo",
]
