"""Stats router: per-function and per-relation counters of a database."""

from fastapi import APIRouter, Depends, Path

from powa_ops.stats.extractor import StatsSnapshotExtractor
from ..services.stats_service import get_extractor

router = APIRouter(prefix="/api/stats", tags=["stats"])


@router.get("/functions/{database_id}")
def function_stats(
    database_id: int = Path(..., ge=0, description="Database oid"),
    extractor: StatsSnapshotExtractor = Depends(get_extractor),
):
    """Calls, total and self time (ms) of every tracked function."""
    return extractor.function_stats(database_id).as_dicts()


@router.get("/relations/{database_id}")
def relation_stats(
    database_id: int = Path(..., ge=0, description="Database oid"),
    extractor: StatsSnapshotExtractor = Depends(get_extractor),
):
    """Scan, tuple, block and maintenance counters of every table and index."""
    return extractor.relation_stats(database_id).as_dicts()
