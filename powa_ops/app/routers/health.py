"""Health check and collector settings router."""

import logging

import psycopg
from fastapi import APIRouter, Depends

from powa_ops.config.settings import SettingsHolder
from powa_ops.sql import queries
from powa_ops.utils.pg_client import PgSession
from ..services.stats_service import get_session, get_settings

logger = logging.getLogger("powa_ops_app.health")

router = APIRouter(prefix="/api", tags=["health"])


@router.get("/health")
def health_check(session: PgSession = Depends(get_session)):
    """Basic health check, verifies PostgreSQL connectivity."""
    try:
        rows = session.execute_query(queries.HEALTH_CHECK)
        if rows and rows[0].get("ok") == 1:
            return {"status": "healthy", "postgres": "connected"}
    except psycopg.Error as e:
        logger.warning(f"Health check failed: {e}")
    return {"status": "degraded", "postgres": "unreachable"}


@router.get("/collector/settings")
def collector_settings(settings: SettingsHolder = Depends(get_settings)):
    """Collector settings as currently resolved."""
    return settings.current.to_dict()
