"""Stats service: per-request statistics sessions for the HTTP surface."""

import logging
import os
from typing import Iterator

from powa_ops.config.settings import (
    CONNINFO_ENV,
    DEFAULT_HOME_DATABASE,
    HOME_DATABASE_ENV,
    SettingsHolder,
)
from powa_ops.stats.extractor import StatsSnapshotExtractor
from powa_ops.stats.pg_store import PgStatsStore
from powa_ops.utils.pg_client import PgClient, PgSession

logger = logging.getLogger("powa_ops_app.stats")

_client = None
_settings = None


def home_database() -> str:
    """Database the API connects to before reading any other one."""
    return os.getenv(HOME_DATABASE_ENV, DEFAULT_HOME_DATABASE)


def get_client() -> PgClient:
    global _client
    if _client is None:
        _client = PgClient(os.getenv(CONNINFO_ENV, ""), application_name="powa-ops api")
        logger.info(f"PostgreSQL client initialized (home database {home_database()})")
    return _client


def get_settings() -> SettingsHolder:
    global _settings
    if _settings is None:
        _settings = SettingsHolder.from_sources()
    return _settings


def get_session() -> Iterator[PgSession]:
    """One session per request, closed when the response is sent."""
    session = get_client().connect(home_database())
    try:
        yield session
    finally:
        session.close()


def get_extractor() -> Iterator[StatsSnapshotExtractor]:
    """Extractor over a store owned by this request only."""
    client = get_client()
    session = client.connect(home_database())
    store = None
    try:
        store = PgStatsStore(session, client)
        yield StatsSnapshotExtractor(store)
    finally:
        if store is not None:
            store.close()
        session.close()
