import psycopg
import pytest
from fastapi.testclient import TestClient

from powa_ops.app.main import app
from powa_ops.app.services import stats_service
from powa_ops.app.services.stats_service import get_extractor, get_session, get_settings
from powa_ops.config.settings import RuntimeConfig, SettingsHolder
from powa_ops.stats import StatsSnapshotExtractor

from .conftest import HOME_DB, SALES_DB, UNKNOWN_DB


class HealthSession:
    def __init__(self, error=None):
        self.error = error

    def execute_query(self, query, params=None):
        if self.error is not None:
            raise self.error
        return [{"ok": 1}]


@pytest.fixture
def client(store):
    app.dependency_overrides[get_extractor] = lambda: StatsSnapshotExtractor(store)
    app.dependency_overrides[get_settings] = lambda: SettingsHolder(
        lambda previous: RuntimeConfig(frequency_ms=60000, ignored_users="batch"))
    app.dependency_overrides[get_session] = lambda: HealthSession()
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_index(client):
    response = client.get("/")
    assert response.status_code == 200
    assert "/api/stats/relations/{database_id}" in response.json()["endpoints"]


def test_relation_stats(client, store):
    response = client.get(f"/api/stats/relations/{SALES_DB}")
    assert response.status_code == 200
    rows = {row["relid"]: row for row in response.json()}
    assert set(rows) == {16401, 16405, 16410}

    row = rows[16401]
    assert row["blks_read"] == 20
    assert row["last_vacuum"].startswith("2024-03-01T02:00:00")
    assert row["last_autovacuum"] is None
    assert row["autoanalyze_count"] == 6
    assert len(row) == 21
    assert store.my_database_id == HOME_DB


def test_function_stats(client):
    response = client.get(f"/api/stats/functions/{HOME_DB}")
    assert response.status_code == 200
    assert response.json() == [{"funcid": 1, "calls": 1, "total_time": 0.0, "self_time": 0.0}]


def test_unknown_database_is_empty(client):
    response = client.get(f"/api/stats/functions/{UNKNOWN_DB}")
    assert response.status_code == 200
    assert response.json() == []


def test_invalid_database_id(client):
    assert client.get("/api/stats/relations/-3").status_code == 422
    assert client.get("/api/stats/relations/sales").status_code == 422


def test_health(client):
    response = client.get("/api/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_health_degraded(client):
    app.dependency_overrides[get_session] = lambda: HealthSession(
        psycopg.OperationalError("connection refused"))
    response = client.get("/api/health")
    assert response.json() == {"status": "degraded", "postgres": "unreachable"}


def test_collector_settings(client):
    response = client.get("/api/collector/settings")
    assert response.status_code == 200
    body = response.json()
    assert body["frequency_ms"] == 60000
    assert body["ignored_users"] == "batch"
    assert body["database"] == "powa"


class BrokenHomeSession:
    closed = False

    def execute_query(self, query, params=None):
        raise psycopg.OperationalError("server closed the connection unexpectedly")

    def close(self):
        self.closed = True


class RecordingClient:
    def __init__(self, session):
        self.session = session
        self.connects = []

    def connect(self, dbname):
        self.connects.append(dbname)
        return self.session


def test_extractor_dependency_closes_session_when_store_fails(monkeypatch):
    session = BrokenHomeSession()
    client = RecordingClient(session)
    monkeypatch.setattr(stats_service, "_client", client)
    monkeypatch.delenv("POWA_HOME_DATABASE", raising=False)

    dependency = stats_service.get_extractor()
    with pytest.raises(psycopg.OperationalError):
        next(dependency)

    assert session.closed
    assert client.connects == ["postgres"]


def test_home_database_from_environment(monkeypatch):
    client = RecordingClient(HealthSession())
    client.session.close = lambda: None
    monkeypatch.setattr(stats_service, "_client", client)
    monkeypatch.setenv("POWA_HOME_DATABASE", "monitoring")

    dependency = stats_service.get_session()
    assert next(dependency) is client.session
    dependency.close()
    assert client.connects == ["monitoring"]
