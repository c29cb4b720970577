from datetime import datetime, timezone

import psycopg
import pytest

from powa_ops.sql import queries
from powa_ops.stats import StatsSnapshotExtractor
from powa_ops.stats.models import to_timestamptz
from powa_ops.stats.pg_store import (
    PgStatsStore,
    function_counters_from_row,
    relation_counters_from_row,
)

POSTGRES_OID = 5
SALES_OID = 16384

VACUUMED_AT = datetime(2024, 3, 1, 2, 0, tzinfo=timezone.utc)


def relation_row(relid, **overrides):
    row = {
        "relid": relid,
        "numscans": 0, "tuples_returned": 0, "tuples_fetched": 0,
        "tuples_inserted": 0, "tuples_updated": 0, "tuples_deleted": 0,
        "tuples_hot_updated": 0, "n_live_tuples": 0, "n_dead_tuples": 0,
        "changes_since_analyze": 0, "blocks_fetched": 0, "blocks_hit": 0,
        "vacuum_timestamp": None, "vacuum_count": 0,
        "autovac_vacuum_timestamp": None, "autovac_vacuum_count": 0,
        "analyze_timestamp": None, "analyze_count": 0,
        "autovac_analyze_timestamp": None, "autovac_analyze_count": 0,
    }
    row.update(overrides)
    return row


class FakePgSession:
    """Answers the statistics queries of one connected database."""

    def __init__(self, oid, relations=(), functions=(), databases=None):
        self.oid = oid
        self.relations = list(relations)
        self.functions = list(functions)
        self.databases = databases or {}
        self.queries = []
        self.closed = False

    def execute_query(self, query, params=None):
        self.queries.append(query)
        if query == queries.CURRENT_DATABASE_OID:
            return [{"oid": self.oid}]
        if query == queries.DATABASE_STATS_ENTRIES:
            return [{"datid": oid} for oid in self.databases]
        if query == queries.DATABASE_NAME_BY_OID:
            name = self.databases.get(params[0])
            return [{"datname": name}] if name else []
        if query == queries.RELATION_STAT_COUNTERS:
            return self.relations
        if query == queries.FUNCTION_STAT_COUNTERS:
            return self.functions
        raise AssertionError(f"unexpected query {query!r}")

    def close(self):
        self.closed = True


class FakeClient:
    def __init__(self, sessions):
        self.sessions = sessions
        self.connects = []

    def connect(self, dbname):
        self.connects.append(dbname)
        return self.sessions[dbname]


@pytest.fixture
def cluster():
    databases = {POSTGRES_OID: "postgres", SALES_OID: "sales", 16500: "archive"}
    home = FakePgSession(
        POSTGRES_OID,
        relations=[relation_row(1259, numscans=4)],
        databases=databases,
    )
    sales = FakePgSession(
        SALES_OID,
        relations=[
            relation_row(16401, numscans=12, blocks_fetched=120, blocks_hit=100,
                         vacuum_timestamp=VACUUMED_AT, vacuum_count=3),
            relation_row(16405, n_live_tuples=None),
        ],
        functions=[{"funcid": 16999, "numcalls": 5, "total_time_ms": 2.5, "self_time_ms": 1.25}],
    )
    client = FakeClient({"sales": sales})
    return home, sales, client


def test_relation_counters_from_row():
    counters = relation_counters_from_row(relation_row(
        16401, numscans=3, n_dead_tuples=None, vacuum_timestamp=VACUUMED_AT))
    assert counters.tableid == 16401
    assert counters.numscans == 3
    assert counters.n_dead_tuples == 0
    assert counters.vacuum_timestamp == to_timestamptz(VACUUMED_AT)
    assert counters.analyze_timestamp == 0


def test_function_counters_keep_microseconds():
    counters = function_counters_from_row(
        {"funcid": 7, "numcalls": 2, "total_time_ms": 0.123, "self_time_ms": None})
    assert counters.total_time == 123
    assert counters.self_time == 0


def test_store_is_scoped_to_the_connected_database(cluster):
    home, _, client = cluster
    store = PgStatsStore(home, client)
    assert store.my_database_id == POSTGRES_OID

    entry = store.fetch_db_entry(POSTGRES_OID)
    assert set(entry.relations) == {1259}
    assert entry.functions == {}
    assert store.fetch_db_entry(SALES_OID).relations is None
    assert client.connects == []


def test_other_database_is_read_through_its_own_session(cluster):
    home, sales, client = cluster
    store = PgStatsStore(home, client)
    extractor = StatsSnapshotExtractor(store)

    rows = extractor.relation_stats(SALES_OID).as_dicts()
    assert [row["relid"] for row in rows] == [16401, 16405]
    assert rows[0]["blks_read"] == 20
    assert rows[0]["last_vacuum"] == VACUUMED_AT
    assert rows[1]["n_live_tup"] == 0

    functions = list(extractor.function_stats(SALES_OID))
    assert functions == [(16999, 5, 2.5, 1.25)]

    # The per-database session is opened once and reused
    assert client.connects == ["sales"]
    assert store.my_database_id == POSTGRES_OID

    store.close()
    assert sales.closed
    assert not home.closed


def test_unknown_database_gives_empty_result(cluster):
    home, _, client = cluster
    extractor = StatsSnapshotExtractor(PgStatsStore(home, client))
    assert len(extractor.relation_stats(99999)) == 0
    assert client.connects == []


def test_without_client_other_databases_are_empty(cluster, caplog):
    home, _, _ = cluster
    extractor = StatsSnapshotExtractor(PgStatsStore(home))
    assert len(extractor.relation_stats(SALES_OID)) == 0
    assert "No client to read database 16384" in caplog.text


class RefusingClient:
    def __init__(self):
        self.connects = []

    def connect(self, dbname):
        self.connects.append(dbname)
        raise psycopg.OperationalError(
            f'database "{dbname}" is not currently accepting connections')


def test_database_refusing_connections_gives_empty_result(cluster, caplog):
    home, _, _ = cluster
    client = RefusingClient()
    store = PgStatsStore(home, client)
    extractor = StatsSnapshotExtractor(store)

    assert len(extractor.relation_stats(SALES_OID)) == 0
    assert len(extractor.function_stats(SALES_OID)) == 0
    assert client.connects == ["sales", "sales"]
    assert "Cannot connect to database 16384" in caplog.text
    assert store.my_database_id == POSTGRES_OID

    # The home database is still read through its own session
    assert [row[0] for row in extractor.relation_stats(POSTGRES_OID)] == [1259]
