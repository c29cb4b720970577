"""
Centralized SQL for the collector and the statistics store.
Modules import named constants from here.
All queries use native PostgreSQL catalogs and pg_stat_get_* accessors.
"""

# =============================================================================
# Snapshot collector (SnapshotScheduler)
# =============================================================================

SNAPSHOT_QUERY = "SELECT powa_take_snapshot()"

APPNAME_QUERY = "SET application_name = 'POWA collector'"

# Transaction-local so a failed tick leaves no setting behind
SET_LOCAL_CONFIG = "SELECT set_config(%s, %s, true)"

HEALTH_CHECK = "SELECT 1 AS ok"

# =============================================================================
# Statistics store (PgStatsStore)
# =============================================================================

CURRENT_DATABASE_OID = """
    SELECT oid FROM pg_catalog.pg_database WHERE datname = current_database()
"""

DATABASE_NAME_BY_OID = """
    SELECT datname FROM pg_catalog.pg_database WHERE oid = %s
"""

# One row per database known to the cumulative statistics system
DATABASE_STATS_ENTRIES = """
    SELECT datid FROM pg_catalog.pg_stat_database WHERE datid IS NOT NULL
"""

# Tables, indexes, TOAST tables and materialized views of the connected database
RELATION_STAT_COUNTERS = """
    SELECT c.oid AS relid,
           pg_stat_get_numscans(c.oid) AS numscans,
           pg_stat_get_tuples_returned(c.oid) AS tuples_returned,
           pg_stat_get_tuples_fetched(c.oid) AS tuples_fetched,
           pg_stat_get_tuples_inserted(c.oid) AS tuples_inserted,
           pg_stat_get_tuples_updated(c.oid) AS tuples_updated,
           pg_stat_get_tuples_deleted(c.oid) AS tuples_deleted,
           pg_stat_get_tuples_hot_updated(c.oid) AS tuples_hot_updated,
           pg_stat_get_live_tuples(c.oid) AS n_live_tuples,
           pg_stat_get_dead_tuples(c.oid) AS n_dead_tuples,
           pg_stat_get_mod_since_analyze(c.oid) AS changes_since_analyze,
           pg_stat_get_blocks_fetched(c.oid) AS blocks_fetched,
           pg_stat_get_blocks_hit(c.oid) AS blocks_hit,
           pg_stat_get_last_vacuum_time(c.oid) AS vacuum_timestamp,
           pg_stat_get_vacuum_count(c.oid) AS vacuum_count,
           pg_stat_get_last_autovacuum_time(c.oid) AS autovac_vacuum_timestamp,
           pg_stat_get_autovacuum_count(c.oid) AS autovac_vacuum_count,
           pg_stat_get_last_analyze_time(c.oid) AS analyze_timestamp,
           pg_stat_get_analyze_count(c.oid) AS analyze_count,
           pg_stat_get_last_autoanalyze_time(c.oid) AS autovac_analyze_timestamp,
           pg_stat_get_autoanalyze_count(c.oid) AS autovac_analyze_count
    FROM pg_catalog.pg_class c
    WHERE c.relkind IN ('r', 'i', 't', 'm')
"""

# Functions with a statistics entry (calls is NULL when never tracked)
FUNCTION_STAT_COUNTERS = """
    SELECT p.oid AS funcid,
           pg_stat_get_function_calls(p.oid) AS numcalls,
           pg_stat_get_function_total_time(p.oid) AS total_time_ms,
           pg_stat_get_function_self_time(p.oid) AS self_time_ms
    FROM pg_catalog.pg_proc p
    WHERE pg_stat_get_function_calls(p.oid) IS NOT NULL
"""
