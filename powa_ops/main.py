"""
powa-ops: command line entry point.

Commands:
  run             run the snapshot collector in this process
  supervise       run the collector in a child process, restarting it
                  after a cooldown whenever it stops
  function-stats  print per-function statistics of a database
  relation-stats  print per-relation statistics of a database
  serve           serve the statistics over HTTP

Usage:
  powa-ops supervise --conninfo "host=localhost user=postgres"
  powa-ops relation-stats 16384
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from typing import Optional

from powa_ops.config.settings import (
    CONFIG_FILE_ENV,
    CONNINFO_ENV,
    WORKER_RESTART_SECONDS,
    SettingsHolder,
)
from powa_ops.utils.pg_client import PgClient

LOG_FORMAT = "%(asctime)s [%(name)s] %(levelname)s: %(message)s"

logger = logging.getLogger("powa_ops.main")


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def run_worker(conninfo: str, config_path: Optional[str], log_level: str = "INFO") -> None:
    """Worker process body: never returns, exits with a non-zero status."""
    from powa_ops.collector.scheduler import SnapshotScheduler

    configure_logging(log_level)
    settings = SettingsHolder.from_sources(config_path)
    client = PgClient(conninfo)
    scheduler = SnapshotScheduler(settings, client.connect)
    scheduler.install_signal_handlers()
    try:
        scheduler.run()
    except Exception:
        logger.critical("POWA collector terminated by an error", exc_info=True)
        raise


def supervise(conninfo: str, config_path: Optional[str], log_level: str,
              restart_seconds: float) -> int:
    from powa_ops.framework.worker import WorkerSupervisor

    supervisor = WorkerSupervisor(
        run_worker,
        args=(conninfo, config_path, log_level),
        restart_seconds=restart_seconds,
    )
    supervisor.install_signal_handlers()
    return supervisor.run()


def print_stats(conninfo: str, database: str, database_id: int, kind: str) -> int:
    from powa_ops.stats.extractor import StatsSnapshotExtractor
    from powa_ops.stats.pg_store import PgStatsStore

    client = PgClient(conninfo, application_name="powa-ops")
    session = client.connect(database)
    store = None
    try:
        store = PgStatsStore(session, client)
        extractor = StatsSnapshotExtractor(store)
        if kind == "function":
            sink = extractor.function_stats(database_id)
        else:
            sink = extractor.relation_stats(database_id)
        print("\t".join(sink.desc.columns))
        for row in sink:
            print("\t".join("" if v is None else str(v) for v in row))
    finally:
        if store is not None:
            store.close()
        session.close()
    return 0


def serve(host: str, port: int) -> int:
    import uvicorn

    uvicorn.run("powa_ops.app.main:app", host=host, port=port)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="powa-ops", description="PoWA snapshot collector")
    parser.add_argument("--conninfo", default=os.getenv(CONNINFO_ENV, ""),
                        help=f"libpq connection string (default: ${CONNINFO_ENV})")
    parser.add_argument("--config", default=os.getenv(CONFIG_FILE_ENV),
                        help=f"settings file (default: ${CONFIG_FILE_ENV})")
    parser.add_argument("--log-level", default="INFO")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("run", help="Run the collector in this process")

    sup = sub.add_parser("supervise", help="Run and restart the collector")
    sup.add_argument("--restart-seconds", type=float, default=WORKER_RESTART_SECONDS)

    for kind in ("function", "relation"):
        stats = sub.add_parser(f"{kind}-stats", help=f"Print {kind} statistics of a database")
        stats.add_argument("database_id", type=int, help="oid of the database to read")
        stats.add_argument("--database", default="postgres",
                           help="database to connect to (default: postgres)")

    srv = sub.add_parser("serve", help="Serve statistics over HTTP")
    srv.add_argument("--host", default="127.0.0.1")
    srv.add_argument("--port", type=int, default=8000)
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    if args.command == "run":
        run_worker(args.conninfo, args.config, args.log_level)
        return 1

    configure_logging(args.log_level)
    if args.command == "supervise":
        return supervise(args.conninfo, args.config, args.log_level, args.restart_seconds)
    if args.command in ("function-stats", "relation-stats"):
        kind = args.command.split("-")[0]
        return print_stats(args.conninfo, args.database, args.database_id, kind)
    return serve(args.host, args.port)


if __name__ == "__main__":
    sys.exit(main())
