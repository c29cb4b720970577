"""
PgClient: PostgreSQL sessions for the collector and the statistics store.

Handles:
- Connection setup from a libpq conninfo plus a target database name
- Units of work (one transaction per statement batch)
- Activity reporting for the session (what it is currently doing)
"""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Optional

import psycopg

from powa_ops.config.settings import APPLICATION_NAME
from powa_ops.sql import queries

logger = logging.getLogger("powa_ops.client")


class ActivityState(Enum):
    RUNNING = "active"
    IDLE = "idle"


@dataclass
class SessionActivity:
    """Last activity reported by a session."""
    state: ActivityState = ActivityState.IDLE
    query: Optional[str] = None
    since: float = field(default_factory=time.time)


def quote_identifier(name: str) -> str:
    """Quote a database name the way the server would display it."""
    if re.fullmatch(r"[a-z_][a-z0-9_$]*", name):
        return name
    return '"' + name.replace('"', '""') + '"'


class PgSession:
    """One connection, used for every unit of work of its owner."""

    def __init__(self, conn: Any, dbname: str):
        self.conn = conn
        self.dbname = dbname
        self.activity = SessionActivity()

    def report_activity(self, state: ActivityState, query: Optional[str] = None) -> None:
        self.activity = SessionActivity(state=state, query=query)
        logger.debug(f"[{self.dbname}] {state.value}: {query or ''}")

    def execute_query(self, query: str, params: tuple = None) -> list[dict]:
        """Execute a query and return results as dicts."""
        with self.conn.cursor() as cur:
            cur.execute(query, params)
            columns = [desc[0] for desc in cur.description] if cur.description else []
            rows = cur.fetchall() if cur.description else []
            return [dict(zip(columns, row)) for row in rows]

    def execute_in_transaction(self, statement: str, params: tuple = None,
                               settings: Optional[Mapping[str, str]] = None) -> None:
        """
        Run `statement` as one unit of work, after applying `settings` as
        transaction-local parameters. Any error rolls the unit back and
        propagates.
        """
        with self.conn.transaction():
            with self.conn.cursor() as cur:
                for name, value in (settings or {}).items():
                    cur.execute(queries.SET_LOCAL_CONFIG, (name, value))
                cur.execute(statement, params)

    def close(self) -> None:
        try:
            self.conn.close()
        except psycopg.Error as e:
            logger.warning(f"Error closing connection to {self.dbname}: {e}")


class PgClient:
    """Opens PgSessions against databases of one PostgreSQL cluster."""

    def __init__(self, conninfo: str = "", application_name: str = APPLICATION_NAME,
                 connect_timeout: int = 10):
        self.conninfo = conninfo
        self.application_name = application_name
        self.connect_timeout = connect_timeout

    def connect(self, dbname: str) -> PgSession:
        conn = psycopg.connect(
            self.conninfo,
            dbname=dbname,
            application_name=self.application_name,
            connect_timeout=self.connect_timeout,
            autocommit=True,
        )
        logger.debug(f"Connected to {quote_identifier(dbname)}")
        return PgSession(conn, dbname)
