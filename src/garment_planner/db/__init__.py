# src/garment_planner/db/__init__.py
from __future__ import annotations

import logging
import os
import time
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from .. import config

# ---- Logging ---------------------------------------------------------------
# Controlled by env var DB_LOG:
#   off | summary | sql
# - summary: one line per statement (op, rows, ms)
# - sql: statement text
_db_log_mode = os.getenv("DB_LOG", "off").strip().lower()
_logger = logging.getLogger("garment_planner.sql")

Base = declarative_base()


def _attach_logging(engine: Engine) -> None:
    if _db_log_mode == "off":
        return

    @event.listens_for(engine, "before_cursor_execute")
    def _before(conn, cursor, statement, parameters, context, executemany):
        conn.info.setdefault("_query_start_time", []).append(time.perf_counter())
        if _db_log_mode == "sql":
            _logger.info("SQL: %s", statement)

    @event.listens_for(engine, "after_cursor_execute")
    def _after(conn, cursor, statement, parameters, context, executemany):
        stack = conn.info.get("_query_start_time") or []
        start = stack.pop() if stack else None
        dur_ms = (time.perf_counter() - start) * 1000 if start else 0.0
        op = statement.strip().split(" ", 1)[0].upper() if statement else "SQL"
        _logger.info("%s rows=%s ms=%.2f", op, getattr(cursor, "rowcount", None), dur_ms)


def make_engine(url: str | None = None) -> Engine:
    url = url or config.DATABASE_URL
    # SQLite needs this flag when sessions hop threads
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    engine = create_engine(url, future=True, connect_args=connect_args, pool_pre_ping=True)

    if url.startswith("sqlite"):
        @event.listens_for(engine, "connect")
        def _set_sqlite_pragma(dbapi_conn, _):
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    _attach_logging(engine)
    return engine


def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(
        bind=engine,
        autoflush=False,
        expire_on_commit=False,
        future=True,
        class_=Session,
    )


def init_db(engine: Engine) -> None:
    """Create the planner tables that do not exist yet."""
    # registers the ORM classes on Base.metadata
    from . import models  # noqa: F401

    Base.metadata.create_all(bind=engine)


@contextmanager
def session_scope(factory: sessionmaker) -> Iterator[Session]:
    """
    Short-lived unit of work:
        with session_scope(factory) as db:
            db.add(obj); ...
    """
    db = factory()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
