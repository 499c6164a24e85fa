"""SQLAlchemy engine factory.

Supports any SQLAlchemy URL.  SQLite engines are configured for
transactional DDL so that a failed migration version rolls back its
structural changes too:

* the driver's own transaction handling is disabled on connect and SQLAlchemy
  emits ``BEGIN`` itself;
* foreign keys are enforced on every connection.
"""

from __future__ import annotations

import logging
from pathlib import Path

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url

logger = logging.getLogger(__name__)


def get_engine(database_url: str, echo: bool = False) -> Engine:
    """Create a synchronous SQLAlchemy engine.

    Parameters
    ----------
    database_url:
        Connection string, e.g. ``postgresql+psycopg://...`` or
        ``sqlite:///path/to/db``.  Parent directories of a SQLite file are
        created automatically.
    echo:
        Log every SQL statement (SQLAlchemy's own ``echo`` flag).

    Returns
    -------
    Engine
        A configured engine.
    """
    url = make_url(database_url)

    if url.get_backend_name() != "sqlite":
        engine = create_engine(url, echo=echo, pool_pre_ping=True)
        logger.info("Created %s engine for %s", url.get_backend_name(), url.render_as_string(hide_password=True))
        return engine

    if url.database and url.database != ":memory:":
        Path(url.database).parent.mkdir(parents=True, exist_ok=True)

    engine = create_engine(url, echo=echo)

    @event.listens_for(engine, "connect")
    def _configure_sqlite(dbapi_conn: object, _: object) -> None:
        # Hand transaction control to SQLAlchemy so DDL joins the transaction.
        dbapi_conn.isolation_level = None  # type: ignore[attr-defined]
        cursor = dbapi_conn.cursor()  # type: ignore[attr-defined]
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _begin(conn: object) -> None:
        conn.exec_driver_sql("BEGIN")  # type: ignore[attr-defined]

    logger.info("Created SQLite engine: %s", url.render_as_string(hide_password=True))
    return engine
