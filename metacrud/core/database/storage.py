"""
Storage Units of Work.

``Storage`` owns the SQLAlchemy engine shared by every DAO of the process.
Each public DAO operation runs inside ``Storage.unit_of_work``: one
connection checked out from the pool, one transaction, committed on success
and rolled back on any error before the error leaves the block. The pool
returns the connection once the block ends.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Iterator, Set

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import DBAPIError
from sqlalchemy.pool import StaticPool

from metacrud.core.logging_config import get_logger

logger = get_logger(__name__)

UNIQUE_VIOLATION_CODES = {"1062", "23505", "2067", "1555"}
FOREIGN_KEY_VIOLATION_CODES = {"1451", "1452", "23503", "787"}
UNIQUE_VIOLATION_MARKERS = ("unique constraint", "duplicate entry", "duplicate key")
FOREIGN_KEY_VIOLATION_MARKERS = ("foreign key constraint",)


def _enable_sqlite_foreign_keys(dbapi_connection: Any, connection_record: Any) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_storage_engine(db_url: str, echo: bool = False) -> Engine:
    """Create a synchronous SQLAlchemy engine.

    SQLite connections get foreign keys enforced; in-memory SQLite databases
    use a single shared connection so every unit of work sees the same data.

    Args:
        db_url: Database connection URL
        echo: Log every SQL statement

    Returns:
        Configured Engine instance
    """
    if db_url.startswith("sqlite"):
        kwargs: dict = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in db_url or db_url.rstrip("/") == "sqlite:":
            kwargs["poolclass"] = StaticPool
        engine = create_engine(db_url, echo=echo, **kwargs)
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
    else:
        engine = create_engine(db_url, echo=echo, pool_pre_ping=True)
    logger.info(f"Storage engine created for {engine.url.render_as_string(hide_password=True)}")
    return engine


class Storage:
    """Hands out transactional connections from one engine."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    @classmethod
    def from_url(cls, db_url: str, echo: bool = False) -> "Storage":
        return cls(create_storage_engine(db_url, echo=echo))

    @contextmanager
    def unit_of_work(self, *, read_only: bool = False) -> Iterator[Connection]:
        """Run a block inside one transaction.

        Args:
            read_only: Roll back instead of committing when the block succeeds

        Yields:
            Connection bound to the open transaction
        """
        with self.engine.connect() as conn:
            transaction = conn.begin()
            try:
                yield conn
            except Exception:
                transaction.rollback()
                raise
            if read_only:
                transaction.rollback()
            else:
                transaction.commit()

    def dispose(self) -> None:
        self.engine.dispose()


def _error_codes(exc: DBAPIError) -> Set[str]:
    orig = exc.orig
    codes = set()
    for attribute in ("pgcode", "sqlstate", "sqlite_errorcode", "errno"):
        value = getattr(orig, attribute, None)
        if value is not None:
            codes.add(str(value))
    args = getattr(orig, "args", ())
    if args and isinstance(args[0], int):
        codes.add(str(args[0]))
    return codes


def is_unique_violation(exc: DBAPIError) -> bool:
    """Whether a driver error reports a duplicated unique or primary key."""
    if _error_codes(exc) & UNIQUE_VIOLATION_CODES:
        return True
    message = str(exc.orig).lower()
    return any(marker in message for marker in UNIQUE_VIOLATION_MARKERS)


def is_foreign_key_violation(exc: DBAPIError) -> bool:
    """Whether a driver error reports a violated foreign key."""
    if _error_codes(exc) & FOREIGN_KEY_VIOLATION_CODES:
        return True
    message = str(exc.orig).lower()
    return any(marker in message for marker in FOREIGN_KEY_VIOLATION_MARKERS)
