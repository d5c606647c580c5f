"""
Database — engine and session factory for the persistent store.

Usage:
    database = Database(settings.database_url_sync)
    database.initialize()  # Create tables

    with database.session() as session:
        ...
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from lordre.store.models import Base

logger = logging.getLogger(__name__)


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    # SQLite ignores ON DELETE CASCADE unless asked per connection
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class Database:
    """Owns the SQLAlchemy engine and hands out sessions."""

    def __init__(self, database_url: str, echo: bool = False) -> None:
        """
        Args:
            database_url: SQLAlchemy URL (sync driver). ``sqlite://`` gives an
                in-memory database shared by every session of this instance.
            echo: Log emitted SQL.
        """
        self.url = database_url
        self.is_sqlite = database_url.startswith("sqlite")

        engine_kwargs: dict = {"echo": echo}
        if self.is_sqlite:
            engine_kwargs["connect_args"] = {"check_same_thread": False}
            if database_url in ("sqlite://", "sqlite:///:memory:"):
                engine_kwargs["poolclass"] = StaticPool
        else:
            engine_kwargs["pool_pre_ping"] = True

        self.engine = create_engine(database_url, **engine_kwargs)
        if self.is_sqlite:
            event.listen(self.engine, "connect", _enable_sqlite_foreign_keys)

        self.SessionLocal = sessionmaker(bind=self.engine, expire_on_commit=False)

    def initialize(self) -> None:
        """Create all tables that do not exist yet."""
        Base.metadata.create_all(self.engine)
        logger.info("Store schema ready: %s", self.engine.url.render_as_string(hide_password=True))

    @contextmanager
    def session(self) -> Iterator[Session]:
        """A session that commits on success and rolls back on error."""
        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def dispose(self) -> None:
        self.engine.dispose()
