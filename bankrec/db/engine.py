"""
Database handle: SQLAlchemy engine, session factory and transactional scope.

One `Database` instance is created by the caller and passed explicitly into
every component; there is no module-level connection.
"""

from contextlib import contextmanager
from pathlib import Path
from typing import Generator, Optional

import structlog
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from ..config import Settings, get_settings
from .base import Base

logger = structlog.get_logger()


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    """SQLite ships with FK enforcement off; ON DELETE CASCADE needs it."""
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class Database:
    """
    Owns the engine and hands out transactional sessions.

    Usage:
        with database.session_scope() as session:
            session.add(row)
            # Commits on successful exit, rolls back on exception
    """

    def __init__(
        self,
        database_url: Optional[str] = None,
        echo: Optional[bool] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.url = database_url or self.settings.database_url
        self.engine: Engine = create_engine(
            self.url,
            echo=self.settings.database_echo if echo is None else echo,
        )

        if self.engine.dialect.name == "sqlite":
            self._ensure_sqlite_dir()
            event.listen(self.engine, "connect", _enable_sqlite_foreign_keys)

        self._session_factory = sessionmaker(bind=self.engine, expire_on_commit=False)
        logger.info("Database initialized", dialect=self.engine.dialect.name)

    def _ensure_sqlite_dir(self) -> None:
        database = self.engine.url.database
        if database and database != ":memory:":
            Path(database).parent.mkdir(parents=True, exist_ok=True)

    def create_tables(self) -> None:
        """Create all tables known to the declarative base."""
        from . import tables  # noqa: F401  (registers mappings)

        Base.metadata.create_all(self.engine)

    def drop_tables(self) -> None:
        Base.metadata.drop_all(self.engine)

    def session(self) -> Session:
        """Get a new session instance."""
        return self._session_factory()

    @contextmanager
    def session_scope(self) -> Generator[Session, None, None]:
        """
        Provide a transactional scope around a series of operations.

        On normal exit the session is committed and closed. On exception it
        is rolled back and closed, and the exception is re-raised.
        """
        session = self.session()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            logger.warning("Transaction rolled back", exc_info=True)
            raise
        finally:
            session.close()

    def dispose(self) -> None:
        self.engine.dispose()
