"""
Database Session Factory
Creates SQLAlchemy sessions wired to a TransactionManager
"""
from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from aftercommit.infrastructure.database.transaction_manager import TransactionManager
from aftercommit.infrastructure.observability.logger import get_logger

logger = get_logger(__name__)


def _enable_sqlite_savepoints(engine: Engine) -> None:
    """Let SQLAlchemy emit BEGIN itself so pysqlite SAVEPOINTs work."""

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")


class SessionFactory:
    """
    Factory for creating database sessions.

    Manages the engine and session maker. SQLite engines get explicit
    BEGIN handling (required for SAVEPOINT); in-memory SQLite additionally
    shares one connection across the whole process.
    """

    def __init__(self, database_url: str, echo: bool = False) -> None:
        """
        Initialize session factory with database connection.

        Args:
            database_url: SQLAlchemy URL
            echo: Whether to log SQL statements (debug mode)
        """
        self.database_url = database_url
        self.echo = echo

        url = make_url(database_url)
        engine_kwargs: dict = {"echo": echo}
        if url.get_backend_name() == "sqlite":
            engine_kwargs["connect_args"] = {"check_same_thread": False}
            if url.database in (None, "", ":memory:"):
                engine_kwargs["poolclass"] = StaticPool
        else:
            engine_kwargs["pool_pre_ping"] = True

        self.engine: Engine = create_engine(url, **engine_kwargs)
        if url.get_backend_name() == "sqlite":
            _enable_sqlite_savepoints(self.engine)

        self.session_factory: sessionmaker[Session] = sessionmaker(
            self.engine,
            expire_on_commit=False,  # Don't expire objects after commit
            autoflush=False,
        )

        logger.info("Database session factory initialized", backend=url.get_backend_name())

    def create_session(self) -> Session:
        """
        Create a new session with its TransactionManager attached.

        Returns:
            New Session instance
        """
        session = self.session_factory()
        TransactionManager(session)
        return session

    @contextmanager
    def get_session(self) -> Iterator[Session]:
        """
        Context manager for sessions.

        Yields:
            Session instance

        Usage:
            with factory.get_session() as session:
                TransactionManager.of(session).save(car)
        """
        session = self.create_session()
        try:
            yield session
        except Exception as e:
            session.rollback()
            logger.error("Session error, rolled back", error=str(e))
            raise
        finally:
            session.close()

    def dispose(self) -> None:
        """Close all connections and dispose of the engine."""
        self.engine.dispose()
        logger.info("Database engine disposed")
