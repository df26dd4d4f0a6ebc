"""
Database configuration and session management for the local offline store.

The offline store is a SQLite file on the client (or ``sqlite:///:memory:``
in tests). Configuration is loaded from the environment with a sensible
default and exposes a commit/rollback session context.
"""

import os
import logging
from typing import Optional, Dict, Any
from contextlib import contextmanager

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool
from sqlalchemy.exc import SQLAlchemyError

from .models import create_all_tables

logger = logging.getLogger(__name__)


class DatabaseConfig:
    """
    SQLite configuration for the offline store.

    In-memory databases use a StaticPool so that every session sees the same
    connection and therefore the same data.
    """

    def __init__(self, database_url: Optional[str] = None, echo: bool = False):
        """
        Initialize database configuration.

        Args:
            database_url: Optional database URL override (defaults to LOCAL_DATABASE_URL)
            echo: Enable SQL query logging for debugging
        """
        self.database_url = database_url or os.getenv(
            'LOCAL_DATABASE_URL', 'sqlite:///railway_offline.db'
        )
        self.echo = echo
        self.engine: Optional[Engine] = None
        self.SessionLocal: Optional[sessionmaker] = None
        self._is_initialized = False
        self.engine_kwargs = self._get_engine_kwargs()

        logger.info(f"Offline store configured at {self.database_url}")

    @property
    def is_memory(self) -> bool:
        return self.database_url in ('sqlite://', 'sqlite:///:memory:')

    def _get_engine_kwargs(self) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {
            'echo': self.echo,
            'connect_args': {
                'check_same_thread': False,
                'timeout': 30,
            },
        }
        if self.is_memory:
            kwargs['poolclass'] = StaticPool
        else:
            kwargs['pool_pre_ping'] = True
        return kwargs

    def initialize(self) -> None:
        """
        Initialize database engine, session factory and tables.

        Raises:
            SQLAlchemyError: If database connection fails
        """
        if self._is_initialized:
            return

        try:
            self.engine = create_engine(self.database_url, **self.engine_kwargs)
            self._setup_event_listeners()

            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))

            self.SessionLocal = sessionmaker(
                autocommit=False,
                autoflush=False,
                bind=self.engine,
                expire_on_commit=False
            )

            create_all_tables(self.engine)

            self._is_initialized = True
            logger.info("Offline store initialized")

        except SQLAlchemyError as e:
            logger.error(f"Failed to initialize offline store: {e}")
            raise

    def _setup_event_listeners(self) -> None:
        is_memory = self.is_memory

        @event.listens_for(self.engine, "connect")
        def set_sqlite_pragma(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            if not is_memory:
                cursor.execute("PRAGMA journal_mode=WAL")
            cursor.close()

    def get_session(self) -> Session:
        if not self._is_initialized:
            self.initialize()
        return self.SessionLocal()

    @contextmanager
    def get_session_context(self):
        """
        Get a database session with automatic cleanup.

        Usage:
            with db_config.get_session_context() as session:
                # Use session here
                pass

        Yields:
            SQLAlchemy session with automatic commit/rollback
        """
        session = self.get_session()
        try:
            yield session
            session.commit()
        except Exception as e:
            session.rollback()
            logger.error(f"Offline store session error: {e}")
            raise
        finally:
            session.close()

    def close(self) -> None:
        """Close database connections and clean up resources."""
        if self.engine:
            self.engine.dispose()
            self._is_initialized = False
            logger.info("Offline store connections closed")


_db_config: Optional[DatabaseConfig] = None


def get_database_config(database_url: Optional[str] = None, echo: bool = False) -> DatabaseConfig:
    """Get or create the global offline store configuration."""
    global _db_config

    if _db_config is None:
        _db_config = DatabaseConfig(database_url=database_url, echo=echo)

    return _db_config
