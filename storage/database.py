"""
Storage - Database.

============================================================
RESPONSIBILITY
============================================================
Manages database connections and sessions.

- Builds the engine from DatabaseConfig
- Provides session and transaction scopes
- Creates the schema for all registered models

============================================================
DESIGN PRINCIPLES
============================================================
- One Database object per process, passed to whoever needs it
- Explicit transaction boundaries
- Hard failures on persistence errors

============================================================
"""

import logging
from contextlib import contextmanager
from typing import Generator, Optional

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from core.config import DatabaseConfig
from storage.models import Base


logger = logging.getLogger("storage.database")


class DatabasePersistenceError(Exception):
    """Raised when database persistence fails."""
    pass


class DatabaseConnectionError(DatabasePersistenceError):
    """Raised when database connection fails."""
    pass


class Database:
    """
    Engine and session factory holder.

    Usage:
        db = Database(config.database)
        db.create_all()
        with db.transaction() as session:
            JobRepository(session).create(...)
    """

    def __init__(self, config: Optional[DatabaseConfig] = None):
        self._config = config or DatabaseConfig()
        self._engine = self._create_engine()
        self._session_factory = sessionmaker(
            bind=self._engine,
            autoflush=False,
            expire_on_commit=False,
        )

    def _create_engine(self) -> Engine:
        url = self._config.url
        logger.info(f"Creating database engine for: {url.split('@')[-1]}")

        if url.startswith("sqlite") and (url.endswith(":memory:") or url == "sqlite://"):
            # A single shared connection keeps the in-memory schema alive
            return create_engine(
                url,
                echo=self._config.echo,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )

        return create_engine(
            url,
            echo=self._config.echo,
            pool_pre_ping=self._config.pool_pre_ping,
        )

    @property
    def engine(self) -> Engine:
        return self._engine

    def session(self) -> Session:
        """
        Get a new session.

        Caller is responsible for committing/closing; prefer
        transaction().
        """
        return self._session_factory()

    @contextmanager
    def transaction(self) -> Generator[Session, None, None]:
        """
        Session scope that commits on success and rolls back on
        any exception.
        """
        session = self.session()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as e:
            logger.error(f"Database transaction failed, rolling back: {e}")
            session.rollback()
            raise DatabasePersistenceError(f"Transaction failed: {e}") from e
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def create_all(self) -> None:
        """Create all tables defined in ORM models."""
        try:
            Base.metadata.create_all(bind=self._engine)
            logger.info("Database tables created successfully")
        except SQLAlchemyError as e:
            logger.error(f"Failed to create database tables: {e}")
            raise DatabasePersistenceError(f"Table creation failed: {e}") from e

    def verify_connection(self) -> bool:
        """
        Verify database connection is working.

        Raises:
            DatabaseConnectionError: if connection fails
        """
        try:
            with self._engine.connect() as conn:
                conn.execute(text("SELECT 1")).fetchone()
            logger.info("Database connection verified successfully")
            return True
        except OperationalError as e:
            logger.error(f"Database connection failed: {e}")
            raise DatabaseConnectionError(f"Cannot connect to database: {e}") from e

    def dispose(self) -> None:
        self._engine.dispose()


__all__ = [
    "Database",
    "DatabasePersistenceError",
    "DatabaseConnectionError",
]
