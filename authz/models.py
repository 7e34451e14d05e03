"""Database tables for the RBAC hierarchy.

This module provides SQLAlchemy models for:
- Items (permissions and roles)
- Parent/child edges between items
- Assignments of items to identities

and the DatabaseManager that owns the engine and transaction scope.
"""
from contextlib import contextmanager
from datetime import datetime
from typing import Optional

from loguru import logger
from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    String,
    Text,
    create_engine,
    event,

)
from sqlalchemy.orm import DeclarativeBase, sessionmaker

from .schemas import Item


class Base(DeclarativeBase):
    pass


class AuthItem(Base):
    """A permission or role."""

    __tablename__ = "auth_item"

    name = Column(String(64), primary_key=True)
    kind = Column(String(16), nullable=False, index=True)
    description = Column(Text, nullable=True)
    rule_name = Column(String(64), nullable=True)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )

    def to_item(self) -> Item:
        return Item.model_validate(self)

    def __repr__(self):
        return f"<AuthItem {self.kind}:{self.name}>"


class AuthItemChild(Base):
    """Edge meaning "holding parent implies holding child"."""

    __tablename__ = "auth_item_child"

    parent = Column(
        String(64),
        ForeignKey("auth_item.name", ondelete="CASCADE", onupdate="CASCADE"),
        primary_key=True,
    )
    child = Column(
        String(64),
        ForeignKey("auth_item.name", ondelete="CASCADE", onupdate="CASCADE"),
        primary_key=True,
        index=True,
    )

    def __repr__(self):
        return f"<AuthItemChild {self.parent} -> {self.child}>"


class AuthAssignment(Base):
    """Direct grant of an item to an identity."""

    __tablename__ = "auth_assignment"

    item_name = Column(
        String(64),
        ForeignKey("auth_item.name", ondelete="CASCADE", onupdate="CASCADE"),
        primary_key=True,
    )
    user_id = Column(String(64), primary_key=True, index=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<AuthAssignment {self.item_name} to {self.user_id}>"


def _configure_sqlite_connection(dbapi_connection, _connection_record) -> None:
    cursor = dbapi_connection.cursor()
    try:
        cursor.execute("PRAGMA foreign_keys=ON")
    finally:
        cursor.close()
    # transactions are opened by _begin_sqlite_transaction instead of the driver
    dbapi_connection.isolation_level = None


def _begin_sqlite_transaction(conn) -> None:
    # writers take the database write lock before their first read, so a
    # validate-then-insert sequence cannot interleave with another writer
    if conn.get_execution_options().get("authz_write"):
        conn.exec_driver_sql("BEGIN IMMEDIATE")
    else:
        conn.exec_driver_sql("BEGIN")


class DatabaseManager:
    """Database connection and transaction scopes for the RBAC tables.

    Administrative transactions are serialized: SQLite opens them with
    ``BEGIN IMMEDIATE``, other databases run them at SERIALIZABLE isolation.
    Read transactions use the default isolation and never block each other.
    """

    def __init__(
        self,
        database_url: str,
        pool_size: int = 5,
        max_overflow: int = 10,
        pool_timeout: int = 30,
        pool_recycle: int = 3600,
        echo: bool = False,
    ):
        """Initialize database connection.

        Args:
            database_url: SQLAlchemy database URL
            pool_size: Connections kept open (ignored for SQLite)
            max_overflow: Extra connections allowed above pool_size
            pool_timeout: Seconds to wait for a free connection
            pool_recycle: Recycle connections after this many seconds
            echo: Echo SQL statements
        """
        self.database_url = database_url
        self.is_sqlite = database_url.startswith("sqlite:")

        if self.is_sqlite:
            self.engine = create_engine(
                database_url,
                echo=echo,
                connect_args={"check_same_thread": False},
            )
            event.listen(self.engine, "connect", _configure_sqlite_connection)
            event.listen(self.engine, "begin", _begin_sqlite_transaction)
            self.write_engine = self.engine.execution_options(authz_write=True)
        else:
            self.engine = create_engine(
                database_url,
                echo=echo,
                pool_size=pool_size,
                max_overflow=max_overflow,
                pool_timeout=pool_timeout,
                pool_recycle=pool_recycle,
                pool_pre_ping=True,
            )
            self.write_engine = self.engine.execution_options(
                isolation_level="SERIALIZABLE"
            )

        self.SessionLocal = sessionmaker(
            autocommit=False,
            autoflush=False,
            bind=self.engine,
            expire_on_commit=False,
        )

    def create_tables(self):
        """Create all RBAC tables."""
        Base.metadata.create_all(bind=self.engine)

    def drop_tables(self):
        """Drop all RBAC tables (use with caution)."""
        Base.metadata.drop_all(bind=self.engine)

    @contextmanager
    def get_session_context(self, write: bool = True):
        """Session scoped to one transaction: commit on success, rollback on error.

        Pass ``write=False`` for read-only work such as access checks.

        Usage:
            with db_manager.get_session_context() as session:
                session.add(obj)
        """
        session = self.SessionLocal(bind=self.write_engine if write else self.engine)
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def dispose(self):
        """Dispose of the connection pool.

        Should be called on application shutdown.
        """
        self.engine.dispose()


_db_manager: Optional[DatabaseManager] = None
_db_manager_lock = None  # Will be initialized on first use


def get_db_manager(
    database_url: Optional[str] = None,
    reset: bool = False,
    create_tables: bool = True,
    **kwargs,
) -> DatabaseManager:
    """Get or create database manager singleton with thread-safe initialization.

    Args:
        database_url: Database URL (falls back to DATABASE_URL)
        reset: Force recreation of the singleton (for testing)
        create_tables: Create missing RBAC tables when the manager is built
        **kwargs: Additional arguments passed to DatabaseManager

    Returns:
        DatabaseManager instance
    """
    global _db_manager, _db_manager_lock

    import threading

    if _db_manager_lock is None:
        _db_manager_lock = threading.Lock()

    with _db_manager_lock:
        if _db_manager is None or reset:
            if _db_manager is not None and reset:
                try:
                    _db_manager.dispose()
                except Exception as e:
                    logger.warning(f"Error disposing old db_manager: {e}")

            if database_url is None:
                from .config import get_settings

                database_url = get_settings(reset=True).database_url
                if not database_url:
                    raise ValueError(
                        "DATABASE_URL not configured. "
                        "Set DATABASE_URL environment variable or pass database_url parameter."
                    )

            _db_manager = DatabaseManager(database_url, **kwargs)
            if create_tables:
                _db_manager.create_tables()

    return _db_manager


def dispose_db_manager():
    """Dispose of the database manager singleton."""
    global _db_manager
    if _db_manager is not None:
        try:
            _db_manager.dispose()
        except Exception as e:
            logger.error(f"Error disposing db_manager: {e}")
        finally:
            _db_manager = None
