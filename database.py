"""
Database access for the local product mirror.

One DatabaseManager owns the engine and a thread-scoped session registry.
Request handlers and the creation service share the module-level manager
through ``db_session_scope``; ``init_database`` swaps it for a new URL.
"""

import os
import logging
from contextlib import contextmanager
from typing import Any, Dict, Generator, Optional

from sqlalchemy import create_engine, event, inspect, select, func
from sqlalchemy.orm import sessionmaker, scoped_session, Session
from sqlalchemy.pool import StaticPool

from models import Base

logger = logging.getLogger(__name__)

DEFAULT_SQLITE_PATH = os.path.join(os.path.dirname(os.path.abspath(__file__)), 'database.db')


def _masked(database_url: str) -> str:
    """Hide credentials in a database URL before logging it."""
    if '@' not in database_url:
        return database_url
    scheme = database_url.split('://', 1)[0]
    return f"{scheme}://***@{database_url.rsplit('@', 1)[1]}"


class DatabaseManager:
    """Engine and session lifecycle for one database URL."""

    def __init__(self, database_url: Optional[str] = None, echo: bool = False):
        self.database_url = database_url or os.getenv('DATABASE_URL') or f"sqlite:///{DEFAULT_SQLITE_PATH}"
        self.echo = echo
        self.engine = None
        self._sessions = None

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith('sqlite')

    def _engine_options(self) -> Dict[str, Any]:
        if self.is_sqlite:
            options = {'connect_args': {'check_same_thread': False, 'timeout': 30}}
            if ':memory:' in self.database_url:
                # One shared connection keeps in-memory databases alive across sessions
                options['poolclass'] = StaticPool
            return options
        return {
            'pool_size': 10,
            'max_overflow': 20,
            'pool_pre_ping': True,
            'pool_recycle': 3600,
        }

    def _ensure_sqlite_directory(self) -> None:
        path = self.database_url.replace('sqlite:///', '', 1)
        if ':memory:' in path:
            return
        directory = os.path.dirname(path)
        if directory and not os.path.exists(directory):
            os.makedirs(directory, exist_ok=True)
            logger.info(f"Created database directory: {directory}")

    def initialize(self, create_tables: bool = False) -> None:
        """Create the engine and session registry, optionally creating tables."""
        if self.is_sqlite:
            self._ensure_sqlite_directory()

        self.engine = create_engine(self.database_url, echo=self.echo, **self._engine_options())

        if self.is_sqlite:
            @event.listens_for(self.engine, "connect")
            def enable_foreign_keys(dbapi_connection, connection_record):
                cursor = dbapi_connection.cursor()
                cursor.execute("PRAGMA foreign_keys=ON")
                cursor.close()

        self._sessions = scoped_session(sessionmaker(
            bind=self.engine,
            autoflush=False,
            expire_on_commit=False,
        ))

        if create_tables:
            self.create_tables()

        logger.info(f"Database ready: {_masked(self.database_url)}")

    def create_tables(self) -> None:
        Base.metadata.create_all(self.engine)
        logger.info("Mirror tables created")

    def drop_tables(self) -> None:
        """Drop the mirror tables. Use with caution!"""
        Base.metadata.drop_all(self.engine)
        logger.warning("Mirror tables dropped")

    def get_session(self) -> Session:
        if self._sessions is None:
            raise RuntimeError("Database not initialized. Call initialize() first.")
        return self._sessions()

    @contextmanager
    def session_scope(self) -> Generator[Session, None, None]:
        """Commit on success, roll back and re-raise on any error."""
        session = self.get_session()
        try:
            yield session
            session.commit()
        except Exception as e:
            session.rollback()
            logger.error(f"Database session error: {e}")
            raise
        finally:
            session.close()

    def close(self) -> None:
        if self._sessions is not None:
            self._sessions.remove()
        if self.engine is not None:
            self.engine.dispose()
            logger.info("Database connections closed")

    def health_check(self) -> Dict[str, Any]:
        """Run ``SELECT 1`` and report the outcome instead of raising."""
        try:
            with self.session_scope() as session:
                ok = session.execute(select(1)).scalar() == 1
        except Exception as e:
            logger.error(f"Database health check failed: {e}")
            return {'status': 'unhealthy', 'error': str(e)}

        return {
            'status': 'healthy',
            'database_url': _masked(self.database_url),
            'connection_test': ok,
        }

    def get_table_stats(self) -> Dict[str, Any]:
        """Row count per mirror table, or ``'missing'`` for tables not created yet."""
        existing = set(inspect(self.engine).get_table_names())
        stats: Dict[str, Any] = {}
        with self.session_scope() as session:
            for table in Base.metadata.sorted_tables:
                if table.name in existing:
                    stats[table.name] = session.execute(select(func.count()).select_from(table)).scalar()
                else:
                    stats[table.name] = 'missing'
        return stats


db_manager = DatabaseManager()


def init_database(database_url: Optional[str] = None, create_tables: bool = True,
                  echo: bool = False) -> DatabaseManager:
    """(Re)initialize the module-level manager, replacing it when a URL is given."""
    global db_manager
    if database_url:
        db_manager.close()
        db_manager = DatabaseManager(database_url, echo=echo)
    db_manager.initialize(create_tables)
    return db_manager


@contextmanager
def db_session_scope() -> Generator[Session, None, None]:
    with db_manager.session_scope() as session:
        yield session


def close_database() -> None:
    db_manager.close()


def database_health_check() -> Dict[str, Any]:
    return db_manager.health_check()


__all__ = [
    'DatabaseManager',
    'db_manager',
    'init_database',
    'db_session_scope',
    'close_database',
    'database_health_check',
]
