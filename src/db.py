import os
import sys
import asyncio
import contextlib
from typing import Optional, AsyncGenerator, Dict

from sqlalchemy import URL, text, event
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import AsyncAdaptedQueuePool, StaticPool

import traceback
import logging
LOGGER = logging.getLogger(__name__)

from models import Base
from config import database_url


def is_sqlite(url: str | URL) -> bool:
    return make_url(url).get_backend_name() == "sqlite"


def enable_sqlite_foreign_keys(engine: AsyncEngine) -> None:
    """SQLite ships with foreign keys off, turn them on for every new connection."""
    @event.listens_for(engine.sync_engine, "connect")
    def receive_connect(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def create_engine_for(url: str | URL) -> AsyncEngine:
    if is_sqlite(url):
        engine = create_async_engine(url, poolclass=StaticPool, echo=False)
        enable_sqlite_foreign_keys(engine)
        return engine

    return create_async_engine(
        url,
        poolclass=AsyncAdaptedQueuePool,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,              # Validate connections before use
        pool_recycle=3600,
        pool_timeout=30,
        echo=False,
        connect_args={
            "server_settings": {
                "application_name": f"lastyear_pid_{os.getpid()}",
                "jit": "off"
            },
            "command_timeout": 60,
        }
    )


class DatabaseManager:
    """Process-local singleton database manager with proper connection handling"""

    _instances: Dict[int, 'DatabaseManager'] = {}  # keyed by process ID

    def __new__(cls) -> 'DatabaseManager':
        pid = os.getpid()
        if pid not in cls._instances:
            instance = super().__new__(cls)
            instance._engine: Optional[AsyncEngine] = None
            instance._session_factory: Optional[async_sessionmaker] = None
            instance._initialized: bool = False
            cls._instances[pid] = instance
        return cls._instances[pid]

    def create_database_url(self) -> str | URL:
        url = database_url()
        LOGGER.info(f"Using database '{make_url(url).database}' (PID: {os.getpid()}).")
        return url

    async def initialize(self) -> None:
        """Initialize database engine and session factory"""
        if self._initialized:
            LOGGER.debug(f"Database already initialized for PID {os.getpid()}")
            return

        LOGGER.info(f"Initializing DB engine for PID {os.getpid()}")
        try:
            url = self.create_database_url()
            self._engine = create_engine_for(url)

            async with self._engine.begin() as conn:
                await conn.execute(text("SELECT 1"))
                LOGGER.info(f"Database connection test successful (PID: {os.getpid()})")

            self._session_factory = async_sessionmaker(
                bind=self._engine,
                class_=AsyncSession,
                expire_on_commit=False,          # Keep objects usable after commit
                autoflush=True,
            )

            self._initialized = True
            LOGGER.info(f"Database engine and session factory initialized (PID: {os.getpid()})")

        except Exception as e:
            LOGGER.error(f"Could not initialize database (PID: {os.getpid()}): {traceback.format_exc()}")
            await self.cleanup()
            raise RuntimeError(f"Database initialization failed: {str(e)}") from e

    @contextlib.asynccontextmanager
    async def get_session(self) -> AsyncGenerator[AsyncSession, None]:
        """Context manager for database sessions, commits on success and rolls back on error"""
        if not self._initialized:
            LOGGER.info(f"DB not initialized yet for PID {os.getpid()}, doing that now.")
            await self.initialize()

        session = self._session_factory()
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            LOGGER.error(f"Session error, rolling back (PID: {os.getpid()}): {traceback.format_exc()}")
            raise
        finally:
            await session.close()

    async def get_engine(self) -> AsyncEngine:
        if not self._initialized:
            LOGGER.info(f"DB not initialized yet for PID {os.getpid()}, doing that now.")
            await self.initialize()
        return self._engine

    async def cleanup(self) -> None:
        """Cleanup database resources for this process"""
        if self._engine:
            await self._engine.dispose()
            LOGGER.info(f"Database engine disposed (PID: {os.getpid()})")

        self._engine = None
        self._session_factory = None
        self._initialized = False

        pid = os.getpid()
        if pid in self._instances:
            del self._instances[pid]

    async def create_tables_with_alembic(self) -> None:
        """Create tables using Alembic migrations instead of direct creation"""
        import subprocess

        try:
            result = subprocess.run([
                sys.executable, "-m", "alembic", "upgrade", "head"
            ], check=True, capture_output=True, text=True)
            LOGGER.info(f"Alembic upgrade completed: {result.stdout}")
        except subprocess.CalledProcessError as e:
            LOGGER.error(f"Alembic upgrade failed: {e.stderr}")
            raise

    async def setup_tables(self) -> None:
        """Setup database tables, migrations for Postgres, metadata for SQLite"""
        engine = await self.get_engine()

        if engine.dialect.name == "sqlite":
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        else:
            await self.create_tables_with_alembic()

        LOGGER.info(f"Database setup completed (PID: {os.getpid()})")

    @classmethod
    async def cleanup_all_instances(cls) -> None:
        """Cleanup all database instances across all processes (for test cleanup)"""
        for pid, instance in list(cls._instances.items()):
            await instance.cleanup()
        cls._instances.clear()

# Global instance getter
_db_manager = None

def get_db_manager():
    global _db_manager
    if _db_manager is None:
        _db_manager = DatabaseManager()
    return _db_manager

def get_session():
    """Get session context manager"""
    return get_db_manager().get_session()


if __name__ == "__main__":
    async def main():
        if "-t" in sys.argv or "--test" in sys.argv:
            os.environ["TEST_MODE"] = "true"

        LOGGER.info("Setting up tables.")
        try:
            await get_db_manager().setup_tables()
        finally:
            await get_db_manager().cleanup()

    asyncio.run(main())
