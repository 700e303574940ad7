"""
SQLite connection management.

Wraps an async SQLAlchemy engine (aiosqlite driver) and creates the store
tables on first use.
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine
from sqlalchemy.pool import StaticPool

from .schema import metadata

logger = logging.getLogger(__name__)

MEMORY_PATH = ":memory:"


class SQLiteDatabase:
    """
    Manages the engine lifecycle for one SQLite file.

    An engine passed in by the caller is never disposed by this class. A
    ``:memory:`` database uses a single shared connection so every store
    bound to it sees the same tables.
    """

    def __init__(
        self,
        path: str = MEMORY_PATH,
        engine: Optional[AsyncEngine] = None,
        busy_timeout_ms: int = 5000,
        echo: bool = False,
    ) -> None:
        """
        Initialize database manager.

        Args:
            path: Database file path, or ``:memory:``
            engine: Existing async engine to reuse instead of creating one
            busy_timeout_ms: How long writers wait for the file lock
            echo: Log every statement
        """
        self._path = path
        self._engine = engine
        self._owns_engine = engine is None
        self._busy_timeout_ms = busy_timeout_ms
        self._echo = echo
        self._initialized = False
        self._init_lock: Optional[asyncio.Lock] = None
        self._memory_lock: Optional[asyncio.Lock] = None

    @property
    def path(self) -> str:
        return self._path

    @property
    def url(self) -> str:
        return f"sqlite+aiosqlite:///{self._path}"

    @property
    def owns_engine(self) -> bool:
        return self._owns_engine

    @property
    def engine(self) -> AsyncEngine:
        """Get or create async engine."""
        if self._engine is None:
            kwargs = {"echo": self._echo}
            if self._path == MEMORY_PATH:
                kwargs["poolclass"] = StaticPool
            self._engine = create_async_engine(
                self.url,
                connect_args={"timeout": self._busy_timeout_ms / 1000},
                **kwargs,
            )
            if self._path != MEMORY_PATH:
                self._enable_wal(self._engine)
        return self._engine

    @staticmethod
    def _enable_wal(engine: AsyncEngine) -> None:
        @event.listens_for(engine.sync_engine, "connect")
        def _set_pragmas(dbapi_connection, connection_record) -> None:
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA synchronous=NORMAL")
            cursor.close()

    async def initialize(self) -> None:
        """Create the store tables if they do not exist yet."""
        if self._initialized:
            return
        if self._init_lock is None:
            self._init_lock = asyncio.Lock()
        async with self._init_lock:
            if self._initialized:
                return
            async with self.engine.begin() as conn:
                await conn.run_sync(metadata.create_all)
            self._initialized = True
            logger.debug(f"SQLiteDatabase: tables ready at {self._path}")

    @asynccontextmanager
    async def transaction(self) -> AsyncGenerator[AsyncConnection, None]:
        """
        Connection inside a transaction that commits on exit.

        Usage:
            async with database.transaction() as conn:
                await conn.execute(delete(cache_table))
        """
        await self.initialize()
        if self._path != MEMORY_PATH:
            async with self.engine.begin() as conn:
                yield conn
            return

        # One shared connection: transactions must not interleave
        if self._memory_lock is None:
            self._memory_lock = asyncio.Lock()
        async with self._memory_lock:
            async with self.engine.begin() as conn:
                yield conn

    async def dispose(self) -> None:
        """Dispose the engine if this manager created it."""
        if self._engine is not None and self._owns_engine:
            await self._engine.dispose()
            self._engine = None
            self._initialized = False


def create_database(path: str = MEMORY_PATH, **kwargs) -> SQLiteDatabase:
    """Create a new SQLiteDatabase instance"""
    return SQLiteDatabase(path, **kwargs)
