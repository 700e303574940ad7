"""
Lifecycle shared by the SQLite stores.
"""
import logging
from typing import Optional

from comic_vine_stores import PeriodicSweeper, StoreDestroyedError

from .database import MEMORY_PATH, SQLiteDatabase

logger = logging.getLogger(__name__)


class SQLiteStoreBase:
    """
    Owns (or borrows) a SQLiteDatabase and runs the periodic sweep.

    Subclasses implement ``cleanup()``.
    """

    store_name = "SQLiteStore"

    def __init__(
        self,
        path: str = MEMORY_PATH,
        database: Optional[SQLiteDatabase] = None,
        cleanup_interval_ms: int = 300_000,
    ) -> None:
        self._db = database or SQLiteDatabase(path)
        self._owns_database = database is None
        self._sweeper = PeriodicSweeper(self.store_name, cleanup_interval_ms, self.cleanup)
        self._closed = False

    @property
    def database(self) -> SQLiteDatabase:
        return self._db

    def _ensure_open(self, operation: str) -> None:
        if self._closed:
            raise StoreDestroyedError(self.store_name, operation)
        self._sweeper.ensure_started()

    async def cleanup(self) -> int:
        raise NotImplementedError

    async def _on_close(self) -> None:
        """Hook for subclasses that hold in-process state."""
        pass

    async def close(self) -> None:
        """Stop the sweep and dispose the database if this store created it."""
        if self._closed:
            return
        self._closed = True
        await self._sweeper.stop()
        await self._on_close()
        if self._owns_database:
            try:
                await self._db.dispose()
            except Exception as e:
                logger.warning(f"{self.store_name}: failed to dispose database: {e}")
