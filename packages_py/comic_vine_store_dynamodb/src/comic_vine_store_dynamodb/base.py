"""
Lifecycle shared by the DynamoDB stores.
"""
import logging
from typing import Any, List, Optional

from comic_vine_stores import PeriodicSweeper, StoreDestroyedError

from . import schema
from .batch import batch_delete, query_all, scan_all
from .circuit_breaker import CircuitBreakerStats
from .client import close_table, create_table
from .config import DynamoDBStoreConfigInput, merge_store_config
from .executor import ResilientExecutor
from .monitoring import StoreMonitor
from .ttl import now_seconds

logger = logging.getLogger(__name__)


class DynamoDBStoreBase:
    """
    Holds the table, the resilient executor and the periodic sweep.

    A table passed in by the caller is never closed by the store.
    """

    store_name = "DynamoDBStore"
    entity_type = ""

    def __init__(
        self,
        config: DynamoDBStoreConfigInput = None,
        table: Optional[Any] = None,
        monitor: Optional[StoreMonitor] = None,
        executor: Optional[ResilientExecutor] = None,
    ) -> None:
        """
        Args:
            config: DynamoDBStoreConfig or a mapping of its fields
            table: Existing boto3 Table (or compatible object) to use
            monitor: Shared StoreMonitor receiving operation metrics
            executor: Shared ResilientExecutor, so several stores can share
                one circuit breaker
        """
        self._config = merge_store_config(config)
        self._table = table if table is not None else create_table(self._config)
        self._owns_table = table is None
        self._monitor = monitor
        self._executor = executor or ResilientExecutor(self._config, monitor=monitor)
        self._sweeper = PeriodicSweeper(
            self.store_name, self._config.cleanup_interval_ms, self.cleanup
        )
        self._closed = False

    @property
    def config(self):
        return self._config

    @property
    def executor(self) -> ResilientExecutor:
        return self._executor

    def get_circuit_breaker_stats(self) -> CircuitBreakerStats:
        return self._executor.get_circuit_breaker_stats()

    def _ensure_open(self, operation: str) -> None:
        if self._closed:
            raise StoreDestroyedError(self.store_name, operation)
        self._sweeper.ensure_started()

    async def _call(self, operation: str, method: str, **kwargs: Any) -> Any:
        return await self._executor.call(
            f"{self.entity_type.lower()}.{operation}", getattr(self._table, method), **kwargs
        )

    async def _delete_keys(self, keys: List[schema.Key], operation: str) -> int:
        return await batch_delete(
            self._executor,
            self._table,
            keys,
            self._config.batch_size,
            f"{self.entity_type.lower()}.{operation}",
            max_retries=self._config.max_retries,
            retry_delay_ms=self._config.retry_delay_ms,
        )

    async def _delete_expired(self) -> int:
        """Delete rows of this entity type whose TTL has passed, found via GSI1."""
        items = await query_all(
            self._executor,
            self._table,
            f"{self.entity_type.lower()}.cleanup",
            IndexName=schema.GSI1,
            KeyConditionExpression="#gpk = :gpk AND #gsk < :upper",
            ExpressionAttributeNames={"#gpk": schema.GSI1PK, "#gsk": schema.GSI1SK},
            ExpressionAttributeValues={
                ":gpk": f"{schema.EXPIRES}#{self.entity_type}",
                ":upper": schema.expiration_index_upper_bound(now_seconds()),
            },
        )
        return await self._delete_keys([schema.item_key(i) for i in items], "cleanup")

    async def _delete_entity_type(self) -> int:
        """Delete every row of this entity type."""
        items = await scan_all(
            self._executor,
            self._table,
            f"{self.entity_type.lower()}.clear",
            FilterExpression="begins_with(#pk, :prefix)",
            ExpressionAttributeNames={"#pk": schema.PK},
            ExpressionAttributeValues={":prefix": f"{self.entity_type}#"},
            ProjectionExpression="#pk, SK",
        )
        return await self._delete_keys([schema.item_key(i) for i in items], "clear")

    async def cleanup(self) -> int:
        """Delete expired rows of this store's entity type."""
        return await self._delete_expired()

    async def _on_close(self) -> None:
        pass

    async def close(self) -> None:
        """Stop the sweep and release the table if this store created it."""
        if self._closed:
            return
        self._closed = True
        await self._sweeper.stop()
        await self._on_close()
        if self._owns_table:
            try:
                close_table(self._table)
            except Exception as e:
                logger.warning(f"{self.store_name}: failed to close table client: {e}")
