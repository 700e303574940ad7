"""
Paginated reads and batched deletes.
"""
import asyncio
import logging
from typing import Any, Dict, Iterator, List, Sequence, TypeVar

from .executor import ResilientExecutor
from .retry import calculate_backoff_delay
from .errors import DynamoDBStoreError
from .schema import Key

logger = logging.getLogger(__name__)

T = TypeVar("T")

Item = Dict[str, Any]


def chunked(items: Sequence[T], size: int) -> Iterator[Sequence[T]]:
    for start in range(0, len(items), size):
        yield items[start:start + size]


async def query_all(
    executor: ResilientExecutor, table: Any, operation: str, **kwargs: Any
) -> List[Item]:
    """Run a query and follow ``LastEvaluatedKey`` until exhausted."""
    items: List[Item] = []
    while True:
        page = await executor.call(operation, table.query, **kwargs)
        items.extend(page.get("Items", []))
        last_key = page.get("LastEvaluatedKey")
        if not last_key:
            return items
        kwargs["ExclusiveStartKey"] = last_key


async def count_all(
    executor: ResilientExecutor, table: Any, operation: str, **kwargs: Any
) -> int:
    """Run a ``Select=COUNT`` query across every page."""
    total = 0
    kwargs["Select"] = "COUNT"
    while True:
        page = await executor.call(operation, table.query, **kwargs)
        total += int(page.get("Count", 0))
        last_key = page.get("LastEvaluatedKey")
        if not last_key:
            return total
        kwargs["ExclusiveStartKey"] = last_key


async def scan_all(
    executor: ResilientExecutor, table: Any, operation: str, **kwargs: Any
) -> List[Item]:
    """Run a scan and follow ``LastEvaluatedKey`` until exhausted."""
    items: List[Item] = []
    while True:
        page = await executor.call(operation, table.scan, **kwargs)
        items.extend(page.get("Items", []))
        last_key = page.get("LastEvaluatedKey")
        if not last_key:
            return items
        kwargs["ExclusiveStartKey"] = last_key


async def batch_delete(
    executor: ResilientExecutor,
    table: Any,
    keys: Sequence[Key],
    batch_size: int,
    operation: str,
    max_retries: int = 3,
    retry_delay_ms: int = 100,
) -> int:
    """
    Delete ``keys`` with BatchWriteItem, ``batch_size`` keys per request.

    Unprocessed keys are resubmitted with backoff. Returns the number of keys
    deleted.
    """
    client = table.meta.client
    deleted = 0
    for chunk in chunked(list(keys), batch_size):
        pending = [{"DeleteRequest": {"Key": key}} for key in chunk]
        attempt = 0
        while pending:
            response = await executor.call(
                operation,
                client.batch_write_item,
                RequestItems={table.name: pending},
            )
            unprocessed = response.get("UnprocessedItems", {}).get(table.name, [])
            deleted += len(pending) - len(unprocessed)
            pending = unprocessed
            if not pending:
                break
            if attempt >= max_retries:
                raise DynamoDBStoreError(
                    f"{len(pending)} items left unprocessed after {attempt + 1} attempts",
                    operation=operation,
                )
            await asyncio.sleep(calculate_backoff_delay(attempt, retry_delay_ms) / 1000)
            attempt += 1
    if deleted:
        logger.debug(f"{operation}: deleted {deleted} items")
    return deleted
