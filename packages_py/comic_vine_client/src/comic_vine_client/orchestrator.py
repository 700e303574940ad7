"""
Store-backed request orchestration.

Every request is fingerprinted, answered from the cache when possible, shared
with an identical in-flight request when one exists, and admitted through the
rate limit store before it reaches the transport.
"""
import asyncio
import logging
import time
from dataclasses import dataclass
from typing import (
    Any,
    AsyncIterator,
    Awaitable,
    Callable,
    Dict,
    Iterable,
    List,
    Mapping,
    Optional,
    Protocol,
    Tuple,
)

from comic_vine_stores import (
    AdaptiveRateLimitStore,
    CacheStore,
    DedupeStore,
    DedupeTimeoutError,
    ItemSizeError,
    RateLimitStore,
    RequestPriority,
    StoreError,
    hash_request,
)

from .errors import RateLimitExceededError
from .options import ClientOptionsInput, load_options
from .transport import HttpxTransport
from .url_builder import ComicVineUrlBuilder

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 100


class Transport(Protocol):
    async def get(self, url: str) -> Any:
        ...


@dataclass
class Page:
    """One page of a list request."""

    limit: int
    offset: int
    number_of_page_results: int
    number_of_total_results: int
    data: List[Any]


class StoreBackedClient:
    """
    Comic Vine client that routes requests through cache, dedupe and rate
    limit stores. Every store is optional.

    Stores are owned by the caller and are not closed by the client. The
    transport is closed only when the client created it.

    Example:
        async with StoreBackedClient(
            "api-key",
            cache=MemoryCacheStore(),
            dedupe=MemoryDedupeStore(),
            rate_limit=MemoryRateLimitStore(),
        ) as client:
            issue = await client.retrieve("issue", 719442)
    """

    def __init__(
        self,
        api_key: str,
        transport: Optional[Transport] = None,
        cache: Optional[CacheStore] = None,
        dedupe: Optional[DedupeStore] = None,
        rate_limit: Optional[RateLimitStore] = None,
        options: ClientOptionsInput = None,
    ) -> None:
        """
        Raises:
            OptionsValidationError: Invalid options
        """
        self._options = load_options(options)
        self._transport = transport if transport is not None else HttpxTransport()
        self._owns_transport = transport is None
        self._cache = cache
        self._dedupe = dedupe
        self._rate_limit = rate_limit
        self._rate_locks: Dict[str, asyncio.Lock] = {}
        self._url_builder = ComicVineUrlBuilder(api_key, self._options.base_url)

    @property
    def options(self):
        return self._options

    @property
    def url_builder(self) -> ComicVineUrlBuilder:
        return self._url_builder

    async def request(
        self,
        url: str,
        resource: Optional[str] = None,
        priority: Optional[RequestPriority] = None,
        cache_ttl_seconds: Optional[int] = None,
    ) -> Any:
        """
        Perform a GET through the stores.

        Args:
            url: Fully-qualified request URL
            resource: Rate limit bucket. Derived from the URL when omitted
            priority: Traffic class for adaptive rate limit stores
            cache_ttl_seconds: Overrides default_cache_ttl_seconds

        Raises:
            RateLimitExceededError: No budget and waiting is disabled or too long
            ComicVineError: Upstream failures
        """
        fingerprint = hash_request(url)

        if self._cache is not None:
            cached = await self._cache.get(fingerprint)
            if cached is not None:
                logger.debug(f"StoreBackedClient: cache hit {fingerprint[:12]}")
                return cached

        owns_job = False
        if self._dedupe is not None:
            shared = await self._wait_for_shared(fingerprint)
            if shared is not None:
                return shared
            registration = await self._dedupe.try_register(fingerprint)
            owns_job = registration.created
            if not owns_job:
                shared = await self._wait_for_shared(fingerprint)
                if shared is not None:
                    return shared
                logger.debug(
                    f"StoreBackedClient: shared job {fingerprint[:12]} gave no result, requesting directly"
                )

        try:
            resource = resource or self._url_builder.resource_name(url)
            priority = RequestPriority(priority or self._options.default_priority)
            await self._acquire(resource, priority)
            response = await self._transport.get(url)
        except BaseException as e:
            if owns_job:
                await self._resolve_job(fingerprint, self._dedupe.fail, e)
            raise

        if self._cache is not None:
            ttl = self._options.default_cache_ttl_seconds if cache_ttl_seconds is None else cache_ttl_seconds
            await self._store(fingerprint, response, ttl)

        if owns_job:
            await self._resolve_job(fingerprint, self._dedupe.complete, response)
        return response

    async def _wait_for_shared(self, fingerprint: str) -> Optional[Any]:
        try:
            return await self._dedupe.wait_for(fingerprint)
        except DedupeTimeoutError:
            logger.warning(
                f"StoreBackedClient: gave up waiting on {fingerprint[:12]}, requesting directly"
            )
            return None

    async def _store(self, fingerprint: str, response: Any, ttl_seconds: int) -> None:
        try:
            await self._cache.set(fingerprint, response, ttl_seconds)
        except ItemSizeError as e:
            logger.debug(f"StoreBackedClient: response too large to cache ({e.size} bytes)")
        except StoreError as e:
            logger.warning(f"StoreBackedClient: failed to cache {fingerprint[:12]}: {e}")

    def _priority_args(self, resource: str, priority: RequestPriority) -> Tuple[Any, ...]:
        if isinstance(self._rate_limit, AdaptiveRateLimitStore):
            return (resource, priority)
        return (resource,)

    async def _acquire(self, resource: str, priority: RequestPriority) -> None:
        """
        Consume one unit of rate limit budget, waiting for it when allowed.

        The check and the record happen under a per-resource lock so concurrent
        requests in this process cannot all pass the same check.
        """
        if self._rate_limit is None:
            return
        args = self._priority_args(resource, priority)
        lock = self._rate_locks.get(resource)
        if lock is None:
            lock = self._rate_locks[resource] = asyncio.Lock()
        started = time.monotonic()
        while True:
            async with lock:
                if await self._rate_limit.can_proceed(*args):
                    await self._rate_limit.record(*args)
                    return
                wait_ms = await self._rate_limit.get_wait_time(*args)
            waited_ms = int((time.monotonic() - started) * 1000)
            if (
                self._options.throw_on_rate_limit
                or waited_ms + wait_ms > self._options.max_wait_time_ms
            ):
                raise RateLimitExceededError(resource, wait_ms)
            logger.debug(f"StoreBackedClient: waiting {wait_ms}ms for {resource} budget")
            await asyncio.sleep(wait_ms / 1000)

    async def _resolve_job(self, fingerprint: str, resolve: Callable[[str, Any], Awaitable[None]], value: Any) -> None:
        """Complete or fail the owned dedupe job without masking the request outcome."""
        try:
            await resolve(fingerprint, value)
        except StoreError as e:
            logger.warning(f"StoreBackedClient: failed to resolve job {fingerprint[:12]}: {e}")

    async def retrieve(
        self,
        resource_type: str,
        id: int,
        field_list: Optional[Iterable[str]] = None,
        priority: Optional[RequestPriority] = None,
    ) -> Any:
        """Fetch a single resource and return its ``results``."""
        url = self._url_builder.retrieve(resource_type, id, field_list)
        response = await self.request(url, resource=resource_type, priority=priority)
        return response.get("results")

    async def list(
        self,
        resource_type: str,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
        sort: Optional[Tuple[str, str]] = None,
        field_list: Optional[Iterable[str]] = None,
        filter: Optional[Mapping[str, Any]] = None,
        priority: Optional[RequestPriority] = None,
    ) -> Page:
        """Fetch one page of resources."""
        url = self._url_builder.list(resource_type, limit, offset, sort, field_list, filter)
        response = await self.request(url, resource=resource_type, priority=priority)
        return Page(
            limit=_field(response, "limit"),
            offset=_field(response, "offset"),
            number_of_page_results=_field(response, "number_of_page_results"),
            number_of_total_results=_field(response, "number_of_total_results"),
            data=response.get("results") or [],
        )

    async def iterate(
        self,
        resource_type: str,
        limit: int = DEFAULT_PAGE_SIZE,
        offset: int = 0,
        **kwargs: Any,
    ) -> AsyncIterator[Any]:
        """
        Yield every resource across pages, starting at ``offset``.

        Extra keyword arguments are passed to ``list``.
        """
        while True:
            page = await self.list(resource_type, limit=limit, offset=offset, **kwargs)
            for item in page.data:
                yield item
            offset += len(page.data)
            if not page.data or offset >= page.number_of_total_results:
                return

    async def close(self) -> None:
        if self._owns_transport:
            await self._transport.close()

    async def __aenter__(self) -> "StoreBackedClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()


def _field(response: Dict[str, Any], name: str) -> int:
    """Read a paging field in either snake_case or camelCase form."""
    if name in response:
        return int(response[name] or 0)
    head, *rest = name.split("_")
    camel = head + "".join(part.capitalize() for part in rest)
    return int(response.get(camel) or 0)
