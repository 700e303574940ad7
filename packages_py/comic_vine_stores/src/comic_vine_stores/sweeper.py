"""
Periodic background sweep shared by every store backend.
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


class PeriodicSweeper:
    """
    Runs ``sweep`` every ``interval_ms`` on the running event loop.

    The task is started lazily by the first store operation (a store may be
    constructed outside of a loop). Sweep failures are logged and swallowed so
    they never take down the host process. An interval of 0 disables it.
    """

    def __init__(
        self,
        name: str,
        interval_ms: int,
        sweep: Callable[[], Awaitable[Any]],
    ) -> None:
        self._name = name
        self._interval_ms = interval_ms
        self._sweep = sweep
        self._task: Optional[asyncio.Task] = None
        self._stopped = False

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def ensure_started(self) -> None:
        """Start the background task if enabled and not already running."""
        if self._stopped or self._interval_ms <= 0 or self._task is not None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._task = loop.create_task(self._run())
        logger.debug(f"{self._name}: cleanup every {self._interval_ms}ms")

    async def _run(self) -> None:
        """Background cleanup loop."""
        while not self._stopped:
            try:
                await asyncio.sleep(self._interval_ms / 1000)
                await self._sweep()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.warning(f"{self._name}: cleanup failed: {e}")

    async def stop(self) -> None:
        """Cancel the background task and wait for it to finish."""
        self._stopped = True
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
