"""
Process-wide cache of aggregated provider tools.

Tools are loaded once and reused across requests. Concurrent first-time
callers share one in-flight load. Call ``invalidate()`` to release every
provider connection and pick up configuration changes on the next ``get()``.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from toolhub.config import get_providers
from toolhub.core.manager import AggregationResult, load_all, log_outcomes
from toolhub.core.tools import ToolSpec

logger = logging.getLogger(__name__)

Loader = Callable[[], Awaitable[AggregationResult]]


async def _load_configured_providers() -> AggregationResult:
    return await load_all(get_providers())


class CapabilityRegistry:
    """Caches one AggregationResult for the life of the process"""

    def __init__(self, loader: Optional[Loader] = None) -> None:
        self._loader = loader or _load_configured_providers
        self._result: Optional[AggregationResult] = None
        self._pending: Optional[asyncio.Task] = None
        self.load_count = 0

    @property
    def is_loaded(self) -> bool:
        return self._result is not None

    async def _compute(self) -> AggregationResult:
        self.load_count += 1
        try:
            result = await self._loader()
            log_outcomes(result)
            self._result = result
            return result
        finally:
            self._pending = None

    async def _ensure(self) -> AggregationResult:
        if self._result is not None:
            return self._result
        if self._pending is None:
            self._pending = asyncio.create_task(self._compute())
        # A caller giving up must not cancel the load other callers share
        return await asyncio.shield(self._pending)

    async def get(self) -> dict[str, ToolSpec]:
        """Get provider tools (cached)"""
        result = await self._ensure()
        return result.capabilities

    async def get_with_errors(self) -> AggregationResult:
        """Get provider tools together with per-provider errors (cached)"""
        return await self._ensure()

    async def invalidate(self) -> None:
        """Release every cached provider connection and clear the cache.

        An in-flight load is allowed to finish first so its connections are
        released too.
        """
        pending = self._pending
        if pending is not None:
            await asyncio.wait([pending])

        result, self._result = self._result, None
        if result is not None:
            logger.info(f"Releasing {len(result.connections)} provider connection(s)")
            await result.release()


registry = CapabilityRegistry()


async def get_tools() -> dict[str, ToolSpec]:
    return await registry.get()


async def get_tools_with_errors() -> AggregationResult:
    return await registry.get_with_errors()


async def clear_tools_cache() -> None:
    await registry.invalidate()
