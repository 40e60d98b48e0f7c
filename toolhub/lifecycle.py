"""Process shutdown handling for the capability cache.

On SIGINT/SIGTERM the cache is invalidated, which terminates provider
subprocesses and closes remote streams, before the host process exits.
"""

import asyncio
import logging
import signal
from typing import Optional

from toolhub.core.registry import CapabilityRegistry

logger = logging.getLogger(__name__)

SHUTDOWN_SIGNALS = (signal.SIGTERM, signal.SIGINT)


class ShutdownHandler:
    """Releases provider connections when the process is asked to stop.

    Handles:
    - Registering signal handlers on the running loop
    - Invalidating the registry within a flush timeout
    - Signalling the host through ``shutdown_event``
    """

    def __init__(self, registry: CapabilityRegistry, flush_timeout: float = 5.0):
        self.registry = registry
        self.flush_timeout = flush_timeout
        self.shutdown_event = asyncio.Event()
        self._installed: list[signal.Signals] = []
        self._tasks: set[asyncio.Task] = set()

    def install(self) -> None:
        """Register signal handlers for graceful shutdown."""
        try:
            loop = asyncio.get_running_loop()

            for sig in SHUTDOWN_SIGNALS:
                loop.add_signal_handler(
                    sig,
                    lambda s=sig: self._spawn(s),
                )
                self._installed.append(sig)
        except (RuntimeError, NotImplementedError):
            # Signal handlers not supported (e.g., Windows)
            logger.debug("Signal handlers unavailable; relying on explicit shutdown()")

    def uninstall(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in self._installed:
            loop.remove_signal_handler(sig)
        self._installed.clear()

    def _spawn(self, sig: signal.Signals) -> None:
        task = asyncio.create_task(self.handle_signal(sig))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def handle_signal(self, sig: Optional[signal.Signals] = None) -> None:
        """Release every provider connection, then set ``shutdown_event``."""
        if self.shutdown_event.is_set():
            return
        if sig is not None:
            logger.info(f"Received {sig.name}, releasing provider connections")

        try:
            await asyncio.wait_for(self.registry.invalidate(), timeout=self.flush_timeout)
        except asyncio.TimeoutError:
            logger.warning("Provider release timed out during shutdown")

        self.shutdown_event.set()

    async def shutdown(self) -> None:
        """Same as receiving a signal; for hosts that manage signals themselves."""
        await self.handle_signal()

    async def wait(self) -> None:
        await self.shutdown_event.wait()
