"""
Aggregation manager: connects every enabled provider and merges their tools
into one namespaced registry.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Iterable, Optional

from toolhub.config import LocalProviderConfig, ProviderConfig
from toolhub.core.errors import FailureReason, ProviderConnectionError
from toolhub.core.mcp_client import (
    DEFAULT_CONNECT_TIMEOUT,
    ProviderConnection,
    connect_local,
    connect_remote,
)
from toolhub.core.tools import ToolSpec, tool_spec_from_mcp

logger = logging.getLogger(__name__)

# Backstop on top of the transport's own handshake timeout
CONNECT_GRACE = 5.0

Connector = Callable[[ProviderConfig, float], Awaitable[ProviderConnection]]


@dataclass
class ProviderOutcome:
    """Result of loading a single provider"""

    provider: str
    ok: bool
    tools: list[str] = field(default_factory=list)
    error: Optional[str] = None
    reason: Optional[FailureReason] = None
    elapsed: float = 0.0


@dataclass
class AggregationResult:
    """Merged tools from all providers plus the per-provider errors.

    ``release()`` tears down every live connection; it is idempotent.
    """

    capabilities: dict[str, ToolSpec] = field(default_factory=dict)
    errors: dict[str, str] = field(default_factory=dict)
    outcomes: list[ProviderOutcome] = field(default_factory=list)
    connections: list[ProviderConnection] = field(default_factory=list, repr=False)
    released: bool = field(default=False, init=False)

    async def release(self) -> None:
        if self.released:
            return
        self.released = True

        results = await asyncio.gather(
            *(connection.release() for connection in self.connections),
            return_exceptions=True,
        )
        for connection, result in zip(self.connections, results):
            if isinstance(result, Exception):
                logger.error(f"Failed to release provider {connection.name}: {result}")


async def connect_provider(provider: ProviderConfig, timeout: float) -> ProviderConnection:
    """Connect using the transport selected by the provider's type"""
    if isinstance(provider, LocalProviderConfig):
        return await connect_local(
            provider.name, provider.command, provider.args, provider.env, timeout
        )
    return await connect_remote(provider.name, provider.url, timeout)


async def _attempt(
    provider: ProviderConfig, timeout: float, connect: Connector
) -> tuple[ProviderOutcome, Optional[ProviderConnection]]:
    started = time.monotonic()
    try:
        connection = await asyncio.wait_for(
            connect(provider, timeout), timeout + CONNECT_GRACE
        )
    except asyncio.TimeoutError:
        error = ProviderConnectionError(
            provider.name,
            FailureReason.HANDSHAKE_TIMEOUT,
            f"Provider {provider.name} did not connect within {timeout:g}s",
        )
    except ProviderConnectionError as e:
        error = e
    except Exception as e:
        logger.debug(f"Unexpected error connecting {provider.name}", exc_info=True)
        error = ProviderConnectionError(
            provider.name, FailureReason.PROTOCOL, f"Failed to load provider: {e}"
        )
    else:
        outcome = ProviderOutcome(
            provider=provider.name,
            ok=True,
            elapsed=time.monotonic() - started,
        )
        return outcome, connection

    outcome = ProviderOutcome(
        provider=provider.name,
        ok=False,
        error=error.message or str(error.reason.value),
        reason=error.reason,
        elapsed=time.monotonic() - started,
    )
    return outcome, None


async def load_all(
    providers: Iterable[ProviderConfig],
    timeout: float = DEFAULT_CONNECT_TIMEOUT,
    connect: Connector = connect_provider,
) -> AggregationResult:
    """
    Load all enabled providers and return their merged tools.

    Connections are attempted concurrently but merged in configuration
    order, so on a key collision the provider listed later wins. A failing
    provider only adds an entry to ``errors``; this never raises for
    provider-level faults.

    Args:
        providers: Provider definitions in configuration order
        timeout: Seconds allowed for each provider's connect
        connect: Transport dispatcher, replaceable for embedding and tests

    Returns:
        AggregationResult with namespaced capabilities, errors and outcomes
    """
    enabled = [p for p in providers if p.enabled]
    if not enabled:
        return AggregationResult()

    tasks = [asyncio.ensure_future(_attempt(p, timeout, connect)) for p in enabled]
    try:
        attempts = await asyncio.gather(*tasks)
    except asyncio.CancelledError:
        # Don't leak connections that finished before we were cancelled
        for task in tasks:
            if task.done() and not task.cancelled() and task.exception() is None:
                _, connection = task.result()
                if connection is not None:
                    await asyncio.gather(connection.release(), return_exceptions=True)
        raise

    result = AggregationResult()
    for provider, (outcome, connection) in zip(enabled, attempts):
        result.outcomes.append(outcome)
        if connection is None:
            result.errors[provider.name] = outcome.error
            continue

        for tool in connection.tools:
            spec = tool_spec_from_mcp(provider.name, tool, connection.handle_for(tool.name))
            result.capabilities[spec.name] = spec
            outcome.tools.append(spec.name)
        result.connections.append(connection)

    return result


def log_outcomes(result: AggregationResult) -> None:
    """Log one line per provider outcome"""
    for outcome in result.outcomes:
        if outcome.ok:
            logger.info(
                f"✓ Loaded provider: {outcome.provider} "
                f"({len(outcome.tools)} tools, {outcome.elapsed:.2f}s)"
            )
        else:
            logger.warning(f"Failed to load provider {outcome.provider}: {outcome.error}")
