"""
MCP (Model Context Protocol) transport clients for tool providers
"""

import asyncio
import functools
import logging
import re
from contextlib import AbstractAsyncContextManager, AsyncExitStack
from typing import Any, Callable, Optional

import anyio
import httpx
from mcp import ClientSession, StdioServerParameters
from mcp.client.sse import sse_client
from mcp.client.stdio import get_default_environment, stdio_client
from mcp.shared.exceptions import McpError
from mcp.types import Tool
from pydantic import ValidationError as PydanticValidationError

from toolhub.config import url_problem
from toolhub.core.errors import (
    FailureReason,
    ProviderConnectionError,
    ProviderReleaseError,
    describe_validation_error,
)

logger = logging.getLogger(__name__)

# Appended after the user's args so the provider speaks framed JSON-RPC on stdio
STDIO_TRANSPORT_ARG = "stdio"
DEFAULT_CONNECT_TIMEOUT = 30.0
RELEASE_TIMEOUT = 10.0

# Matched against the error text with the provider URL removed
CROSS_ORIGIN_MARKER = re.compile(r"\bcors\b|cross-origin", re.IGNORECASE)

TransportOpener = Callable[[], AbstractAsyncContextManager]


class ProviderConnection:
    """
    Live MCP session with one provider.

    The transport and session contexts are entered and exited by a dedicated
    task, so ``release()`` can be awaited from any task without tripping the
    SDK's task-group ownership checks.
    """

    def __init__(self, name: str, open_transport: TransportOpener):
        self.name = name
        self.tools: list[Tool] = []
        self.session: Optional[ClientSession] = None
        self._open_transport = open_transport
        self._ready: asyncio.Future = asyncio.get_running_loop().create_future()
        self._stop = asyncio.Event()
        self._task: Optional[asyncio.Task] = None
        self._teardown_error: Optional[Exception] = None
        self._released = False

    async def _serve(self) -> None:
        try:
            async with AsyncExitStack() as stack:
                read, write = await stack.enter_async_context(self._open_transport())
                session = await stack.enter_async_context(ClientSession(read, write))
                await session.initialize()
                response = await session.list_tools()

                self.session = session
                self.tools = list(response.tools)
                if not self._ready.done():
                    self._ready.set_result(None)

                await self._stop.wait()
        except Exception as e:
            if not self._ready.done():
                self._ready.set_exception(e)
            else:
                self._teardown_error = e

    async def open(self, timeout: float) -> None:
        """Start the owning task and wait for the handshake to finish"""
        self._task = asyncio.create_task(self._serve(), name=f"provider:{self.name}")
        try:
            await asyncio.wait_for(self._ready, timeout)
        except BaseException:
            self._released = True
            self._task.cancel()
            await asyncio.gather(self._task, return_exceptions=True)
            raise

    def handle_for(self, raw_name: str) -> Any:
        """Opaque invocation handle for one of this provider's tools"""
        return functools.partial(self.session.call_tool, raw_name)

    async def release(self) -> None:
        """Close the session and its transport. Idempotent."""
        if self._released:
            return
        self._released = True
        self._stop.set()

        if self._task is not None:
            try:
                await asyncio.wait_for(asyncio.shield(self._task), RELEASE_TIMEOUT)
            except asyncio.TimeoutError:
                self._task.cancel()
                await asyncio.gather(self._task, return_exceptions=True)
                raise ProviderReleaseError(
                    self.name, f"teardown did not finish within {RELEASE_TIMEOUT:g}s"
                )
        self.session = None

        if self._teardown_error is not None:
            raise ProviderReleaseError(
                self.name, str(self._teardown_error)
            ) from self._teardown_error
        logger.debug(f"Released provider {self.name}")


def _root_cause(exc: BaseException) -> BaseException:
    """Unwrap task-group exception groups down to the first real error"""
    while isinstance(exc, BaseExceptionGroup):
        inner = [
            e for e in exc.exceptions if not isinstance(e, asyncio.CancelledError)
        ]
        exc = (inner or list(exc.exceptions))[0]
    return exc


def _local_failure(
    name: str, command: str, exc: BaseException, timeout: float
) -> ProviderConnectionError:
    cause = _root_cause(exc)

    if isinstance(cause, TimeoutError):
        return ProviderConnectionError(
            name,
            FailureReason.HANDSHAKE_TIMEOUT,
            f"Handshake with {command!r} did not complete within {timeout:g}s",
        )
    if isinstance(cause, (FileNotFoundError, PermissionError, NotADirectoryError)):
        return ProviderConnectionError(
            name,
            FailureReason.NOT_FOUND,
            f"Command not found or not executable: {command!r}",
        )
    if isinstance(
        cause, (EOFError, anyio.EndOfStream, anyio.ClosedResourceError, anyio.BrokenResourceError)
    ) or (isinstance(cause, McpError) and "closed" in str(cause).lower()):
        return ProviderConnectionError(
            name,
            FailureReason.PREMATURE_EXIT,
            f"Provider process {command!r} exited before completing the handshake",
        )
    if isinstance(cause, PydanticValidationError):
        return ProviderConnectionError(
            name,
            FailureReason.MALFORMED_MANIFEST,
            f"Provider returned a malformed tool manifest ({describe_validation_error(cause)})",
        )
    return ProviderConnectionError(
        name, FailureReason.PROTOCOL, f"Handshake with provider failed: {cause}"
    )


def _remote_failure(name: str, url: str, exc: BaseException) -> ProviderConnectionError:
    cause = _root_cause(exc)
    detail = str(cause)

    # Only an explicit CORS marker counts; a bare 403 falls through to protocol
    if CROSS_ORIGIN_MARKER.search(detail.replace(url, "")):
        return ProviderConnectionError(
            name,
            FailureReason.CROSS_ORIGIN_REJECTED,
            f"Cross-origin request to {url} was rejected. "
            "The server may not allow requests from this origin.",
        )
    if isinstance(cause, (httpx.TimeoutException, httpx.NetworkError, OSError)):
        # OSError covers refused connections, DNS failures and TimeoutError
        return ProviderConnectionError(
            name,
            FailureReason.UNREACHABLE,
            f"Failed to connect to provider at {url}. "
            "Check that the server is running and accessible.",
        )
    if isinstance(cause, PydanticValidationError):
        return ProviderConnectionError(
            name,
            FailureReason.MALFORMED_MANIFEST,
            f"Provider returned a malformed tool manifest ({describe_validation_error(cause)})",
        )
    return ProviderConnectionError(
        name, FailureReason.PROTOCOL, f"Failed to load provider: {detail or type(cause).__name__}"
    )


async def connect_local(
    name: str,
    command: str,
    args: Optional[list[str]] = None,
    env: Optional[dict[str, str]] = None,
    timeout: float = DEFAULT_CONNECT_TIMEOUT,
) -> ProviderConnection:
    """
    Launch a provider subprocess and run the MCP handshake over its stdio.

    Args:
        name: Provider name, used for errors and logging
        command: Executable to launch
        args: User arguments, placed before the stdio transport argument
        env: Extra environment variables layered over the SDK's safe defaults
        timeout: Seconds allowed for launch plus handshake

    Returns:
        A live ProviderConnection holding the raw tool listing

    Raises:
        ProviderConnectionError: with the failure cause chained
    """
    if not command:
        raise ProviderConnectionError(
            name, FailureReason.NOT_FOUND, "Command is required for a local provider"
        )

    params = StdioServerParameters(
        command=command,
        args=[*(args or []), STDIO_TRANSPORT_ARG],
        env={**get_default_environment(), **(env or {})},
    )
    connection = ProviderConnection(name, functools.partial(stdio_client, params))

    logger.debug(f"Launching provider {name}: {command} {' '.join(params.args)}")
    try:
        await connection.open(timeout)
    except Exception as e:
        raise _local_failure(name, command, e, timeout) from e
    return connection


async def connect_remote(
    name: str,
    url: str,
    timeout: float = DEFAULT_CONNECT_TIMEOUT,
) -> ProviderConnection:
    """
    Open an MCP server-sent-events stream and run the handshake.

    The URL is validated before any network activity.

    Raises:
        ProviderConnectionError: unreachable, cross-origin-rejected, or protocol
    """
    problem = url_problem(url)
    if problem is not None:
        raise ProviderConnectionError(name, FailureReason.INVALID_URL, problem)

    connection = ProviderConnection(
        name, functools.partial(sse_client, url, timeout=timeout)
    )

    logger.debug(f"Opening stream to provider {name} at {url}")
    try:
        await connection.open(timeout)
    except Exception as e:
        raise _remote_failure(name, url, e) from e
    return connection
