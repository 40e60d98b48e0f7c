"""
Shared pytest fixtures for provider aggregation tests.
Provider connections are faked so no subprocess or network is touched.
"""

import asyncio
import json
import os
from unittest.mock import patch

import pytest
from mcp.types import Tool

from toolhub.config import ProviderConfigResolver, parse_provider


class FakeConnection:
    """Stands in for ProviderConnection: a tool listing plus a release counter."""

    def __init__(self, name, tool_names, release_error=None):
        self.name = name
        self.tools = [
            Tool(
                name=tool_name,
                description=f"{tool_name} from {name}",
                inputSchema={"type": "object", "properties": {}},
            )
            for tool_name in tool_names
        ]
        self.release_calls = 0
        self.release_error = release_error

    def handle_for(self, raw_name):
        return (self.name, raw_name)

    async def release(self):
        self.release_calls += 1
        if self.release_error is not None:
            raise self.release_error


class FakeConnector:
    """
    Connector whose behavior is scripted per provider name:
    a list of tool names connects, an exception is raised, "hang" never returns.
    """

    def __init__(self, behaviors, delay=0.0):
        self.behaviors = behaviors
        self.delay = delay
        self.calls: list[str] = []
        self.connections: dict[str, FakeConnection] = {}

    async def __call__(self, provider, timeout):
        self.calls.append(provider.name)
        if self.delay:
            await asyncio.sleep(self.delay)
        behavior = self.behaviors[provider.name]
        if behavior == "hang":
            await asyncio.Event().wait()
        if isinstance(behavior, Exception):
            raise behavior
        connection = FakeConnection(provider.name, behavior)
        self.connections[provider.name] = connection
        return connection


@pytest.fixture
def fake_connector():
    """Factory for scripted connectors"""
    return FakeConnector


@pytest.fixture
def fake_connection():
    return FakeConnection


@pytest.fixture
def local_provider():
    """Build an enabled local-subprocess provider config"""

    def _make(name, enabled=True, command="npx", args=None):
        return parse_provider(
            {
                "name": name,
                "type": "local-subprocess",
                "enabled": enabled,
                "command": command,
                "args": args or [],
            }
        )

    return _make


@pytest.fixture
def remote_provider():
    """Build an enabled remote-stream provider config"""

    def _make(name, url="http://localhost:8931/sse", enabled=True):
        return parse_provider(
            {"name": name, "type": "remote-stream", "enabled": enabled, "url": url}
        )

    return _make


@pytest.fixture
def no_env_providers():
    """Make sure MCP_SERVERS is not set"""
    with patch.dict(os.environ):
        os.environ.pop("MCP_SERVERS", None)
        yield


@pytest.fixture
def user_servers_path(tmp_path):
    return tmp_path / "configs" / "user_servers.json"


@pytest.fixture
def resolver(user_servers_path, no_env_providers):
    """Resolver backed by a temporary user file and no defaults"""
    return ProviderConfigResolver(user_path=user_servers_path, defaults=[])


@pytest.fixture
def write_user_servers(user_servers_path):
    def _write(servers):
        user_servers_path.parent.mkdir(parents=True, exist_ok=True)
        text = servers if isinstance(servers, str) else json.dumps(servers)
        user_servers_path.write_text(text)

    return _write


@pytest.fixture
def sample_servers():
    """Provider definitions as they appear in MCP_SERVERS or the user file"""
    return [
        {
            "name": "github",
            "type": "local-subprocess",
            "enabled": True,
            "command": "npx",
            "args": ["-y", "@modelcontextprotocol/server-github"],
            "env": {"GITHUB_PERSONAL_ACCESS_TOKEN": "ghp_test"},
        },
        {
            "name": "docs",
            "type": "remote-stream",
            "enabled": False,
            "url": "https://docs.example.com/mcp/sse",
        },
    ]
