"""
Unit tests for the provider configuration resolver.
Sources in priority order: MCP_SERVERS env var, user file, defaults.
"""

import json
import logging
import os
from unittest.mock import patch

import pytest

from toolhub.config import (
    LocalProviderConfig,
    ProviderConfigResolver,
    RemoteProviderConfig,
    parse_provider,
    parse_provider_list,
    url_problem,
)
from toolhub.core.errors import ConfigError


class TestParseProviderList:
    """Test parsing and validation of JSON provider arrays."""

    def test_parses_both_provider_types(self, sample_servers):
        providers = parse_provider_list(json.dumps(sample_servers), "test")

        assert isinstance(providers[0], LocalProviderConfig)
        assert providers[0].args == ["-y", "@modelcontextprotocol/server-github"]
        assert providers[0].env == {"GITHUB_PERSONAL_ACCESS_TOKEN": "ghp_test"}
        assert isinstance(providers[1], RemoteProviderConfig)
        assert providers[1].url == "https://docs.example.com/mcp/sse"
        assert providers[1].enabled is False

    def test_accepts_wire_protocol_type_aliases(self):
        raw = json.dumps(
            [
                {"name": "fs", "type": "stdio", "enabled": True, "command": "npx"},
                {"name": "docs", "type": "sse", "enabled": True, "url": "http://x/sse"},
            ]
        )

        providers = parse_provider_list(raw, "test")

        assert providers[0].type == "local-subprocess"
        assert providers[1].type == "remote-stream"

    def test_empty_url_is_accepted_at_load_time(self):
        """Empty URLs are rejected when connecting, not when loading."""
        providers = parse_provider_list(
            '[{"name": "docs", "type": "remote-stream", "enabled": true, "url": ""}]',
            "test",
        )

        assert providers[0].url == ""

    def test_rejects_invalid_json(self):
        with pytest.raises(ConfigError, match="invalid JSON"):
            parse_provider_list("[{not json", "test")

    def test_rejects_non_array(self):
        with pytest.raises(ConfigError, match="expected a JSON array"):
            parse_provider_list('{"name": "fs"}', "test")

    def test_rejects_unknown_type(self):
        with pytest.raises(ConfigError, match="invalid provider definition"):
            parse_provider_list('[{"name": "fs", "type": "carrier-pigeon"}]', "test")

    def test_rejects_duplicate_names(self):
        raw = json.dumps(
            [
                {"name": "fs", "type": "local-subprocess", "command": "a"},
                {"name": "fs", "type": "local-subprocess", "command": "b"},
            ]
        )

        with pytest.raises(ConfigError, match="duplicate provider name"):
            parse_provider_list(raw, "test")

    def test_unknown_keys_are_ignored(self):
        provider = parse_provider(
            {"name": "fs", "type": "local-subprocess", "command": "npx", "color": "red"}
        )

        assert not hasattr(provider, "color")


class TestUrlProblem:
    """Test remote URL validation."""

    @pytest.mark.parametrize("url", ["", None, 42])
    def test_missing_url(self, url):
        assert url_problem(url).startswith("URL is required")

    def test_relative_url_is_rejected(self):
        assert "absolute http(s) URL" in url_problem("/mcp/sse")

    def test_non_http_scheme_is_rejected(self):
        assert url_problem("ftp://example.com/sse") is not None

    def test_valid_url(self):
        assert url_problem("https://example.com/mcp/sse") is None


class TestResolverPriority:
    """Test source precedence and fall-through."""

    def test_env_wins_over_file(self, resolver, write_user_servers, sample_servers):
        write_user_servers(sample_servers)
        env_servers = [{"name": "env-only", "type": "remote-stream", "url": "http://e/sse"}]

        with patch.dict(os.environ, {"MCP_SERVERS": json.dumps(env_servers)}):
            providers = resolver.get_providers()
            source = resolver.get_source()

        assert [p.name for p in providers] == ["env-only"]
        assert source == "env"

    def test_file_used_when_env_absent(self, resolver, write_user_servers, sample_servers):
        write_user_servers(sample_servers)

        assert [p.name for p in resolver.get_providers()] == ["github", "docs"]
        assert resolver.get_source() == "file"

    def test_defaults_when_nothing_configured(self, user_servers_path, no_env_providers):
        default = parse_provider({"name": "builtin", "type": "local-subprocess", "command": "x"})
        resolver = ProviderConfigResolver(user_path=user_servers_path, defaults=[default])

        assert resolver.get_providers() == [default]
        assert resolver.get_source() == "default"

    def test_empty_user_file_falls_through_to_defaults(
        self, resolver, write_user_servers
    ):
        write_user_servers([])

        assert resolver.get_providers() == []
        assert resolver.get_source() == "default"

    def test_malformed_env_falls_through_to_file(
        self, resolver, write_user_servers, sample_servers
    ):
        write_user_servers(sample_servers)

        with patch.dict(os.environ, {"MCP_SERVERS": "not json"}):
            providers = resolver.get_providers()
            source = resolver.get_source()

        assert [p.name for p in providers] == ["github", "docs"]
        # The environment still owns the configuration
        assert source == "env"

    def test_env_object_instead_of_array_falls_through(self, resolver):
        with patch.dict(os.environ, {"MCP_SERVERS": '{"name": "fs"}'}):
            assert resolver.get_providers() == []

    def test_malformed_user_file_is_treated_as_empty(self, resolver, write_user_servers):
        write_user_servers("{broken")

        assert resolver.load_user_providers() == []
        assert resolver.get_providers() == []
        assert resolver.get_source() == "default"

    def test_resolve_returns_providers_with_source(
        self, resolver, write_user_servers, sample_servers
    ):
        write_user_servers(sample_servers)

        providers, source = resolver.resolve()

        assert [p.name for p in providers] == ["github", "docs"]
        assert source == "file"

    def test_resolve_keeps_env_source_when_env_is_malformed(
        self, resolver, write_user_servers, sample_servers
    ):
        write_user_servers(sample_servers)

        with patch.dict(os.environ, {"MCP_SERVERS": "not json"}):
            providers, source = resolver.resolve()

        assert [p.name for p in providers] == ["github", "docs"]
        assert source == "env"

    def test_resolve_reads_malformed_file_once(self, resolver, write_user_servers, caplog):
        write_user_servers("{broken")

        with caplog.at_level(logging.WARNING, logger="toolhub.config"):
            providers, source = resolver.resolve()

        assert providers == []
        assert source == "default"
        warnings = [r for r in caplog.records if "Ignoring user providers file" in r.message]
        assert len(warnings) == 1

    def test_missing_user_file_is_empty(self, resolver, user_servers_path):
        assert not user_servers_path.exists()
        assert resolver.load_user_providers() == []


class TestSaveUserProviders:
    """Test persistence of the user-editable list."""

    def test_save_creates_directory_and_round_trips(
        self, resolver, user_servers_path, sample_servers
    ):
        providers = [parse_provider(s) for s in sample_servers]

        resolver.save_user_providers(providers)

        saved = json.loads(user_servers_path.read_text())
        assert saved[0]["name"] == "github"
        assert saved[0]["type"] == "local-subprocess"
        assert saved[1]["url"] == "https://docs.example.com/mcp/sse"
        assert resolver.load_user_providers() == providers
