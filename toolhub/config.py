"""
Provider configuration: models and the prioritized source resolver
"""

import json
import logging
import os
from pathlib import Path
from typing import Annotated, Any, Literal, Optional, Union

import httpx
from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from toolhub.core.errors import ConfigError

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).parent.parent
PROVIDERS_ENV_VAR = "MCP_SERVERS"
USER_PROVIDERS_PATH_ENV_VAR = "TOOLHUB_USER_SERVERS_PATH"
DEFAULT_USER_PROVIDERS_PATH = PROJECT_ROOT / "configs" / "user_servers.json"

ConfigSource = Literal["env", "file", "default"]

# Older configs name the transports after the wire protocol
_TYPE_ALIASES = {"stdio": "local-subprocess", "sse": "remote-stream"}


class LocalProviderConfig(BaseModel):
    """Provider launched as a child process speaking MCP over stdio"""

    model_config = ConfigDict(extra="ignore")

    name: str = Field(min_length=1)
    type: Literal["local-subprocess"] = "local-subprocess"
    enabled: bool = False
    command: str = ""
    args: list[str] = []
    env: dict[str, str] = {}


class RemoteProviderConfig(BaseModel):
    """Provider reachable over an MCP server-sent-events stream"""

    model_config = ConfigDict(extra="ignore")

    name: str = Field(min_length=1)
    type: Literal["remote-stream"] = "remote-stream"
    enabled: bool = False
    url: str = ""


def _normalize_type(value: Any) -> Any:
    if isinstance(value, dict) and value.get("type") in _TYPE_ALIASES:
        return {**value, "type": _TYPE_ALIASES[value["type"]]}
    return value


ProviderConfig = Annotated[
    Annotated[
        Union[LocalProviderConfig, RemoteProviderConfig],
        Field(discriminator="type"),
    ],
    BeforeValidator(_normalize_type),
]

_provider_adapter: TypeAdapter = TypeAdapter(ProviderConfig)
_provider_list_adapter: TypeAdapter = TypeAdapter(list[ProviderConfig])

# No providers ship enabled by default. Example entries:
#   {"name": "filesystem", "type": "local-subprocess", "enabled": false,
#    "command": "npx", "args": ["-y", "@modelcontextprotocol/server-filesystem", "/tmp"]}
#   {"name": "docs", "type": "remote-stream", "enabled": false,
#    "url": "https://example.com/mcp/sse"}
DEFAULT_PROVIDERS: list[ProviderConfig] = []


def parse_provider(data: Any) -> ProviderConfig:
    """Validate a single provider definition (raises pydantic ValidationError)"""
    return _provider_adapter.validate_python(data)


def url_problem(url: Any) -> Optional[str]:
    """Return why ``url`` is unusable for a remote provider, or None if it is fine."""
    if not url or not isinstance(url, str):
        return "URL is required and must be a non-empty string"
    try:
        parsed = httpx.URL(url)
    except httpx.InvalidURL as e:
        return f"Invalid provider URL {url!r}: {e}"
    if parsed.scheme not in ("http", "https") or not parsed.host:
        return f"Invalid provider URL {url!r}: expected an absolute http(s) URL"
    return None


def parse_provider_list(raw: str, source: str) -> list[ProviderConfig]:
    """Parse a JSON array of provider definitions.

    Raises:
        ConfigError: if the text is not JSON, not an array, an entry is
            invalid, or a provider name repeats.
    """
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ConfigError(source, f"invalid JSON: {e}") from e

    if not isinstance(data, list):
        raise ConfigError(source, f"expected a JSON array, got {type(data).__name__}")

    try:
        providers = _provider_list_adapter.validate_python(data)
    except PydanticValidationError as e:
        raise ConfigError(source, f"invalid provider definition: {e}") from e

    seen: set[str] = set()
    for provider in providers:
        if provider.name in seen:
            raise ConfigError(source, f"duplicate provider name {provider.name!r}")
        seen.add(provider.name)
    return providers


class ProviderConfigResolver:
    """
    Resolves the active provider list from prioritized sources:
    1. JSON array in the MCP_SERVERS environment variable
    2. User-editable JSON array file
    3. Built-in defaults

    A source that fails to parse is logged and skipped. Never raises.
    """

    def __init__(
        self,
        env_var: str = PROVIDERS_ENV_VAR,
        user_path: Optional[Path] = None,
        defaults: Optional[list[ProviderConfig]] = None,
    ):
        self.env_var = env_var
        self.user_path = Path(
            user_path
            or os.environ.get(USER_PROVIDERS_PATH_ENV_VAR, DEFAULT_USER_PROVIDERS_PATH)
        )
        self.defaults = list(DEFAULT_PROVIDERS if defaults is None else defaults)

    def _load_env_providers(self) -> Optional[list[ProviderConfig]]:
        raw = os.environ.get(self.env_var)
        if not raw:
            return None
        try:
            return parse_provider_list(raw, self.env_var)
        except ConfigError as e:
            logger.warning(f"Ignoring {self.env_var}: {e}")
            return None

    def load_user_providers(self) -> list[ProviderConfig]:
        """Load the user-defined providers; a missing or broken file counts as empty"""
        if not self.user_path.exists():
            return []
        try:
            raw = self.user_path.read_text(encoding="utf-8")
            return parse_provider_list(raw, str(self.user_path))
        except OSError as e:
            logger.warning(f"Failed to read user providers from {self.user_path}: {e}")
        except ConfigError as e:
            logger.warning(f"Ignoring user providers file: {e}")
        return []

    def save_user_providers(self, providers: list[ProviderConfig]) -> None:
        """Write the user-defined providers as an indented JSON array"""
        payload = [p.model_dump(mode="json") for p in providers]
        self.user_path.parent.mkdir(parents=True, exist_ok=True)
        self.user_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        logger.info(f"Saved {len(providers)} provider(s) to {self.user_path}")

    def resolve(self) -> tuple[list[ProviderConfig], ConfigSource]:
        """Return the active providers and their source, reading each tier once"""
        env_providers = self._load_env_providers()
        if env_providers is not None:
            return env_providers, "env"

        # A set-but-broken env var still owns the configuration
        env_set = bool(os.environ.get(self.env_var))

        user_providers = self.load_user_providers()
        if user_providers:
            return user_providers, "env" if env_set else "file"

        return list(self.defaults), "env" if env_set else "default"

    def get_providers(self) -> list[ProviderConfig]:
        providers, _ = self.resolve()
        return providers

    def get_source(self) -> ConfigSource:
        if os.environ.get(self.env_var):
            return "env"
        if self.load_user_providers():
            return "file"
        return "default"


resolver = ProviderConfigResolver()


def get_providers() -> list[ProviderConfig]:
    return resolver.get_providers()


def get_providers_source() -> ConfigSource:
    return resolver.get_source()


def save_user_providers(providers: list[ProviderConfig]) -> None:
    resolver.save_user_providers(providers)
