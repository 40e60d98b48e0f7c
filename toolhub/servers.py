"""Provider status and management.

Read path: configured providers, loaded tools grouped by provider, and
per-provider errors. Write path: add, update and remove user-defined
providers. Every accepted mutation clears the capability cache.
"""

import logging
from typing import Any, Optional

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from toolhub import config
from toolhub.config import (
    ConfigSource,
    LocalProviderConfig,
    ProviderConfig,
    ProviderConfigResolver,
    parse_provider,
    url_problem,
)
from toolhub.core import registry as registry_module
from toolhub.core.errors import (
    DuplicateProviderError,
    ImmutableSourceError,
    UnknownProviderError,
    ValidationError,
    describe_validation_error,
)
from toolhub.core.manager import AggregationResult
from toolhub.core.registry import CapabilityRegistry

logger = logging.getLogger(__name__)


class ProviderList(BaseModel):
    """Configured providers and whether they can be edited."""

    servers: list[ProviderConfig]
    source: ConfigSource
    editable: bool


class ProviderStatus(BaseModel):
    """Providers together with the tools and errors from the last load."""

    servers: list[ProviderConfig]
    enabled_servers: list[ProviderConfig]
    total_tools: int
    tools_by_server: dict[str, list[str]]
    server_errors: dict[str, str]
    native_tools: list[str]
    source: ConfigSource
    editable: bool


class ProviderService:
    """Status and mutation operations over the provider configuration."""

    def __init__(
        self,
        resolver: Optional[ProviderConfigResolver] = None,
        registry: Optional[CapabilityRegistry] = None,
        native_tools: Optional[list[str]] = None,
    ) -> None:
        self.resolver = resolver or config.resolver
        self.registry = registry or registry_module.registry
        self.native_tools = list(native_tools or [])

    def _editable(self, source: ConfigSource) -> bool:
        # Can't edit if the list comes from the environment
        return source != "env"

    def list_providers(self) -> ProviderList:
        providers, source = self.resolver.resolve()
        return ProviderList(
            servers=providers,
            source=source,
            editable=self._editable(source),
        )

    async def status(self) -> ProviderStatus:
        providers, source = self.resolver.resolve()

        try:
            result = await self.registry.get_with_errors()
        except Exception:
            logger.exception("Error loading provider tools")
            result = AggregationResult()

        tools_by_server = {
            outcome.provider: list(outcome.tools)
            for outcome in result.outcomes
            if outcome.ok
        }

        return ProviderStatus(
            servers=providers,
            enabled_servers=[p for p in providers if p.enabled],
            total_tools=len(result.capabilities),
            tools_by_server=tools_by_server,
            server_errors=dict(result.errors),
            native_tools=self.native_tools,
            source=source,
            editable=self._editable(source),
        )

    def _ensure_editable(self, action: str, source: ConfigSource) -> None:
        if not self._editable(source):
            raise ImmutableSourceError(action, self.resolver.env_var)

    def _validate(self, data: Any) -> ProviderConfig:
        """Check a submitted provider definition, including per-type required fields"""
        if isinstance(data, BaseModel):
            data = data.model_dump()
        if not isinstance(data, dict):
            raise ValidationError("Invalid provider configuration: expected an object")
        if not data.get("name") or not data.get("type"):
            raise ValidationError(
                "Invalid provider configuration: name and type are required"
            )

        try:
            provider = parse_provider(data)
        except PydanticValidationError as e:
            raise ValidationError(
                f"Invalid provider configuration: {describe_validation_error(e)}"
            ) from e

        if isinstance(provider, LocalProviderConfig):
            if not provider.command.strip():
                raise ValidationError(
                    "Invalid provider configuration: command is required "
                    "for local-subprocess providers"
                )
        else:
            problem = url_problem(provider.url)
            if problem is not None:
                raise ValidationError(f"Invalid provider configuration: {problem}")
        return provider

    async def _commit(self, providers: list[ProviderConfig]) -> None:
        self.resolver.save_user_providers(providers)
        # Reload tools with the new configuration on next use
        await self.registry.invalidate()

    async def add_provider(self, data: Any) -> ProviderConfig:
        """
        Add a new provider to the user file.

        Raises:
            ImmutableSourceError: providers come from the environment
            ValidationError: invalid definition
            DuplicateProviderError: a provider with this name already exists
        """
        providers, source = self.resolver.resolve()
        self._ensure_editable("add", source)
        provider = self._validate(data)

        if any(p.name == provider.name for p in providers):
            raise DuplicateProviderError(provider.name)

        await self._commit([*providers, provider])
        logger.info(f"Added provider {provider.name} ({provider.type})")
        return provider

    async def update_provider(self, data: Any) -> ProviderConfig:
        """
        Replace an existing provider, matched by name.

        Raises:
            ImmutableSourceError: providers come from the environment
            ValidationError: invalid definition
            UnknownProviderError: no provider with this name
        """
        providers, source = self.resolver.resolve()
        self._ensure_editable("update", source)
        provider = self._validate(data)

        index = next(
            (i for i, p in enumerate(providers) if p.name == provider.name), None
        )
        if index is None:
            raise UnknownProviderError(provider.name)

        updated = list(providers)
        updated[index] = provider
        await self._commit(updated)
        logger.info(f"Updated provider {provider.name}")
        return provider

    async def remove_provider(self, name: str) -> str:
        """
        Delete a provider by name.

        Raises:
            ImmutableSourceError: providers come from the environment
            ValidationError: name missing
            UnknownProviderError: no provider with this name
        """
        providers, source = self.resolver.resolve()
        self._ensure_editable("delete", source)
        if not name:
            raise ValidationError("Provider name is required")

        remaining = [p for p in providers if p.name != name]
        if len(remaining) == len(providers):
            raise UnknownProviderError(name)

        await self._commit(remaining)
        logger.info(f"Removed provider {name}")
        return name
