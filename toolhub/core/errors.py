"""Error types shared by the provider aggregation core and its surfaces."""

from enum import Enum
from typing import Any


class ToolhubError(Exception):
    """Base class for all toolhub errors."""


class ConfigError(ToolhubError):
    """A configuration source could not be parsed or had the wrong shape.

    Raised inside the resolver only; the tier is logged and skipped.
    """

    def __init__(self, source: str, message: str) -> None:
        super().__init__(f"{source}: {message}")
        self.source = source


class FailureReason(str, Enum):
    NOT_FOUND = "not-found"
    PREMATURE_EXIT = "premature-exit"
    HANDSHAKE_TIMEOUT = "handshake-timeout"
    MALFORMED_MANIFEST = "malformed-manifest"
    UNREACHABLE = "unreachable"
    CROSS_ORIGIN_REJECTED = "cross-origin-rejected"
    INVALID_URL = "invalid-url"
    PROTOCOL = "protocol"


class ProviderConnectionError(ToolhubError):
    """A single provider could not be connected.

    The underlying exception, if any, is chained as ``__cause__``.
    """

    def __init__(self, provider: str, reason: FailureReason, message: str) -> None:
        super().__init__(message)
        self.provider = provider
        self.reason = reason
        self.message = message


class ProviderReleaseError(ToolhubError):
    """Tearing down a provider connection failed."""

    def __init__(self, provider: str, message: str) -> None:
        super().__init__(f"Failed to release provider {provider}: {message}")
        self.provider = provider


class ValidationError(ToolhubError):
    """A provider definition submitted for mutation is invalid."""


class DuplicateProviderError(ValidationError):
    def __init__(self, name: str) -> None:
        super().__init__(f'Provider with name "{name}" already exists')
        self.name = name


class UnknownProviderError(ValidationError):
    def __init__(self, name: str) -> None:
        super().__init__(f'Provider "{name}" not found')
        self.name = name


class ImmutableSourceError(ToolhubError):
    """Mutation attempted while the provider list comes from the environment."""

    def __init__(self, action: str, env_var: str) -> None:
        super().__init__(
            f"Cannot {action} providers: {env_var} is configured via environment "
            f"variable. Remove {env_var} from the environment to manage providers "
            "from the user file."
        )
        self.action = action


def describe_validation_error(error: Any) -> str:
    """Short ``loc: msg`` summary of the first error in a pydantic ValidationError"""
    errors = error.errors()
    if not errors:
        return str(error)
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()))
    return f"{location}: {first.get('msg')}" if location else str(first.get("msg"))
