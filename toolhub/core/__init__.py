"""
Core provider aggregation
Contains the transport clients, the aggregation manager and the capability cache
"""

from toolhub.core.errors import (
    ConfigError,
    DuplicateProviderError,
    FailureReason,
    ImmutableSourceError,
    ProviderConnectionError,
    ProviderReleaseError,
    ToolhubError,
    UnknownProviderError,
    ValidationError,
)
from toolhub.core.tools import ToolSpec, merge_with_native, tool_specs_for_llm

__all__ = [
    "ConfigError",
    "DuplicateProviderError",
    "FailureReason",
    "ImmutableSourceError",
    "ProviderConnectionError",
    "ProviderReleaseError",
    "ToolhubError",
    "UnknownProviderError",
    "ValidationError",
    "ToolSpec",
    "merge_with_native",
    "tool_specs_for_llm",
]
