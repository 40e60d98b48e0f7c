"""
Capability descriptors and the merge point with native tools
"""

from dataclasses import dataclass
from typing import Any, Mapping, Optional

from mcp.types import Tool

NAMESPACE_SEPARATOR = "_"


@dataclass
class ToolSpec:
    """Tool specification for LLM.

    ``handler`` is an opaque invocation handle. For provider tools it is bound
    to the provider's MCP session; toolhub never calls it.
    """

    name: str
    description: str
    parameters: dict[str, Any]
    handler: Optional[Any] = None
    provider: Optional[str] = None
    raw_name: Optional[str] = None


def namespaced_name(provider: str, raw_name: str) -> str:
    """Registry key for a provider capability: ``{provider}_{raw_name}``"""
    return f"{provider}{NAMESPACE_SEPARATOR}{raw_name}"


def tool_spec_from_mcp(provider: str, tool: Tool, handler: Optional[Any] = None) -> ToolSpec:
    """Build a namespaced ToolSpec from an MCP tool listing entry"""
    return ToolSpec(
        name=namespaced_name(provider, tool.name),
        description=tool.description or "",
        parameters=tool.inputSchema,
        handler=handler,
        provider=provider,
        raw_name=tool.name,
    )


def merge_with_native(
    native: Mapping[str, ToolSpec], capabilities: Mapping[str, ToolSpec]
) -> dict[str, ToolSpec]:
    """Union of native tools and provider capabilities; provider entries win on equal keys"""
    return {**native, **capabilities}


def tool_specs_for_llm(tools: Mapping[str, ToolSpec]) -> list[dict[str, Any]]:
    """Get tool specifications in OpenAI format"""
    specs = []
    for name, tool in tools.items():
        specs.append(
            {
                "type": "function",
                "function": {
                    "name": name,
                    "description": tool.description,
                    "parameters": tool.parameters,
                },
            }
        )
    return specs
