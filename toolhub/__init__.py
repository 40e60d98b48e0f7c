"""
Aggregates tools from local and remote MCP providers into one namespaced registry
"""

__version__ = "0.1.0"
