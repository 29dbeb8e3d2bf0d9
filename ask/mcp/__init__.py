"""
Tool servers for ask.

Tool servers are child processes speaking JSON-RPC over stdio. Their
tools are advertised to the model as ``<prefix>_<tool>``; schemas are
cached on disk keyed by a fingerprint of each server's config, so a
server is only spawned when its cache entry is stale or the model
actually calls one of its tools.
"""

from ask.mcp.schema import CallToolResult, ContentItem, ServerConfig, ToolDescriptor
from ask.mcp.transport import MCPTransport, MCPTransportError
from ask.mcp.registry import ToolRegistry
from ask.mcp.cache import ToolCache, populate_cache_if_needed

__all__ = [
    "CallToolResult",
    "ContentItem",
    "ServerConfig",
    "ToolDescriptor",
    "MCPTransport",
    "MCPTransportError",
    "ToolRegistry",
    "ToolCache",
    "populate_cache_if_needed",
]
