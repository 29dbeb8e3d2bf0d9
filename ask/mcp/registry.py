"""Tool registry - configured tool servers, lazily started on first use."""

from __future__ import annotations

import logging
import threading
from typing import Dict, Iterable, List, Optional, Tuple

from ask.mcp.schema import ServerConfig, ToolDescriptor
from ask.mcp.transport import MCPTransport, MCPTransportError

logger = logging.getLogger(__name__)


class ToolRegistry:
    """
    Holds the configured tool servers and their live transports.

    Servers present in ``servers`` but missing from the live map are known
    but not yet spawned. ``ensure_initialized()`` spawns a server on demand
    and, when a cache is attached, refreshes that server's cache entry
    with the tools it just listed.
    """

    def __init__(
        self,
        servers: Iterable[Tuple[str, ServerConfig]],
        cache=None,
        verbose: bool = False,
    ):
        self._servers: Dict[str, ServerConfig] = dict(servers)
        self._services: Dict[str, MCPTransport] = {}
        self._cache = cache
        self._verbose = verbose
        self._lock = threading.Lock()
        self._init_locks: Dict[str, threading.Lock] = {name: threading.Lock() for name in self._servers}

    @property
    def servers(self) -> Dict[str, ServerConfig]:
        return dict(self._servers)

    # ── Tool Lookup ───────────────────────────────────────────────────────

    def resolve(self, tool_name: str) -> Optional[Tuple[str, ServerConfig]]:
        """
        Find the server owning ``tool_name``.

        Exposed names are ``<prefix>_<inner>``; the longest matching prefix wins.
        """
        best: Optional[Tuple[str, ServerConfig]] = None
        for name, config in self._servers.items():
            if not tool_name.startswith(f"{config.tool_prefix}_"):
                continue
            if best is None or len(config.tool_prefix) > len(best[1].tool_prefix):
                best = (name, config)
        return best

    def handle(self, server_name: str) -> Optional[MCPTransport]:
        """Return the live transport for a server, if it has been started."""
        with self._lock:
            return self._services.get(server_name)

    # ── Lifecycle ─────────────────────────────────────────────────────────

    def ensure_initialized(self, server_name: str) -> MCPTransport:
        """
        Start ``server_name`` unless it is already running.

        Raises:
            KeyError: If the server is not configured.
            MCPTransportError: If the process can't be spawned or initialized.
        """
        if server_name not in self._servers:
            raise KeyError(f"Server '{server_name}' not found in registry")

        with self._init_locks[server_name]:
            existing = self.handle(server_name)
            if existing is not None:
                return existing

            config = self._servers[server_name]
            logger.debug("Initializing MCP server '%s'...", server_name)
            transport = MCPTransport(config, name=server_name, verbose=self._verbose)
            try:
                transport.connect()
            except Exception:
                transport.stop()
                raise

            with self._lock:
                self._services[server_name] = transport

            if self._cache is not None:
                self._refresh_cache(server_name, config, transport)
            return transport

    def _refresh_cache(self, server_name: str, config: ServerConfig, transport: MCPTransport) -> None:
        try:
            tools = [ToolDescriptor.from_server_tool(raw, config) for raw in transport.list_tools()]
        except (MCPTransportError, KeyError, ValueError) as e:
            logger.warning("Failed to list tools for MCP server '%s': %s", server_name, e)
            return
        self._cache.update_entry(server_name, config, tools)

    def close(self) -> None:
        """Stop every started server."""
        with self._lock:
            services, self._services = self._services, {}
        for name, transport in services.items():
            logger.debug("Stopping MCP server '%s'", name)
            transport.stop()

    def running(self) -> List[str]:
        with self._lock:
            return list(self._services)
