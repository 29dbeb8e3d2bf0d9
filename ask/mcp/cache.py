"""
Tool schema cache - advertised tools persisted across runs.

Entries are keyed by server name and stamped with the server config's
fingerprint; an entry whose fingerprint no longer matches is treated as
absent. When every server is cached, the first model request goes out
without spawning a single tool server.

Stored in ~/.ask/tools_cache.json:

    {"entries": {"<server>": {"config_hash": "<hex>", "tools": [...]}}}
"""

import logging
import os
import tempfile
import threading
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Dict, List, Mapping

from pydantic import BaseModel, Field, ValidationError

from ask.mcp.registry import ToolRegistry
from ask.mcp.schema import ServerConfig, ToolDescriptor
from ask.mcp.transport import MCPTransportError

logger = logging.getLogger(__name__)


class CacheEntry(BaseModel):
    """Tools listed by one server, stamped with its config fingerprint."""

    config_hash: str
    tools: List[ToolDescriptor] = Field(default_factory=list)


class CacheFile(BaseModel):
    entries: Dict[str, CacheEntry] = Field(default_factory=dict)


class ToolCache:
    """
    Filesystem-backed cache of per-server tool schemas.

    Reads of a missing or corrupt file yield an empty cache. Writes are
    best-effort full overwrites; a failed write only means the next run
    rebuilds the entry.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock = threading.Lock()

    # ── File I/O ──────────────────────────────────────────────────────────

    def load(self) -> CacheFile:
        """Load the cache file, or an empty cache if it can't be read."""
        try:
            text = self.path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError):
            return CacheFile()

        try:
            return CacheFile.model_validate_json(text)
        except ValidationError as e:
            logger.debug("Ignoring corrupt tool cache %s: %s", self.path, e)
            return CacheFile()

    def save(self, cache: CacheFile) -> None:
        """Write the cache file atomically; failures are logged, not raised."""
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=".tools_cache.")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(cache.model_dump_json(indent=2))
                os.replace(tmp_name, self.path)
            except BaseException:
                os.unlink(tmp_name)
                raise
        except OSError as e:
            logger.warning("Failed to write tool cache %s: %s", self.path, e)

    # ── Entries ───────────────────────────────────────────────────────────

    def update_entry(self, server_name: str, config: ServerConfig, tools: List[ToolDescriptor]) -> None:
        """Replace one server's entry, leaving the others untouched."""
        with self._lock:
            cache = self.load()
            cache.entries[server_name] = CacheEntry(config_hash=config.fingerprint, tools=tools)
            self.save(cache)

    def cold_servers(self, servers: Mapping[str, ServerConfig]) -> List[str]:
        """Names of servers with no entry matching their current fingerprint."""
        cache = self.load()
        cold = []
        for name, config in servers.items():
            entry = cache.entries.get(name)
            if entry is None or entry.config_hash != config.fingerprint:
                cold.append(name)
        return cold

    def cached_tools(self, servers: Mapping[str, ServerConfig]) -> List[ToolDescriptor]:
        """All tools from entries whose fingerprint matches the current config."""
        cache = self.load()
        tools: List[ToolDescriptor] = []
        loaded = 0
        for name, config in servers.items():
            entry = cache.entries.get(name)
            if entry is not None and entry.config_hash == config.fingerprint:
                logger.debug("Loaded %d tools from cache for '%s'", len(entry.tools), name)
                tools.extend(entry.tools)
                loaded += 1
            else:
                logger.debug("No cache for '%s', will initialize on first use", name)

        if loaded:
            logger.debug("Loaded %d MCP server(s) from cache", loaded)
        return tools


def populate_cache_if_needed(registry: ToolRegistry, cache: ToolCache) -> List[str]:
    """
    Start every server without a valid cache entry, in parallel.

    Each server is initialized through the registry, which lists its tools
    and writes its cache entry; the processes stay up for the rest of the
    run. Servers that fail to start are reported and left out.

    Returns:
        Names of the servers that were started.
    """
    cold = cache.cold_servers(registry.servers)
    if not cold:
        return []

    logger.info("Building tool cache for %d MCP server(s)...", len(cold))

    def _start(name: str):
        try:
            registry.ensure_initialized(name)
            return name, None
        except (MCPTransportError, OSError) as e:
            return name, e

    started = []
    with ThreadPoolExecutor(max_workers=len(cold)) as pool:
        for name, error in pool.map(_start, cold):
            if error is not None:
                logger.warning("Failed to initialize MCP server '%s': %s", name, error)
            else:
                logger.debug("Cached tools for '%s'", name)
                started.append(name)
    return started
