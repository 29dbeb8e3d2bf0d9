"""
ask Configuration - Configuration loading, validation and editing.

This module provides the Config class for managing the single JSON
configuration file at ~/.ask/config (the same shape as an ``.mcp.json``
file, plus a few ask-specific keys).
"""

import json
import logging
import os
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ask.mcp.schema import ServerConfig

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gpt-4.1-mini"

_VAR_WITH_DEFAULT = re.compile(r"\$\{([^:}]+):-([^}]*)\}")
_VAR_SIMPLE = re.compile(r"\$\{([^}]+)\}")


class ConfigError(Exception):
    """Raised when there's a configuration error."""

    pass


def ask_home() -> Path:
    """Return the ~/.ask directory, resolved from HOME or USERPROFILE."""
    home = os.environ.get("HOME") or os.environ.get("USERPROFILE") or "."
    return Path(home) / ".ask"


def config_path() -> Path:
    return ask_home() / "config"


def expand_env_vars(value: str) -> str:
    """
    Expand ``${VAR}`` and ``${VAR:-default}`` references.

    ``${VAR:-default}`` falls back to the default when VAR is unset.
    ``${VAR}`` is left untouched when VAR is unset.
    """

    def _with_default(match: "re.Match[str]") -> str:
        return os.environ.get(match.group(1), match.group(2))

    def _simple(match: "re.Match[str]") -> str:
        return os.environ.get(match.group(1), match.group(0))

    result = _VAR_WITH_DEFAULT.sub(_with_default, value)
    return _VAR_SIMPLE.sub(_simple, result)


class McpServerDefinition(BaseModel):
    """A tool server entry as written in the config file."""

    model_config = ConfigDict(extra="allow")

    command: str
    args: List[str] = Field(default_factory=list)
    env: Dict[str, str] = Field(default_factory=dict)


class AskConfig(BaseModel):
    """Complete configuration schema for ~/.ask/config."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    mcp_servers: Dict[str, McpServerDefinition] = Field(default_factory=dict, alias="mcpServers")
    auto_approved_tools: List[str] = Field(default_factory=list, alias="autoApprovedTools")
    base_url: Optional[str] = Field(default=None, alias="baseUrl")
    default_model: Optional[str] = Field(default=None, alias="defaultModel")


class Config:
    """
    Configuration manager for ~/.ask/config.

    Example:
        >>> config = Config.load()
        >>> config.set_default_model("gpt-4o")
        >>> config.save()
    """

    def __init__(self, data: Optional[AskConfig] = None, path: Optional[Path] = None):
        """
        Initialize Config.

        Args:
            data: Parsed configuration. Defaults to an empty configuration.
            path: File the configuration is saved to. Defaults to ~/.ask/config.
        """
        self.data = data or AskConfig()
        self.path = path or config_path()

    @classmethod
    def load(cls, path: Optional[Path] = None) -> "Config":
        """
        Load configuration from disk.

        Raises:
            ConfigError: If the file is missing, unreadable or invalid.
        """
        path = path or config_path()
        if not path.exists():
            raise ConfigError(f"No configuration file found. Create {path}")

        try:
            with open(path, encoding="utf-8") as f:
                raw = json.load(f)
        except (OSError, ValueError) as e:
            raise ConfigError(f"Failed to parse config file {path}: {e}")

        try:
            data = AskConfig.model_validate(raw)
        except ValidationError as e:
            raise ConfigError(f"Invalid configuration in {path}: {e}")

        return cls(data=data, path=path)

    @classmethod
    def load_or_empty(cls, path: Optional[Path] = None) -> "Config":
        """Load configuration, starting from an empty one when no file exists yet."""
        path = path or config_path()
        if not path.exists():
            logger.debug("No config at %s, starting from an empty configuration", path)
            return cls(path=path)
        return cls.load(path)

    def save(self) -> Path:
        """Write the configuration back to disk as pretty-printed JSON."""
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "w", encoding="utf-8") as f:
                json.dump(self.to_dict(), f, indent=2)
                f.write("\n")
        except OSError as e:
            raise ConfigError(f"Failed to write config to {self.path}: {e}")
        return self.path

    def to_dict(self) -> Dict[str, Any]:
        return self.data.model_dump(by_alias=True, exclude_none=True)

    # ── Accessors ─────────────────────────────────────────────────────────

    @property
    def base_url(self) -> Optional[str]:
        return self.data.base_url

    @property
    def default_model(self) -> Optional[str]:
        return self.data.default_model

    @property
    def auto_approved_tools(self) -> List[str]:
        return list(self.data.auto_approved_tools)

    def servers(self) -> List[Tuple[str, ServerConfig]]:
        """
        Build the tool server list, expanding environment references.

        The server name doubles as the tool prefix. Servers whose name
        can't be used as a prefix are skipped with a warning.
        """
        servers: List[Tuple[str, ServerConfig]] = []
        for name, definition in self.data.mcp_servers.items():
            try:
                server = ServerConfig(
                    command=expand_env_vars(definition.command),
                    args=[expand_env_vars(arg) for arg in definition.args],
                    env={key: expand_env_vars(value) for key, value in definition.env.items()},
                    tool_prefix=name,
                )
            except ValidationError as e:
                logger.warning("Skipping MCP server '%s': %s", name, e.errors()[0]["msg"])
                continue
            servers.append((name, server))
        return servers

    # ── Mutators ──────────────────────────────────────────────────────────

    def add_server(
        self,
        name: str,
        command: str,
        args: Optional[List[str]] = None,
        env: Optional[Dict[str, str]] = None,
    ) -> None:
        if name in self.data.mcp_servers:
            raise ConfigError(
                f"Server '{name}' already exists. Remove it first with: ask mcp remove {name}"
            )
        self.data.mcp_servers[name] = McpServerDefinition(
            command=command, args=args or [], env=env or {}
        )

    def remove_server(self, name: str) -> None:
        if name not in self.data.mcp_servers:
            raise ConfigError(f"Server '{name}' not found")
        del self.data.mcp_servers[name]

    def add_auto_approved_tool(self, tool_name: str) -> None:
        if tool_name not in self.data.auto_approved_tools:
            self.data.auto_approved_tools.append(tool_name)

    def set_base_url(self, base_url: str) -> None:
        self.data.base_url = base_url

    def set_default_model(self, model: str) -> None:
        self.data.default_model = model


def add_auto_approved_tool(tool_name: str, path: Optional[Path] = None) -> Path:
    """Append a tool to the persisted auto-approve list."""
    config = Config.load_or_empty(path)
    config.add_auto_approved_tool(tool_name)
    return config.save()
