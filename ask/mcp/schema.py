"""Data models for tool servers, advertised tools, and tool call results."""

from __future__ import annotations

import hashlib
import json
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ServerConfig(BaseModel):
    """Immutable description of a tool server process."""

    model_config = ConfigDict(frozen=True)

    command: str
    args: List[str] = Field(default_factory=list)
    env: Dict[str, str] = Field(default_factory=dict)
    tool_prefix: str

    @field_validator("tool_prefix")
    @classmethod
    def _check_prefix(cls, value: str) -> str:
        if not value:
            raise ValueError("tool prefix must not be empty")
        if "." in value:
            raise ValueError(f"tool prefix '{value}' must not contain '.'")
        return value

    @property
    def fingerprint(self) -> str:
        """
        Stable hash over the full configuration, used as the cache key.

        Argument order is significant, env order is not.
        """
        canonical = json.dumps(
            [self.command, list(self.args), sorted(self.env.items()), self.tool_prefix],
            separators=(",", ":"),
        )
        return hashlib.sha256(canonical.encode()).hexdigest()

    def exposed_name(self, inner_name: str) -> str:
        """Name the model sees for a tool, e.g. ``filesystem_read_file``."""
        return f"{self.tool_prefix}_{inner_name}"

    def inner_name(self, exposed_name: str) -> str:
        """Strip this server's prefix from an exposed tool name."""
        prefix = f"{self.tool_prefix}_"
        if exposed_name.startswith(prefix):
            return exposed_name[len(prefix):]
        return exposed_name


class ToolDescriptor(BaseModel):
    """A tool as advertised to the model."""

    name: str
    description: Optional[str] = None
    parameters: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("parameters", mode="before")
    @classmethod
    def _normalize_parameters(cls, value: Any) -> Dict[str, Any]:
        # Chat APIs reject tools whose schema lacks an object type or properties.
        schema = dict(value) if isinstance(value, dict) else {}
        schema.setdefault("type", "object")
        if not isinstance(schema.get("properties"), dict):
            schema["properties"] = {}
        return schema

    @classmethod
    def from_server_tool(cls, raw: Dict[str, Any], server: ServerConfig) -> "ToolDescriptor":
        """Convert a ``tools/list`` entry into a prefixed descriptor."""
        return cls(
            name=server.exposed_name(raw["name"]),
            description=raw.get("description"),
            parameters=raw.get("inputSchema") or {},
        )

    def to_openai(self) -> Dict[str, Any]:
        """Function-tool shape expected by chat-completion APIs."""
        function: Dict[str, Any] = {"name": self.name, "parameters": self.parameters}
        if self.description is not None:
            function["description"] = self.description
        return {"type": "function", "function": function}


# ── Tool call results ─────────────────────────────────────────────────────


class ContentItem(BaseModel):
    """One entry of a ``tools/call`` result's ``content`` list."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    type: str
    text: Optional[str] = None
    mime_type: Optional[str] = Field(default=None, alias="mimeType")
    data: Optional[str] = None
    resource: Optional[Dict[str, Any]] = None
    uri: Optional[str] = None

    def render(self) -> str:
        if self.type == "text":
            return self.text or ""
        if self.type == "image":
            return f"[Image: {self.mime_type} ({len(self.data or '')} bytes)]"
        if self.type == "audio":
            return f"[Audio: {self.mime_type} ({len(self.data or '')} bytes)]"
        if self.type == "resource":
            resource = self.resource or {}
            return f"[Resource: {resource.get('uri') or json.dumps(resource)}]"
        if self.type == "resource_link":
            return f"[Resource: {self.uri}]"
        return json.dumps(self.model_dump(by_alias=True, exclude_none=True))


class CallToolResult(BaseModel):
    """Structured result of a ``tools/call`` request."""

    model_config = ConfigDict(populate_by_name=True)

    content: List[ContentItem] = Field(default_factory=list)
    is_error: bool = Field(default=False, alias="isError")

    @field_validator("is_error", mode="before")
    @classmethod
    def _null_is_false(cls, value: Any) -> bool:
        return bool(value)

    def render(self) -> str:
        """
        Flatten the result into transcript text.

        Non-text content is summarized rather than attached, so images and
        audio reach the model only as a placeholder line.
        """
        output = "".join(f"{item.render()}\n" for item in self.content)
        if self.is_error:
            return f"Error: {output}"
        return output


# ── JSON-RPC envelopes ────────────────────────────────────────────────────


class RpcError(BaseModel):
    """The ``error`` member of a JSON-RPC response."""

    code: Optional[int] = None
    message: str = ""
    data: Any = None


class RpcResponse(BaseModel):
    """A JSON-RPC response; ``result`` must be an object when present."""

    id: Any = None
    result: Optional[Dict[str, Any]] = None
    error: Optional[RpcError] = None


class ListToolsResult(BaseModel):
    """Result of ``tools/list``."""

    model_config = ConfigDict(extra="allow")

    tools: List[Any] = Field(default_factory=list)
