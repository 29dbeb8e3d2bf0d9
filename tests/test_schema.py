"""Tests for server configs, tool descriptors and call results."""

import pytest
from pydantic import ValidationError

from ask.mcp.schema import CallToolResult, ServerConfig, ToolDescriptor


def _server(**overrides):
    values = {"command": "srv", "args": ["a", "b"], "env": {"X": "1", "Y": "2"}, "tool_prefix": "fs"}
    values.update(overrides)
    return ServerConfig(**values)


class TestServerConfig:
    """Tests for ServerConfig."""

    def test_fingerprint_ignores_env_order(self):
        """Test that env insertion order doesn't change the fingerprint."""
        first = _server(env={"X": "1", "Y": "2"})
        second = _server(env={"Y": "2", "X": "1"})
        assert first.fingerprint == second.fingerprint

    def test_fingerprint_changes_with_env_value(self):
        """Test that an env value change changes the fingerprint."""
        assert _server(env={"X": "1"}).fingerprint != _server(env={"X": "2"}).fingerprint

    def test_fingerprint_respects_arg_order(self):
        """Test that argument order is significant."""
        assert _server(args=["a", "b"]).fingerprint != _server(args=["b", "a"]).fingerprint

    def test_fingerprint_covers_prefix(self):
        """Test that the tool prefix is part of the fingerprint."""
        assert _server(tool_prefix="fs").fingerprint != _server(tool_prefix="files").fingerprint

    def test_fingerprint_is_sha256_hex(self):
        """Test the fingerprint format."""
        fingerprint = _server().fingerprint
        assert len(fingerprint) == 64
        int(fingerprint, 16)

    def test_prefix_with_dot_rejected(self):
        """Test rejecting a prefix containing a dot."""
        with pytest.raises(ValidationError):
            _server(tool_prefix="my.server")

    def test_empty_prefix_rejected(self):
        """Test rejecting an empty prefix."""
        with pytest.raises(ValidationError):
            _server(tool_prefix="")

    def test_names(self):
        """Test converting between exposed and inner names."""
        server = _server(tool_prefix="filesystem")
        assert server.exposed_name("read_file") == "filesystem_read_file"
        assert server.inner_name("filesystem_read_file") == "read_file"

    def test_frozen(self):
        """Test that server configs can't be modified."""
        with pytest.raises(ValidationError):
            _server().command = "other"


class TestToolDescriptor:
    """Tests for ToolDescriptor."""

    def test_from_server_tool(self):
        """Test converting a tools/list entry."""
        raw = {
            "name": "read_file",
            "description": "Read a file",
            "inputSchema": {"type": "object", "properties": {"path": {"type": "string"}}},
        }
        tool = ToolDescriptor.from_server_tool(raw, _server(tool_prefix="filesystem"))

        assert tool.name == "filesystem_read_file"
        assert tool.description == "Read a file"
        assert tool.parameters["properties"] == {"path": {"type": "string"}}

    def test_missing_schema_normalized(self):
        """Test a tool without an input schema."""
        tool = ToolDescriptor.from_server_tool({"name": "ping"}, _server())
        assert tool.parameters == {"type": "object", "properties": {}}

    def test_schema_without_properties_normalized(self):
        """Test adding missing properties to a schema."""
        tool = ToolDescriptor(name="t", parameters={"type": "object", "required": []})
        assert tool.parameters == {"type": "object", "required": [], "properties": {}}

    def test_to_openai(self):
        """Test the chat API function shape."""
        tool = ToolDescriptor(name="fs_ping", description="Ping")
        assert tool.to_openai() == {
            "type": "function",
            "function": {
                "name": "fs_ping",
                "description": "Ping",
                "parameters": {"type": "object", "properties": {}},
            },
        }

    def test_to_openai_without_description(self):
        """Test omitting a missing description."""
        assert "description" not in ToolDescriptor(name="fs_ping").to_openai()["function"]


class TestCallToolResult:
    """Tests for rendering tool results into transcript text."""

    def test_text_items_each_end_with_newline(self):
        """Test rendering text items."""
        result = CallToolResult.model_validate({
            "content": [{"type": "text", "text": "one"}, {"type": "text", "text": "two"}]
        })
        assert result.render() == "one\ntwo\n"

    def test_error_prefixed(self):
        """Test rendering an error result."""
        result = CallToolResult.model_validate({
            "content": [{"type": "text", "text": "boom"}],
            "isError": True,
        })
        assert result.render() == "Error: boom\n"

    def test_null_is_error(self):
        """Test that a null isError means success."""
        result = CallToolResult.model_validate({"content": [], "isError": None})
        assert result.is_error is False

    def test_non_text_placeholders(self):
        """Test placeholders for images, audio and resources."""
        result = CallToolResult.model_validate({
            "content": [
                {"type": "image", "mimeType": "image/png", "data": "aGVsbG8="},
                {"type": "audio", "mimeType": "audio/wav", "data": "AAAA"},
                {"type": "resource", "resource": {"uri": "file:///a.txt", "text": "hi"}},
                {"type": "resource_link", "uri": "file:///b.txt", "name": "b"},
            ]
        })
        assert result.render() == (
            "[Image: image/png (8 bytes)]\n"
            "[Audio: audio/wav (4 bytes)]\n"
            "[Resource: file:///a.txt]\n"
            "[Resource: file:///b.txt]\n"
        )

    def test_empty_content(self):
        """Test rendering a result with no content."""
        assert CallToolResult().render() == ""
