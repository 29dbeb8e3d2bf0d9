"""Tool server communication via stdio subprocess transport."""

from __future__ import annotations

import json
import logging
import os
import subprocess
import threading
from typing import Any, Dict, List, Optional

from ask import __version__
from ask.mcp.schema import CallToolResult, ListToolsResult, RpcResponse, ServerConfig

logger = logging.getLogger(__name__)

PROTOCOL_VERSION = "2024-11-05"


class MCPTransportError(Exception):
    """Raised when tool server communication fails."""


class MCPTransport:
    """
    Communicate with a tool server over stdin/stdout (newline-delimited JSON-RPC).

    ``connect()`` spawns the process and performs the initialize handshake.
    Once the child exits or its pipes break the transport is marked dead
    and every later request fails with ``MCPTransportError``.
    """

    def __init__(self, config: ServerConfig, name: Optional[str] = None, verbose: bool = False):
        self.config = config
        self.name = name or config.tool_prefix
        self.verbose = verbose
        self._process: Optional[subprocess.Popen] = None
        self._request_id = 0
        self._dead = False
        self._lock = threading.Lock()

    # ── Lifecycle ─────────────────────────────────────────────────────────

    def start(self) -> None:
        """Spawn the tool server subprocess."""
        if self.is_running:
            return

        merged_env = {**os.environ, **self.config.env}
        try:
            self._process = subprocess.Popen(
                [self.config.command] + list(self.config.args),
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=None if self.verbose else subprocess.DEVNULL,
                env=merged_env,
            )
        except FileNotFoundError:
            raise MCPTransportError(f"MCP server command not found: {self.config.command}")
        except OSError as exc:
            raise MCPTransportError(f"Failed to start MCP server '{self.name}': {exc}")
        self._dead = False
        logger.debug("Started MCP server '%s' (pid %s)", self.name, self._process.pid)

    def connect(self) -> Dict[str, Any]:
        """Spawn the server and complete the protocol handshake."""
        self.start()
        return self.initialize()

    def stop(self) -> None:
        """Terminate the tool server subprocess."""
        process, self._process = self._process, None
        if process is None:
            return
        for stream in (process.stdin, process.stdout):
            try:
                if stream:
                    stream.close()
            except OSError:
                pass
        if process.poll() is None:
            try:
                process.terminate()
                process.wait(timeout=5)
            except subprocess.TimeoutExpired:
                process.kill()
                process.wait()

    @property
    def is_running(self) -> bool:
        return not self._dead and self._process is not None and self._process.poll() is None

    # ── JSON-RPC ──────────────────────────────────────────────────────────

    def _write(self, message: Dict[str, Any]) -> None:
        line = json.dumps(message) + "\n"
        self._process.stdin.write(line.encode())
        self._process.stdin.flush()

    def _mark_dead(self, reason: str) -> MCPTransportError:
        self._dead = True
        return MCPTransportError(f"MCP server '{self.name}' is not available: {reason}")

    def send(self, method: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Send a JSON-RPC request and wait for its result."""
        with self._lock:
            if not self.is_running:
                raise self._mark_dead("process is not running")

            self._request_id += 1
            request_id = self._request_id
            request: Dict[str, Any] = {"jsonrpc": "2.0", "id": request_id, "method": method}
            if params is not None:
                request["params"] = params

            try:
                self._write(request)
                response = self._read_response(request_id)
            except (BrokenPipeError, OSError) as exc:
                raise self._mark_dead(str(exc))

        try:
            envelope = RpcResponse.model_validate(response)
        except ValueError as exc:
            raise MCPTransportError(f"Malformed response to {method}: {exc}")

        if envelope.error is not None:
            raise MCPTransportError(f"MCP error {envelope.error.code}: {envelope.error.message}")

        return envelope.result or {}

    def notify(self, method: str, params: Optional[Dict[str, Any]] = None) -> None:
        """Send a JSON-RPC notification (no response expected)."""
        message: Dict[str, Any] = {"jsonrpc": "2.0", "method": method}
        if params is not None:
            message["params"] = params
        with self._lock:
            if not self.is_running:
                raise self._mark_dead("process is not running")
            try:
                self._write(message)
            except (BrokenPipeError, OSError) as exc:
                raise self._mark_dead(str(exc))

    def _read_response(self, request_id: int) -> Dict[str, Any]:
        """Read lines until the response for ``request_id`` arrives."""
        while True:
            raw = self._process.stdout.readline()
            if not raw:
                raise self._mark_dead("server closed connection")

            raw = raw.strip()
            if not raw:
                continue
            try:
                message = json.loads(raw.decode())
            except ValueError:
                logger.debug("Ignoring non-JSON line from '%s': %r", self.name, raw[:200])
                continue
            if not isinstance(message, dict):
                continue

            if "method" in message:
                if "id" in message:
                    # Server-to-client requests (sampling, roots) are not supported.
                    self._write({
                        "jsonrpc": "2.0",
                        "id": message["id"],
                        "error": {"code": -32601, "message": "Method not found"},
                    })
                continue

            if message.get("id") == request_id:
                return message

    # ── Tool Protocol ─────────────────────────────────────────────────────

    def initialize(self) -> Dict[str, Any]:
        """Perform the initialize handshake."""
        result = self.send("initialize", {
            "protocolVersion": PROTOCOL_VERSION,
            "capabilities": {},
            "clientInfo": {"name": "ask", "version": __version__},
        })
        self.notify("notifications/initialized")
        return result

    def list_tools(self) -> List[Dict[str, Any]]:
        """Fetch the raw tool list from the server."""
        result = self.send("tools/list", {})
        try:
            listed = ListToolsResult.model_validate(result)
        except ValueError as exc:
            raise MCPTransportError(f"Malformed tools/list result: {exc}")
        return [tool for tool in listed.tools if isinstance(tool, dict) and "name" in tool]

    def call_tool(self, name: str, arguments: Optional[Dict[str, Any]] = None) -> CallToolResult:
        """Call a tool by its server-side (unprefixed) name."""
        result = self.send("tools/call", {"name": name, "arguments": arguments or {}})
        try:
            return CallToolResult.model_validate(result)
        except ValueError as exc:
            raise MCPTransportError(f"Malformed tools/call result: {exc}")

    # ── Cleanup ───────────────────────────────────────────────────────────

    def __del__(self):
        try:
            self.stop()
        except Exception:
            pass
