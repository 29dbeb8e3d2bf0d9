"""Shared fixtures: an isolated home directory and fake tool servers."""

import json
import sys
from pathlib import Path

import pytest

from ask.mcp.schema import ServerConfig

FAKE_SERVER = Path(__file__).parent / "fake_mcp_server.py"


@pytest.fixture(autouse=True)
def home(tmp_path, monkeypatch):
    """Point ~ at a temporary directory and clear API keys."""
    home_dir = tmp_path / "home"
    home_dir.mkdir()
    monkeypatch.setenv("HOME", str(home_dir))
    monkeypatch.setenv("USERPROFILE", str(home_dir))
    for var in ("ASK_API_KEY", "OPENROUTER_API_KEY", "OPENAI_API_KEY"):
        monkeypatch.delenv(var, raising=False)
    return home_dir


@pytest.fixture
def ask_dir(home):
    """The ~/.ask directory, created empty."""
    path = home / ".ask"
    path.mkdir()
    return path


@pytest.fixture
def spawn_log(tmp_path):
    """File the fake server appends to each time it starts."""
    return tmp_path / "spawns.log"


@pytest.fixture
def server_definition(spawn_log):
    """Config-file entry (command/args/env) for a fake tool server."""

    def _make(name: str, **env):
        return {
            "command": sys.executable,
            "args": [str(FAKE_SERVER)],
            "env": {"FAKE_MCP_SPAWN_LOG": str(spawn_log), "FAKE_MCP_NAME": name, **env},
        }

    return _make


@pytest.fixture
def fake_server(server_definition):
    """ServerConfig for a fake tool server with the given prefix."""

    def _make(prefix: str, **env):
        return ServerConfig(tool_prefix=prefix, **server_definition(prefix, **env))

    return _make


@pytest.fixture
def write_config(ask_dir):
    """Write ~/.ask/config and return its path."""

    def _write(data: dict) -> Path:
        path = ask_dir / "config"
        path.write_text(json.dumps(data))
        return path

    return _write


@pytest.fixture
def spawned(spawn_log):
    """Names of the fake servers started so far, in start order."""

    def _read():
        if not spawn_log.exists():
            return []
        return spawn_log.read_text().splitlines()

    return _read
