"""
Built-in shell tool.

``execute_command`` runs a command line through the host's shell and hands
the captured output back to the model. Exit status is not inspected.
"""

import os
import subprocess
from pathlib import PureWindowsPath
from typing import Mapping, Optional, Tuple

from pydantic import BaseModel

from ask.mcp.schema import ToolDescriptor

EXECUTE_COMMAND = "execute_command"

POWERSHELL = "Powershell"
CMD = "Cmd"
POSIX = "POSIX"


class ExecuteCommandRequest(BaseModel):
    """Arguments the model passes to ``execute_command``."""

    command: str
    working_directory: str


def execute_command_tool() -> ToolDescriptor:
    """Descriptor advertised to the model for the shell tool."""
    return ToolDescriptor(
        name=EXECUTE_COMMAND,
        description="Execute a command on the Operating System",
        parameters={
            "type": "object",
            "properties": {
                "command": {"type": "string", "description": "The command to be executed"},
                "working_directory": {
                    "type": "string",
                    "description": "The working directory for the command execution (optional)",
                },
            },
            "required": ["command", "working_directory"],
        },
    )


def detect_shell_kind(environ: Optional[Mapping[str, str]] = None, windows: Optional[bool] = None) -> str:
    """Guess which shell the user runs: ``Powershell``, ``Cmd`` or ``POSIX``."""
    env = os.environ if environ is None else environ
    is_windows = os.name == "nt" if windows is None else windows

    if any(key in env for key in ("POWERSHELL_DISTRIBUTION_CHANNEL", "PSExecutionPolicyPreference")):
        return POWERSHELL
    # PSModulePath is also set system-wide on Windows, so it only counts there.
    if is_windows and "PSModulePath" in env and "PROMPT" not in env:
        return POWERSHELL
    if any(key in env for key in ("SHELL", "BASH_VERSION", "ZSH_VERSION", "FISH_VERSION")):
        return POSIX
    if is_windows:
        comspec = PureWindowsPath(env.get("ComSpec", "cmd.exe")).name.lower()
        return CMD if comspec == "cmd.exe" else POWERSHELL
    return POSIX


def shell_invocation(shell_kind: str, windows: Optional[bool] = None) -> Tuple[str, str]:
    """Return the ``(program, flag)`` pair used to run a command line."""
    is_windows = os.name == "nt" if windows is None else windows
    if shell_kind == POWERSHELL and is_windows:
        return "powershell", "-Command"
    if is_windows:
        return "cmd", "/C"
    return "sh", "-c"


def execute_command(command: str, working_directory: str, shell_kind: Optional[str] = None) -> str:
    """
    Run ``command`` in ``working_directory`` and return its output.

    Returns stdout alone when stderr is empty, otherwise both streams in a
    labelled block. A spawn failure is reported as text rather than raised.
    """
    shell, flag = shell_invocation(shell_kind or detect_shell_kind())
    try:
        completed = subprocess.run(
            [shell, flag, command],
            cwd=working_directory,
            stdin=subprocess.DEVNULL,
            capture_output=True,
        )
    except OSError as e:
        return f"Failed to execute command '{command}': {e}"

    stdout = completed.stdout.decode(errors="replace")
    stderr = completed.stderr.decode(errors="replace")
    if not stderr:
        return stdout
    return f"stdout:\n{stdout}\n---\nstderr:\n{stderr}"


def parse_execute_command(arguments: str) -> ExecuteCommandRequest:
    """Parse the JSON argument string of an ``execute_command`` call."""
    return ExecuteCommandRequest.model_validate_json(arguments or "{}")
