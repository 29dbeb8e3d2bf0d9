"""Tests for the built-in shell tool."""

import os

import pytest

from ask.core.shell import (
    CMD,
    POSIX,
    POWERSHELL,
    detect_shell_kind,
    execute_command,
    execute_command_tool,
    parse_execute_command,
    shell_invocation,
)

posix_only = pytest.mark.skipif(os.name == "nt", reason="runs commands through sh")


class TestDetectShellKind:
    """Tests for shell detection heuristics."""

    def test_posix_shell_var(self):
        """Test detecting a POSIX shell."""
        assert detect_shell_kind({"SHELL": "/bin/zsh"}, windows=False) == POSIX

    def test_powershell_markers(self):
        """Test detecting PowerShell from its variables."""
        assert detect_shell_kind({"POWERSHELL_DISTRIBUTION_CHANNEL": "MSI"}, windows=True) == POWERSHELL

    def test_ps_module_path_only_counts_on_windows(self):
        """Test PSModulePath outside and inside Windows."""
        assert detect_shell_kind({"PSModulePath": "x"}, windows=False) == POSIX
        assert detect_shell_kind({"PSModulePath": "x"}, windows=True) == POWERSHELL

    def test_windows_cmd(self):
        """Test detecting cmd.exe."""
        env = {"PSModulePath": "x", "PROMPT": "$P$G", "ComSpec": r"C:\Windows\System32\cmd.exe"}
        assert detect_shell_kind(env, windows=True) == CMD

    def test_defaults(self):
        """Test detection with an empty environment."""
        assert detect_shell_kind({}, windows=False) == POSIX
        assert detect_shell_kind({}, windows=True) == CMD


class TestShellInvocation:
    """Tests for the shell used to run a command line."""

    def test_posix(self):
        """Test the POSIX invocation."""
        assert shell_invocation(POSIX, windows=False) == ("sh", "-c")

    def test_powershell_on_windows(self):
        """Test the PowerShell invocation."""
        assert shell_invocation(POWERSHELL, windows=True) == ("powershell", "-Command")

    def test_cmd_on_windows(self):
        """Test the cmd invocation."""
        assert shell_invocation(CMD, windows=True) == ("cmd", "/C")


@posix_only
class TestExecuteCommand:
    """Tests for running commands."""

    def test_stdout_only(self, tmp_path):
        """Test returning plain stdout."""
        assert execute_command("echo hello", str(tmp_path), POSIX) == "hello\n"

    def test_runs_in_working_directory(self, tmp_path):
        """Test running in the given directory."""
        (tmp_path / "marker.txt").write_text("")
        assert "marker.txt" in execute_command("ls", str(tmp_path), POSIX)

    def test_stderr_included(self, tmp_path):
        """Test labelling stdout and stderr."""
        output = execute_command("echo out; echo err >&2", str(tmp_path), POSIX)
        assert output == "stdout:\nout\n\n---\nstderr:\nerr\n"

    def test_exit_status_ignored(self, tmp_path):
        """Test that a non-zero exit still returns output."""
        assert execute_command("echo partial; exit 3", str(tmp_path), POSIX) == "partial\n"

    def test_missing_directory(self, tmp_path):
        """Test a working directory that doesn't exist."""
        missing = tmp_path / "missing"
        output = execute_command("echo hi", str(missing), POSIX)
        assert output.startswith("Failed to execute command 'echo hi': ")


class TestExecuteCommandTool:
    """Tests for the tool descriptor and argument parsing."""

    def test_descriptor(self):
        """Test the execute_command descriptor."""
        function = execute_command_tool().to_openai()["function"]
        assert function["name"] == "execute_command"
        assert function["description"] == "Execute a command on the Operating System"
        assert function["parameters"]["required"] == ["command", "working_directory"]

    def test_parse(self):
        """Test parsing command arguments."""
        request = parse_execute_command('{"command": "ls", "working_directory": "/tmp"}')
        assert request.command == "ls"
        assert request.working_directory == "/tmp"

    def test_parse_invalid(self):
        """Test parsing incomplete or invalid arguments."""
        with pytest.raises(ValueError):
            parse_execute_command('{"command": "ls"}')
        with pytest.raises(ValueError):
            parse_execute_command("not json")
