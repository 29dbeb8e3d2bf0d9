"""Tests for the approval gate."""

import io

import pytest
from rich.console import Console

from ask.core.approval import ApprovalGate


@pytest.fixture
def output():
    return io.StringIO()


def _gate(output, answers="", **kwargs):
    return ApprovalGate(console=Console(file=output, width=200), stdin=io.StringIO(answers), **kwargs)


class TestApprovalGate:
    """Tests for ApprovalGate.check."""

    @pytest.mark.parametrize("answer", ["y\n", "Y\n", "yes\n", "  YES  \n"])
    def test_yes_runs_once(self, output, answer):
        """Test that yes approves only this call."""
        gate = _gate(output, answer)
        assert gate.check("git_status", "Executing git_status") is True
        assert not gate.is_auto_approved("git_status")
        assert "Execute 'git_status'? [y/N/A]:" in output.getvalue()

    @pytest.mark.parametrize("answer", ["n\n", "\n", "maybe\n", ""])
    def test_anything_else_denies(self, output, answer):
        """Test that other answers deny the call."""
        assert _gate(output, answer).check("git_status", "preview") is False

    def test_all_persists(self, output):
        """Test that all approves and persists the tool."""
        persisted = []
        gate = _gate(output, "A\n", persist=persisted.append)

        assert gate.check("git_status", "preview") is True
        assert gate.check("git_status", "preview again") is True

        assert persisted == ["git_status"]
        assert output.getvalue().count("Execute 'git_status'?") == 1
        assert "preview again" in output.getvalue()

    def test_persist_failure_still_approves(self, output, caplog):
        """Test approving when the config can't be written."""
        def _fail(tool_name):
            raise OSError("read-only")

        gate = _gate(output, "all\n", persist=_fail)

        assert gate.check("execute_command", "ls") is True
        assert gate.is_auto_approved("execute_command")
        assert "Failed to save auto-approval" in caplog.text

    def test_seeded_auto_approval(self, output):
        """Test a tool auto-approved from config."""
        gate = _gate(output, auto_approved=["execute_command"])
        assert gate.check("execute_command", "ls -la") is True
        assert output.getvalue() == "ls -la\n"

    def test_verbose_auto_approval_marked(self, output):
        """Test the auto-approved marker in verbose mode."""
        gate = _gate(output, auto_approved=["execute_command"])
        gate.check("execute_command", "ls -la", verbose=True)
        assert output.getvalue() == "ls -la\n[Auto-approved]\n"

    def test_read_error_denies(self, output):
        """Test that an unreadable stdin denies the call."""
        stdin = io.StringIO()
        stdin.close()
        gate = ApprovalGate(console=Console(file=output), stdin=stdin)
        assert gate.check("execute_command", "rm -rf /") is False

    def test_preview_printed_verbatim(self, output):
        """Test that previews aren't treated as markup."""
        _gate(output, "n\n").check("filesystem_write_file", "Writing [b]/tmp/x[/b]")
        assert "Writing [b]/tmp/x[/b]" in output.getvalue()
