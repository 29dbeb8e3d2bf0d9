"""
ask core module.

This module provides the orchestrator loop, the approval gate and the
built-in shell tool.
"""

from ask.core.approval import ApprovalGate
from ask.core.orchestrator import AskError, Orchestrator, ask
from ask.core.shell import detect_shell_kind, execute_command

__all__ = [
    "ApprovalGate",
    "AskError",
    "Orchestrator",
    "ask",
    "detect_shell_kind",
    "execute_command",
]
