"""
Approval gate - asks the operator before a tool runs.

Answers:
- y / yes   run this call once
- a / all   run it, and auto-approve the tool from now on (persisted)
- anything else (including a read error) denies the call
"""

import logging
import sys
import threading
from typing import Callable, Iterable, Optional, Set, TextIO

from rich.console import Console

logger = logging.getLogger(__name__)


class ApprovalGate:
    """
    Per-run approval policy.

    The set of auto-approved tool names is seeded from configuration and
    grows when the operator answers ``A``; additions are visible to every
    later check in the same run and are handed to ``persist`` so future
    runs skip the prompt too.
    """

    def __init__(
        self,
        auto_approved: Iterable[str] = (),
        console: Optional[Console] = None,
        stdin: Optional[TextIO] = None,
        persist: Optional[Callable[[str], object]] = None,
    ):
        self._approved: Set[str] = set(auto_approved)
        self._lock = threading.Lock()
        self.console = console or Console(highlight=False)
        self.stdin = stdin
        self.persist = persist

    def is_auto_approved(self, tool_name: str) -> bool:
        with self._lock:
            return tool_name in self._approved

    def approve_always(self, tool_name: str) -> None:
        with self._lock:
            self._approved.add(tool_name)

    @property
    def approved(self) -> Set[str]:
        with self._lock:
            return set(self._approved)

    def check(self, tool_name: str, preview: str, verbose: bool = False) -> bool:
        """Show ``preview`` and decide whether ``tool_name`` may run."""
        if self.is_auto_approved(tool_name):
            self._print(f"{preview}\n[Auto-approved]" if verbose else preview)
            return True

        answer = self._prompt(preview, tool_name)
        if answer in ("y", "yes"):
            return True
        if answer in ("a", "all"):
            self.approve_always(tool_name)
            self._remember(tool_name, verbose)
            return True
        return False

    def _prompt(self, preview: str, tool_name: str) -> str:
        self._print(f"{preview}\nExecute '{tool_name}'? [y/N/A]: ", end="")
        stream = self.stdin or sys.stdin
        try:
            line = stream.readline()
        except (OSError, ValueError) as e:
            logger.error("Failed to read user input: %s", e)
            return ""
        return line.strip().lower()

    def _remember(self, tool_name: str, verbose: bool) -> None:
        if self.persist is None:
            return
        try:
            self.persist(tool_name)
        except Exception as e:
            logger.warning("Failed to save auto-approval to config: %s", e)
            if verbose:
                self._print(f"All future '{tool_name}' calls will be auto-approved for this session only.")
            return
        if verbose:
            self._print(f"All future '{tool_name}' calls will be auto-approved (saved to config).")

    def _print(self, text: str, end: str = "\n") -> None:
        try:
            self.console.print(text, end=end, markup=False, highlight=False, soft_wrap=True)
            self.console.file.flush()
        except OSError as e:
            logger.warning("Failed to write to stdout: %s", e)
