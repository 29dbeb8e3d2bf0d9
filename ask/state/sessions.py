"""
ask Session Store - Named conversation transcripts on disk.

Each session is the full chat-completion message list, stored as a JSON
array in ~/.ask/sessions/<name>. The file ``.last-session`` in the same
directory holds the name of the most recently written session, and the
session ``last`` is where unnamed conversations are auto-saved.
"""

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

LAST_SESSION = "last"
LAST_SESSION_POINTER = ".last-session"
RESERVED_NAMES = (LAST_SESSION, LAST_SESSION_POINTER)

MESSAGE_ROLES = ("system", "user", "assistant", "tool")


@dataclass
class SessionInfo:
    """A listed session and a human-readable modification time."""

    name: str
    modified: str


def humanize_mtime(modified: datetime, now: Optional[datetime] = None) -> str:
    """Format a modification time the way ``session list`` shows it."""
    now = now or datetime.now()
    elapsed = now - modified
    minutes = int(elapsed.total_seconds() // 60)
    hours = minutes // 60

    if hours < 1:
        if minutes < 1:
            return "just now"
        return f"{minutes} minutes ago"
    if hours < 24:
        return f"{hours} hours ago"
    return modified.strftime("%d %b %y %H:%M")


def check_session_name(name: str) -> str:
    """Return ``name`` if it can be used as a session file name."""
    if not name or "/" in name or "\\" in name or name in (".", ".."):
        raise ValueError(f"Invalid session name: '{name}'")
    return name


class SessionStore:
    """
    Load and save conversation transcripts by name.

    Example:
        >>> store = SessionStore()
        >>> store.save("refactor", messages)
        >>> store.load("refactor")
    """

    def __init__(self, session_dir: Path):
        """
        Initialize the SessionStore.

        Args:
            session_dir: Directory holding session files. Created on first use.
        """
        self.session_dir = Path(session_dir)

    def _ensure_dir(self) -> Path:
        self.session_dir.mkdir(parents=True, exist_ok=True)
        return self.session_dir

    def _path(self, name: str) -> Path:
        return self._ensure_dir() / check_session_name(name)

    def load(self, name: str) -> Optional[List[Dict[str, Any]]]:
        """
        Load a session's messages.

        Returns:
            The message list, or None if the session is absent or malformed.
        """
        path = self._path(name)
        if not path.exists():
            logger.debug("Session not found: %s", path)
            return None

        try:
            with open(path, encoding="utf-8") as f:
                messages = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning("Failed to parse session '%s': %s", name, e)
            return None

        if not _is_message_list(messages):
            logger.warning("Failed to parse session '%s': not a list of chat messages", name)
            return None
        return messages

    def save(
        self,
        name: str,
        messages: List[Dict[str, Any]],
        response: Optional[Dict[str, Any]] = None,
    ) -> Path:
        """
        Write a session, then point ``.last-session`` at it.

        Args:
            name: Session name.
            messages: Transcript to store.
            response: Optional final assistant message; only its text
                content is appended.

        Returns:
            Path to the session file.
        """
        if name == LAST_SESSION_POINTER:
            raise ValueError(f"'{name}' is a reserved session name")
        path = self._path(name)

        session = list(messages)
        if response is not None:
            session.append({"role": "assistant", "content": response.get("content")})

        with open(path, "w", encoding="utf-8") as f:
            json.dump(session, f, indent=2)

        self._set_last_name(name)
        return path

    def last_name(self) -> Optional[str]:
        """Name of the most recently written session, if any."""
        try:
            return (self._ensure_dir() / LAST_SESSION_POINTER).read_text(encoding="utf-8") or None
        except OSError:
            return None

    def _set_last_name(self, name: str) -> None:
        (self._ensure_dir() / LAST_SESSION_POINTER).write_text(name, encoding="utf-8")

    def list_sessions(self) -> List[SessionInfo]:
        """List saved sessions, skipping the reserved ones."""
        sessions: List[SessionInfo] = []
        for path in sorted(self._ensure_dir().iterdir()):
            if path.name in RESERVED_NAMES or not path.is_file():
                continue
            modified = datetime.fromtimestamp(path.stat().st_mtime)
            sessions.append(SessionInfo(name=path.name, modified=humanize_mtime(modified)))
        return sessions


def _is_message_list(value: Any) -> bool:
    return isinstance(value, list) and all(
        isinstance(message, dict) and message.get("role") in MESSAGE_ROLES for message in value
    )
