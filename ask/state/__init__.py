"""
ask state management module.

This module provides session persistence for resumable conversations.
"""

from ask.state.sessions import SessionInfo, SessionStore

__all__ = ["SessionInfo", "SessionStore"]
