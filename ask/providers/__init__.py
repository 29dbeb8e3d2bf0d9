"""
ask providers module.

This module provides the chat-completion client used by the orchestrator.
"""

from ask.providers.base import (
    ChatCompletion,
    ChatModel,
    MissingAPIKeyError,
    ModelAPIError,
    OpenAICompatibleClient,
    get_api_key,
)

__all__ = [
    "ChatCompletion",
    "ChatModel",
    "MissingAPIKeyError",
    "ModelAPIError",
    "OpenAICompatibleClient",
    "get_api_key",
]
