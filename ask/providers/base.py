"""
ask Provider Base - Chat-completion client interface.

This module defines the interface the orchestrator talks to, and an
implementation for any OpenAI-compatible ``/chat/completions`` endpoint
(OpenAI, OpenRouter, local gateways) built on httpx.
"""

import logging
import os
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Mapping, Optional

import httpx
from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.openai.com/v1"
REQUEST_TIMEOUT = 600.0


class ModelAPIError(Exception):
    """Raised when the chat-completion API can't produce a response."""


class MissingAPIKeyError(ModelAPIError):
    """Raised when no API key is available in the environment."""


# ── Response models ───────────────────────────────────────────────────────


class FunctionCall(BaseModel):
    name: str
    arguments: str = ""


class ToolCall(BaseModel):
    """A tool invocation requested by the model."""

    id: str
    type: str = "function"
    function: FunctionCall


class ResponseMessage(BaseModel):
    role: str = "assistant"
    content: Optional[str] = None
    tool_calls: Optional[List[ToolCall]] = None

    def to_dict(self) -> Dict[str, Any]:
        """Chat-message dict suitable for the transcript."""
        message: Dict[str, Any] = {"role": "assistant", "content": self.content}
        if self.tool_calls:
            message["tool_calls"] = [call.model_dump() for call in self.tool_calls]
        return message


class Choice(BaseModel):
    index: int = 0
    message: ResponseMessage = Field(default_factory=ResponseMessage)
    finish_reason: Optional[str] = None


class ChatCompletion(BaseModel):
    """Parsed ``/chat/completions`` response."""

    id: Optional[str] = None
    model: Optional[str] = None
    choices: List[Choice] = Field(default_factory=list)


# ── Credentials ───────────────────────────────────────────────────────────


def get_api_key(base_url: Optional[str], environ: Optional[Mapping[str, str]] = None) -> str:
    """
    Find the API key for ``base_url``.

    Checks ASK_API_KEY, then OPENROUTER_API_KEY when the base URL points at
    OpenRouter, then OPENAI_API_KEY.

    Raises:
        MissingAPIKeyError: If none of them is set.
    """
    env = os.environ if environ is None else environ
    is_openrouter = bool(base_url) and "openrouter" in base_url

    if env.get("ASK_API_KEY"):
        logger.debug("Found ASK_API_KEY")
        return env["ASK_API_KEY"]

    if is_openrouter and env.get("OPENROUTER_API_KEY"):
        logger.debug("Detected OpenRouter URL, found OPENROUTER_API_KEY")
        return env["OPENROUTER_API_KEY"]

    if env.get("OPENAI_API_KEY"):
        logger.debug("Found OPENAI_API_KEY")
        return env["OPENAI_API_KEY"]

    if is_openrouter:
        hints = [
            "ASK_API_KEY (universal)",
            "OPENROUTER_API_KEY (for OpenRouter)",
            "OPENAI_API_KEY (for OpenAI)",
        ]
    else:
        hints = [
            "ASK_API_KEY (universal)",
            "OPENAI_API_KEY (for OpenAI)",
            "OPENROUTER_API_KEY (if using OpenRouter)",
        ]
    raise MissingAPIKeyError(
        "No API key found. Please set one of the following environment variables:\n"
        + "\n".join(f"  - {hint}" for hint in hints)
    )


# ── Clients ───────────────────────────────────────────────────────────────


class ChatModel(ABC):
    """Interface for a one-shot chat-completion endpoint."""

    @abstractmethod
    def complete(
        self,
        model: str,
        messages: List[Dict[str, Any]],
        tools: Optional[List[Dict[str, Any]]] = None,
        tool_choice: str = "auto",
    ) -> ChatCompletion:
        """
        Issue one chat-completion request.

        Raises:
            ModelAPIError: On transport, HTTP or decoding failures.
        """
        pass


class OpenAICompatibleClient(ChatModel):
    """
    Client for an OpenAI-compatible chat completions API.

    No streaming and no retries: each call is a single request whose
    failure is reported verbatim.
    """

    def __init__(
        self,
        api_key: str,
        base_url: Optional[str] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.base_url = (base_url or DEFAULT_BASE_URL).rstrip("/")
        self._client = httpx.Client(
            base_url=self.base_url,
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
            timeout=REQUEST_TIMEOUT,
            transport=transport,
        )

    @classmethod
    def from_config(cls, base_url: Optional[str], transport: Optional[httpx.BaseTransport] = None):
        """Build a client, resolving the API key from the environment."""
        api_key = get_api_key(base_url)
        logger.debug("Using base URL: %s", base_url or DEFAULT_BASE_URL)
        return cls(api_key=api_key, base_url=base_url, transport=transport)

    def complete(
        self,
        model: str,
        messages: List[Dict[str, Any]],
        tools: Optional[List[Dict[str, Any]]] = None,
        tool_choice: str = "auto",
    ) -> ChatCompletion:
        payload: Dict[str, Any] = {"model": model, "messages": messages}
        if tools:
            payload["tools"] = tools
            payload["tool_choice"] = tool_choice

        try:
            response = self._client.post("/chat/completions", json=payload)
        except httpx.HTTPError as e:
            raise ModelAPIError(f"OpenAI API Error: {e}")

        if response.status_code >= 400:
            error = f"HTTP {response.status_code}: {response.text}"
            if response.status_code == 400:
                raise ModelAPIError(
                    "API request failed with 400 error. This might be due to:\n"
                    f"1. Invalid model name: '{model}'\n"
                    "2. Request format issues\n"
                    "3. API rate limits or permissions\n\n"
                    f"Original error: {error}"
                )
            raise ModelAPIError(f"OpenAI API Error: {error}")

        try:
            completion = ChatCompletion.model_validate_json(response.content)
        except ValidationError as e:
            raise ModelAPIError(f"OpenAI API Error: failed to decode response: {e}")

        if not completion.choices:
            raise ModelAPIError("OpenAI API Error: response contained no choices")
        return completion

    def close(self) -> None:
        self._client.close()
