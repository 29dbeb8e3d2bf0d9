"""
ask Orchestrator - The conversational tool-call loop.

Every ask():
1. Load config and seed the approval gate
2. Bring the tool schema cache up to date (cold servers start in parallel)
3. Build the transcript (resumed session or fresh system prompt) + question
4. Loop: model request -> tool calls -> tool results, until a final answer
5. Save the transcript as a session and return the answer
"""

import json
import logging
from datetime import date
from typing import Any, Dict, List, Optional, TextIO

from rich.console import Console

from ask.core.approval import ApprovalGate
from ask.core.shell import (
    EXECUTE_COMMAND,
    detect_shell_kind,
    execute_command,
    execute_command_tool,
    parse_execute_command,
)
from ask.mcp.cache import ToolCache, populate_cache_if_needed
from ask.mcp.registry import ToolRegistry
from ask.mcp.schema import ToolDescriptor
from ask.mcp.transport import MCPTransportError
from ask.providers.base import ChatModel, OpenAICompatibleClient, ToolCall
from ask.state.sessions import LAST_SESSION, SessionStore
from ask.validation.config import DEFAULT_MODEL, Config, ConfigError, add_auto_approved_tool, ask_home

logger = logging.getLogger(__name__)

MAX_TURNS = 21

SYSTEM_PROMPT = (
    "Help the user with their tasks. \n"
    "IMPORTANT: This is a one-way conversation - the user cannot reply to your messages.\n"
    "Guidelines:\n"
    "• You don't need to ask for permission to use the tools available to you \n"
    "• Use the current directory as working directory unless otherwise specified\n"
    "• Follow the conventions that the user uses.  \n"
    "• Example: If the user asks you to generate a commit message, look at other commits "
    "and generate a message that is similar to them. \n"
    "• If you don't know the answer, try to figure it out based on the information available to you.\n"
    "• Ensure shell commands are compatible with {shell}\n"
    "• Today's date is {date}.\n"
    "• Format all responses in markdown for readability\n\n"
)


class AskError(Exception):
    """Raised when the conversation ends without an answer."""


def build_system_prompt(shell: str, today: Optional[date] = None) -> str:
    today = today or date.today()
    return SYSTEM_PROMPT.format(shell=shell, date=today.strftime("%Y-%m-%d"))


def base_messages(shell: str) -> List[Dict[str, Any]]:
    return [{"role": "system", "content": build_system_prompt(shell)}]


# ── Tool call previews ────────────────────────────────────────────────────


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return json.dumps(value)


def _joined(values: Any) -> str:
    if not isinstance(values, list):
        return _text(values)
    return ", ".join(_text(v) for v in values)


def _generic_preview(tool_name: str, args: Any) -> str:
    return f"Executing {tool_name}\nArguments:\n{json.dumps(args, indent=2)}"


def format_filesystem_preview(tool_name: str, args: Dict[str, Any]) -> str:
    """Compact one-line summaries for the common filesystem server tools."""
    kind = tool_name[len("filesystem_"):] if tool_name.startswith("filesystem_") else tool_name
    path = _text(args.get("path"))

    if kind in ("read_text_file", "read_file"):
        return f"Reading {path}"
    if kind == "read_media_file":
        return f"Reading Media {path}"
    if kind == "read_multiple_files":
        return f"Reading ({_joined(args.get('paths'))})"
    if kind == "get_file_info":
        return f"Reading File Metadata ({path})"
    if kind == "list_directory":
        return f"Listing Files ({path})"
    if kind == "list_directory_with_sizes":
        return f"Listing Files with sizes ({path})"
    if kind == "directory_tree":
        excluded = args.get("excludePatterns")
        if excluded:
            return f"Listing Directory Tree ({path}) excluding {_joined(excluded)}"
        return f"Listing Directory Tree ({path})"
    if kind == "list_allowed_directories":
        return "Listing Allowed Directories"
    if kind == "search_files":
        return f"Searching({_text(args.get('pattern'))}) in {path}"
    if kind == "write_file":
        return f"Writing {path}:\n{_text(args.get('content'))}"
    if kind == "edit_file":
        return f"Editing {path}"
    if kind == "create_directory":
        return f"Creating Directory ({path})"
    if kind == "move_file":
        return f"Moving {_text(args.get('source'))} to {_text(args.get('destination'))}"
    return _generic_preview(tool_name, args)


def format_mcp_preview(tool_name: str, arguments: str, verbose: bool = False) -> str:
    """Human-readable description of a tool server call, shown before approval."""
    try:
        args = json.loads(arguments or "{}")
    except ValueError:
        return f"MCP Tool: {tool_name}\nArguments: {arguments}"

    if tool_name.startswith("filesystem_") and not verbose and isinstance(args, dict):
        return format_filesystem_preview(tool_name, args)
    return _generic_preview(tool_name, args)


# ── Orchestrator ──────────────────────────────────────────────────────────


class Orchestrator:
    """
    Drives one question through the model until it produces an answer.

    Tool calls are dispatched one at a time, in the order the model listed
    them, and each result is appended to the transcript as a tool message.
    Tool failures become tool results; only credential, transport, length
    and turn-budget failures end the conversation with an error.
    """

    def __init__(
        self,
        config: Config,
        client: ChatModel,
        approval: ApprovalGate,
        sessions: SessionStore,
        cache: ToolCache,
        shell_kind: Optional[str] = None,
        verbose: bool = False,
    ):
        self.config = config
        self.client = client
        self.approval = approval
        self.sessions = sessions
        self.cache = cache
        self.shell_kind = shell_kind or detect_shell_kind()
        self.verbose = verbose
        self.registry: Optional[ToolRegistry] = None

    def select_model(self, model_override: Optional[str] = None) -> str:
        if model_override:
            logger.debug("Using provided model: %s", model_override)
            return model_override
        if self.config.default_model:
            logger.debug("Using config default model: %s", self.config.default_model)
            return self.config.default_model
        logger.debug("Using fallback model: %s", DEFAULT_MODEL)
        return DEFAULT_MODEL

    def initial_messages(self, question: str, session_name: Optional[str] = None) -> List[Dict[str, Any]]:
        messages = None
        if session_name:
            messages = self.sessions.load(session_name)
            if messages is None:
                logger.debug("Session '%s' not loaded, starting a new conversation", session_name)
        if messages is None:
            messages = base_messages(self.shell_kind)
        messages.append({"role": "user", "content": question})
        return messages

    def run(
        self,
        question: str,
        model_override: Optional[str] = None,
        session_name: Optional[str] = None,
        max_turns: int = MAX_TURNS,
    ) -> str:
        """
        Answer ``question``, calling tools as the model requests.

        Raises:
            AskError: If the model runs out of room or turns.
            ModelAPIError: If a model request fails.
        """
        self.registry = ToolRegistry(self.config.servers(), cache=self.cache, verbose=self.verbose)
        try:
            populate_cache_if_needed(self.registry, self.cache)
            tools: List[ToolDescriptor] = [execute_command_tool()]
            tools.extend(self.cache.cached_tools(self.registry.servers))

            messages = self.initial_messages(question, session_name)
            model = self.select_model(model_override)
            return self._loop(messages, [tool.to_openai() for tool in tools], model, session_name, max_turns)
        finally:
            self.registry.close()

    def _loop(
        self,
        messages: List[Dict[str, Any]],
        tools: List[Dict[str, Any]],
        model: str,
        session_name: Optional[str],
        max_turns: int,
    ) -> str:
        logger.debug("Request: model=%s, %d message(s), %d tool(s)", model, len(messages), len(tools))

        for _ in range(max_turns):
            completion = self.client.complete(model, messages, tools=tools, tool_choice="auto")
            choice = completion.choices[0]
            message = choice.message
            finish_reason = choice.finish_reason

            if finish_reason == "tool_calls" or (finish_reason is None and message.tool_calls):
                messages.append(message.to_dict())
                for tool_call in message.tool_calls or []:
                    result = self.dispatch(tool_call)
                    messages.append({"role": "tool", "tool_call_id": tool_call.id, "content": result})
                continue

            if finish_reason in (None, "stop"):
                self._save_session(session_name, messages, message.to_dict())
                return message.content or ""

            raise AskError("Response too long")

        raise AskError(f"No response after {max_turns} attempts")

    # ── Dispatch ──────────────────────────────────────────────────────────

    def dispatch(self, tool_call: ToolCall) -> str:
        """Run one tool call and return the text for its tool message."""
        name = tool_call.function.name
        arguments = tool_call.function.arguments
        if name == EXECUTE_COMMAND:
            return self._execute_command(arguments)
        return self._execute_mcp_tool(name, arguments)

    def _execute_command(self, arguments: str) -> str:
        try:
            request = parse_execute_command(arguments)
        except ValueError as e:
            return f"Error: Failed to parse command arguments: {e}"

        if not self.approval.check(EXECUTE_COMMAND, request.command, self.verbose):
            return "Command execution canceled by user."

        output = execute_command(request.command, request.working_directory, self.shell_kind)
        return output or "Executed"

    def _execute_mcp_tool(self, name: str, arguments: str) -> str:
        resolved = self.registry.resolve(name) if self.registry else None
        if resolved is None:
            return f"Unknown tool: {name}"
        server_name, server = resolved

        preview = format_mcp_preview(name, arguments, self.verbose)
        if not self.approval.check(name, preview, self.verbose):
            return "MCP tool execution canceled by user."

        try:
            transport = self.registry.ensure_initialized(server_name)
        except (MCPTransportError, KeyError) as e:
            return f"Error: Failed to initialize MCP server '{server_name}': {e}"

        try:
            args = json.loads(arguments) if arguments else {}
            result = transport.call_tool(server.inner_name(name), args if isinstance(args, dict) else {})
        except (MCPTransportError, ValueError) as e:
            return f"Error executing MCP tool {name}: {e}"

        rendered = result.render()
        logger.debug("[MCP Tool Response]\n%s\n[End MCP Tool Response]", rendered)
        return rendered

    # ── Sessions ──────────────────────────────────────────────────────────

    def _save_session(
        self,
        session_name: Optional[str],
        messages: List[Dict[str, Any]],
        response: Dict[str, Any],
    ) -> None:
        name = session_name or LAST_SESSION
        try:
            self.sessions.save(name, messages, response)
        except (OSError, ValueError) as e:
            logger.warning("Failed to save session: %s", e)
            return
        logger.debug("Session saved successfully")


def ask(
    question: str,
    model_override: Optional[str] = None,
    session_name: Optional[str] = None,
    max_turns: int = MAX_TURNS,
    verbose: bool = False,
    client: Optional[ChatModel] = None,
    console: Optional[Console] = None,
    stdin: Optional[TextIO] = None,
) -> str:
    """
    Answer a question from the terminal.

    Args:
        question: The user's question.
        model_override: Model to use instead of the configured default.
        session_name: Session to resume and save into (``last`` if None).
        max_turns: Maximum number of model requests.
        verbose: Show extra detail in approval prompts and previews.
        client: Chat client; built from config and environment if None.
        console: Console for approval prompts.
        stdin: Stream approval answers are read from.

    Returns:
        The model's final answer.
    """
    try:
        config = Config.load()
    except ConfigError as e:
        logger.warning("Failed to load MCP config: %s", e)
        logger.warning("Continuing without MCP tools. Create ~/.ask/config to enable MCP servers.")
        config = Config()

    logger.debug(
        "Configuration: base_url=%s, default_model=%s, %d MCP server(s), %d auto-approved tool(s)",
        config.base_url,
        config.default_model,
        len(config.data.mcp_servers),
        len(config.auto_approved_tools),
    )

    approval = ApprovalGate(
        auto_approved=config.auto_approved_tools,
        console=console,
        stdin=stdin,
        persist=lambda tool_name: add_auto_approved_tool(tool_name, config.path),
    )
    owned_client = None
    if client is None:
        client = owned_client = OpenAICompatibleClient.from_config(config.base_url)

    home = ask_home()
    orchestrator = Orchestrator(
        config=config,
        client=client,
        approval=approval,
        sessions=SessionStore(home / "sessions"),
        cache=ToolCache(home / "tools_cache.json"),
        verbose=verbose,
    )
    try:
        return orchestrator.run(question, model_override, session_name, max_turns)
    finally:
        if owned_client is not None:
            owned_client.close()
