"""
ask - Ask questions from the terminal, answered by a tool-calling model.

The model can run shell commands and call tools exposed by external
tool servers (JSON-RPC over stdio). Every tool call goes through an
interactive approval gate, and conversations are saved as resumable
sessions under ~/.ask/.

Layout:
- validation/  ~/.ask/config loading and editing
- mcp/         tool-server transport, registry and schema cache
- core/        approval gate, shell tool, orchestrator loop
- state/       session store
- providers/   OpenAI-compatible chat-completion client
"""

__version__ = "0.4.0"
__license__ = "MIT"

from ask.core.orchestrator import AskError, Orchestrator, ask

__all__ = [
    "AskError",
    "Orchestrator",
    "ask",
    "__version__",
]
