"""Castor: one interface to several LLM providers, plus conversation sessions.

Public API:
    - generate_text(): Validate and route one request to a provider
    - describe_providers(): Credential presence and model catalog
    - create_session() and friends: In-memory conversation state
    - Runtime: Explicit process-scoped dispatcher + session store

The module-level functions use a default ``Runtime`` created on first use;
replace it with ``set_runtime()`` and release it with ``shutdown()``.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from castor.conversation import (
    TurnResult,
    send_message,
    submit_instructions,
    submit_tool_outputs,
)
from castor.dispatcher import Dispatcher, ProviderInfo
from castor.errors import (
    CastorError,
    ConfigurationError,
    NotFoundError,
    ProviderError,
    ValidationError,
)
from castor.models import (
    GenerationRequest,
    GenerationResult,
    Message,
    ProviderId,
    ToolCall,
    ToolDefinition,
    Usage,
)
from castor.runtime import Runtime
from castor.sessions import (
    QueuedToolOutput,
    Session,
    SessionDefaults,
    SessionSnapshot,
    SessionStore,
)

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

try:
    from importlib.metadata import PackageNotFoundError, version

    __version__ = version("castor-llm")
except PackageNotFoundError:
    __version__ = "0.0.0+unknown"

# Library-level NullHandler: stay silent unless the consumer configures logging.
logging.getLogger("castor").addHandler(logging.NullHandler())

_runtime: Runtime | None = None


def get_runtime() -> Runtime:
    """Return the default runtime, creating it on first use."""
    global _runtime
    if _runtime is None:
        _runtime = Runtime()
    return _runtime


def set_runtime(runtime: Runtime | None) -> None:
    """Replace the default runtime (``None`` resets to lazy creation)."""
    global _runtime
    _runtime = runtime


async def shutdown() -> None:
    """Close and forget the default runtime."""
    global _runtime
    runtime, _runtime = _runtime, None
    if runtime is not None:
        await runtime.aclose()


async def generate_text(request: GenerationRequest) -> GenerationResult:
    """Generate a completion for *request*.

    Example:
        result = await generate_text(
            GenerationRequest(
                provider="openai",
                model="gpt-4o-mini",
                messages=[Message(role="user", content="Hello")],
            )
        )
        print(result.text)
    """
    return await get_runtime().dispatcher.generate(request)


def describe_providers() -> list[ProviderInfo]:
    """Report availability and suggested models for every provider."""
    return get_runtime().dispatcher.describe_providers()


def create_session(
    provider: ProviderId | str,
    model: str,
    *,
    system_prompt: str | None = None,
    initial_messages: Iterable[Message] | None = None,
    defaults: SessionDefaults | Mapping[str, Any] | None = None,
    tools: Iterable[ToolDefinition] | None = None,
) -> SessionSnapshot:
    """Create a session in the default store."""
    return get_runtime().sessions.create(
        provider,
        model,
        system_prompt=system_prompt,
        initial_messages=initial_messages,
        defaults=defaults,
        tools=tools,
    )


def get_session(session_id: str) -> Session | None:
    """Return a live session or ``None``."""
    return get_runtime().sessions.get(session_id)


def delete_session(session_id: str) -> bool:
    """Delete a session; return whether it existed."""
    return get_runtime().sessions.delete(session_id)


def append_session_messages(session: Session, messages: Iterable[Message]) -> None:
    """Append deep copies of *messages* to *session*."""
    get_runtime().sessions.append_messages(session, messages)


def queue_session_instructions(session: Session, instructions: Iterable[str]) -> None:
    """Queue instructions on *session*."""
    get_runtime().sessions.queue_instructions(session, instructions)


def queue_session_tool_outputs(
    session: Session, outputs: Iterable[Mapping[str, str]]
) -> None:
    """Queue tool outputs on *session*."""
    get_runtime().sessions.queue_tool_outputs(session, outputs)


def update_session_defaults(
    session: Session, defaults: SessionDefaults | Mapping[str, Any]
) -> None:
    """Shallow-merge generation defaults into *session*."""
    get_runtime().sessions.update_defaults(session, defaults)


def serialize_session(session: Session) -> SessionSnapshot:
    """Deep-copied snapshot of *session*."""
    return get_runtime().sessions.serialize(session)


def list_active_sessions() -> list[SessionSnapshot]:
    """Snapshots of every live session."""
    return get_runtime().sessions.list_active()


__all__ = [
    "CastorError",
    "ConfigurationError",
    "Dispatcher",
    "GenerationRequest",
    "GenerationResult",
    "Message",
    "NotFoundError",
    "ProviderError",
    "ProviderId",
    "ProviderInfo",
    "QueuedToolOutput",
    "Runtime",
    "Session",
    "SessionDefaults",
    "SessionSnapshot",
    "SessionStore",
    "ToolCall",
    "ToolDefinition",
    "TurnResult",
    "Usage",
    "ValidationError",
    "append_session_messages",
    "create_session",
    "delete_session",
    "describe_providers",
    "generate_text",
    "get_runtime",
    "get_session",
    "list_active_sessions",
    "queue_session_instructions",
    "queue_session_tool_outputs",
    "send_message",
    "serialize_session",
    "set_runtime",
    "shutdown",
    "submit_instructions",
    "submit_tool_outputs",
    "update_session_defaults",
]
