"""Session turns: append input, generate, append the reply.

Each helper holds the session's lock from the first read to the last append,
so concurrent turns against one session id run one after another.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import TYPE_CHECKING, Any

from castor.errors import ValidationError
from castor.models import GenerationRequest, Message
from castor.sessions import SessionDefaults

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from castor.models import GenerationResult
    from castor.runtime import Runtime
    from castor.sessions import Session, SessionSnapshot

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TurnResult:
    """Outcome of one generating turn."""

    result: GenerationResult
    session: SessionSnapshot


def normalize_instructions(value: str | Iterable[str] | None) -> list[str]:
    """Trim instructions and drop blank ones."""
    if value is None:
        return []
    if isinstance(value, str):
        value = [value]
    out: list[str] = []
    for index, item in enumerate(value):
        if not isinstance(item, str):
            raise ValidationError(f"instructions[{index}] must be a string")
        trimmed = item.strip()
        if trimmed:
            out.append(trimmed)
    return out


def _build_request(
    session: Session, overrides: SessionDefaults | None = None
) -> GenerationRequest:
    """Build a request from session state; *overrides* win over defaults."""
    effective = session.defaults.merged(overrides) if overrides else session.defaults
    return GenerationRequest(
        provider=session.provider,
        model=session.model,
        messages=list(session.messages),
        max_tokens=effective.max_tokens,
        temperature=effective.temperature,
        top_p=effective.top_p,
        tools=list(session.tools) if session.tools else None,
    )


async def _generate_and_record(
    runtime: Runtime, session: Session, overrides: SessionDefaults | None = None
) -> GenerationResult:
    result = await runtime.dispatcher.generate(_build_request(session, overrides))
    if result.text or result.tool_calls:
        runtime.sessions.append_messages(
            session,
            [
                Message(
                    role="assistant",
                    content=result.text or "",
                    tool_calls=list(result.tool_calls) if result.tool_calls else None,
                )
            ],
        )
    return result


async def send_message(
    runtime: Runtime,
    session_id: str,
    content: str,
    *,
    instructions: str | Iterable[str] | None = None,
    overrides: SessionDefaults | Mapping[str, Any] | None = None,
) -> TurnResult:
    """Send a user message and record the assistant's reply.

    *instructions* are appended as system turns before the message.
    *overrides* apply to this turn and are then kept as session defaults.
    """
    if not isinstance(content, str) or not content.strip():
        raise ValidationError("Message content must be a non-empty string")
    new_instructions = normalize_instructions(instructions)
    turn_defaults = SessionDefaults.coerce(overrides)

    store = runtime.sessions
    async with store.lock(session_id):
        session = store.require(session_id)
        if new_instructions:
            store.append_messages(
                session, [Message(role="system", content=i) for i in new_instructions]
            )
        store.append_messages(session, [Message(role="user", content=content.strip())])

        result = await _generate_and_record(runtime, session, turn_defaults)

        if not turn_defaults.is_empty():
            store.update_defaults(session, turn_defaults)
        return TurnResult(result=result, session=store.serialize(session))


async def submit_instructions(
    runtime: Runtime, session_id: str, instructions: str | Iterable[str]
) -> TurnResult:
    """Append instructions as system turns and let the model respond."""
    new_instructions = normalize_instructions(instructions)
    if not new_instructions:
        raise ValidationError("At least one non-empty instruction is required")

    store = runtime.sessions
    async with store.lock(session_id):
        session = store.require(session_id)
        logger.debug(
            "Session %s: %d instruction(s) received", session_id, len(new_instructions)
        )
        store.append_messages(
            session, [Message(role="system", content=i) for i in new_instructions]
        )
        result = await _generate_and_record(runtime, session)
        return TurnResult(result=result, session=store.serialize(session))


async def submit_tool_outputs(
    runtime: Runtime, session_id: str, outputs: Iterable[Mapping[str, str]]
) -> SessionSnapshot:
    """Append ``{"call_id", "output"}`` entries as tool turns. No generation."""
    messages: list[Message] = []
    for index, item in enumerate(outputs):
        call_id = item.get("call_id")
        output = item.get("output")
        if not isinstance(call_id, str) or not call_id.strip():
            raise ValidationError(
                f"outputs[{index}].call_id must be a non-empty string"
            )
        if not isinstance(output, str) or not output.strip():
            raise ValidationError(
                f"outputs[{index}].output must be a non-empty string"
            )
        messages.append(
            Message(role="tool", content=output.strip(), tool_call_id=call_id.strip())
        )
    if not messages:
        raise ValidationError("At least one tool output is required")

    store = runtime.sessions
    async with store.lock(session_id):
        session = store.require(session_id)
        store.append_messages(session, messages)
        return store.serialize(session)
