"""In-memory conversation sessions with TTL and capacity eviction.

A ``SessionStore`` is ordinary process-scoped state: build one at startup,
share it, and ``clear()`` it at shutdown. Eviction runs lazily inside
``create``/``get``/``list_active`` and never on a timer:

1. every session idle for longer than ``ttl_seconds`` is dropped;
2. if more than ``capacity`` remain, the least recently updated go first.

Store methods never await, so each one is atomic under asyncio. Callers that
read a session, await a provider, then append the reply should hold
``store.lock(session_id)`` for the whole sequence.
"""

from __future__ import annotations

import asyncio
import copy
from dataclasses import asdict, dataclass, field
import logging
import time
from typing import TYPE_CHECKING, Any
import uuid

from castor.errors import ConfigurationError, NotFoundError, ValidationError
from castor.models import Message, ProviderId, ToolDefinition

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Mapping

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 30 * 60
DEFAULT_CAPACITY = 200


@dataclass
class SessionDefaults:
    """Generation settings applied to every turn unless overridden."""

    max_tokens: int | None = None
    temperature: float | None = None
    top_p: float | None = None

    def __post_init__(self) -> None:
        """Reject out-of-range values early."""
        if self.max_tokens is not None and (
            isinstance(self.max_tokens, bool)
            or not isinstance(self.max_tokens, int)
            or self.max_tokens <= 0
        ):
            raise ValidationError("max_tokens must be greater than zero")
        if self.temperature is not None and not 0 <= self.temperature <= 2:
            raise ValidationError("temperature must be between 0 and 2")
        if self.top_p is not None and not 0 < self.top_p <= 1:
            raise ValidationError("top_p must be between 0 and 1")

    @classmethod
    def coerce(
        cls, value: SessionDefaults | Mapping[str, Any] | None
    ) -> SessionDefaults:
        """Accept an instance, a mapping of field values, or ``None``."""
        if value is None:
            return cls()
        if isinstance(value, SessionDefaults):
            return copy.copy(value)
        unknown = set(value) - {"max_tokens", "temperature", "top_p"}
        if unknown:
            raise ValidationError(f"Unknown session defaults: {sorted(unknown)}")
        return cls(**value)

    def merged(self, partial: SessionDefaults) -> SessionDefaults:
        """Return a copy with every field *partial* sets overriding this one."""
        return SessionDefaults(
            max_tokens=(
                partial.max_tokens
                if partial.max_tokens is not None
                else self.max_tokens
            ),
            temperature=(
                partial.temperature
                if partial.temperature is not None
                else self.temperature
            ),
            top_p=partial.top_p if partial.top_p is not None else self.top_p,
        )

    def is_empty(self) -> bool:
        """Whether no field is set."""
        return (
            self.max_tokens is None and self.temperature is None and self.top_p is None
        )


@dataclass(frozen=True)
class QueuedToolOutput:
    """A tool output waiting to be consumed by the caller."""

    call_id: str
    output: str
    added_at: float


@dataclass
class Session:
    """Live, store-owned conversation state. Mutate only through the store."""

    id: str
    provider: ProviderId
    model: str
    messages: list[Message] = field(default_factory=list)
    queued_instructions: list[str] = field(default_factory=list)
    queued_tool_outputs: list[QueuedToolOutput] = field(default_factory=list)
    defaults: SessionDefaults = field(default_factory=SessionDefaults)
    tools: list[ToolDefinition] | None = None
    created_at: float = 0.0
    updated_at: float = 0.0


@dataclass(frozen=True)
class SessionSnapshot:
    """Deep copy of a session; never aliases store state."""

    id: str
    provider: ProviderId
    model: str
    messages: list[Message]
    queued_instructions: list[str]
    queued_tool_outputs: list[QueuedToolOutput]
    defaults: SessionDefaults
    tools: list[ToolDefinition] | None
    created_at: float
    updated_at: float

    def to_dict(self) -> dict[str, Any]:
        """Return plain JSON-ready data."""
        return {
            "id": self.id,
            "provider": self.provider.value,
            "model": self.model,
            "messages": [m.to_dict() for m in self.messages],
            "queued_instructions": list(self.queued_instructions),
            "queued_tool_outputs": [asdict(o) for o in self.queued_tool_outputs],
            "defaults": asdict(self.defaults),
            "tools": (
                [asdict(t) for t in self.tools] if self.tools is not None else None
            ),
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


def _new_session_id() -> str:
    return str(uuid.uuid4())


class SessionStore:
    """Keyed, TTL-bound, capacity-bound conversation state."""

    def __init__(
        self,
        *,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        capacity: int = DEFAULT_CAPACITY,
        clock: Callable[[], float] = time.time,
        id_factory: Callable[[], str] = _new_session_id,
    ) -> None:
        """Create an empty store.

        Args:
            ttl_seconds: Idle time after which a session expires.
            capacity: Maximum number of sessions kept after a sweep.
            clock: Returns the current time in seconds; inject for tests.
            id_factory: Returns a fresh unique session id.
        """
        if ttl_seconds <= 0:
            raise ConfigurationError(f"ttl_seconds must be > 0, got {ttl_seconds}")
        if capacity < 1:
            raise ConfigurationError(f"capacity must be ≥ 1, got {capacity}")
        self.ttl_seconds = ttl_seconds
        self.capacity = capacity
        self._clock = clock
        self._id_factory = id_factory
        self._sessions: dict[str, Session] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    # --- eviction -------------------------------------------------------

    def sweep(self) -> int:
        """Drop expired sessions, then trim to capacity. Return how many went."""
        threshold = self._clock() - self.ttl_seconds
        expired = [sid for sid, s in self._sessions.items() if s.updated_at < threshold]
        for sid in expired:
            self._discard(sid)

        excess = len(self._sessions) - self.capacity
        trimmed = 0
        if excess > 0:
            # sorted() is stable: equal timestamps evict in insertion order.
            oldest = sorted(self._sessions.values(), key=lambda s: s.updated_at)
            for session in oldest[:excess]:
                self._discard(session.id)
            trimmed = excess

        if expired or trimmed:
            logger.debug(
                "Session sweep: %d expired, %d over capacity", len(expired), trimmed
            )
        return len(expired) + trimmed

    def _discard(self, session_id: str) -> bool:
        self._locks.pop(session_id, None)
        return self._sessions.pop(session_id, None) is not None

    def _touch(self, session: Session) -> None:
        session.updated_at = self._clock()

    # --- lifecycle ------------------------------------------------------

    def create(
        self,
        provider: ProviderId | str,
        model: str,
        *,
        system_prompt: str | None = None,
        initial_messages: Iterable[Message] | None = None,
        defaults: SessionDefaults | Mapping[str, Any] | None = None,
        tools: Iterable[ToolDefinition] | None = None,
    ) -> SessionSnapshot:
        """Create a session and return its snapshot.

        A non-empty *system_prompt* becomes the first stored message;
        *initial_messages* are deep-copied after it.
        """
        provider_id = ProviderId.parse(provider)
        if not isinstance(model, str) or not model.strip():
            raise ValidationError("Model is required")
        resolved_defaults = SessionDefaults.coerce(defaults)
        tool_list = [copy.deepcopy(t) for t in tools] if tools is not None else []
        messages: list[Message] = []
        if system_prompt:
            messages.append(Message(role="system", content=system_prompt))
        if initial_messages is not None:
            messages.extend(copy.deepcopy(m) for m in initial_messages)

        now = self._clock()
        session = Session(
            id=self._id_factory(),
            provider=provider_id,
            model=model,
            messages=messages,
            defaults=resolved_defaults,
            tools=tool_list or None,
            created_at=now,
            updated_at=now,
        )
        self._sessions[session.id] = session
        # Sweep after insert so the store never holds more than capacity.
        self.sweep()
        logger.debug("Created session %s (%s/%s)", session.id, provider_id.value, model)
        return self.serialize(session)

    def get(self, session_id: str) -> Session | None:
        """Return the live session for *session_id*, or ``None``."""
        self.sweep()
        return self._sessions.get(session_id)

    def require(self, session_id: str) -> Session:
        """Return the live session for *session_id* or raise ``NotFoundError``."""
        session = self.get(session_id)
        if session is None:
            raise NotFoundError(f"Session not found: {session_id}")
        return session

    def delete(self, session_id: str) -> bool:
        """Remove a session. Return whether one existed."""
        removed = self._discard(session_id)
        if removed:
            logger.debug("Deleted session %s", session_id)
        return removed

    def clear(self) -> None:
        """Drop every session (shutdown)."""
        self._sessions.clear()
        self._locks.clear()

    def lock(self, session_id: str) -> asyncio.Lock:
        """Return the lock serializing turns against a live *session_id*.

        Raises ``NotFoundError`` for unknown ids, so stale ids never leave a
        lock behind. Holders must still ``require()`` the session once the
        lock is acquired: it may have been deleted while they waited.
        """
        self.require(session_id)
        lock = self._locks.get(session_id)
        if lock is None:
            lock = self._locks[session_id] = asyncio.Lock()
        return lock

    # --- mutation -------------------------------------------------------

    def append_messages(self, session: Session, messages: Iterable[Message]) -> None:
        """Append deep copies of *messages* and refresh ``updated_at``."""
        session.messages.extend(copy.deepcopy(m) for m in messages)
        self._touch(session)

    def queue_instructions(self, session: Session, instructions: Iterable[str]) -> None:
        """Queue instructions for the caller to consume later."""
        items = list(instructions)
        if not items:
            return
        session.queued_instructions.extend(items)
        self._touch(session)

    def queue_tool_outputs(
        self, session: Session, outputs: Iterable[Mapping[str, str]]
    ) -> None:
        """Queue ``{"call_id", "output"}`` entries stamped with the enqueue time."""
        items = list(outputs)
        if not items:
            return
        now = self._clock()
        queued: list[QueuedToolOutput] = []
        for index, item in enumerate(items):
            call_id = item.get("call_id")
            output = item.get("output")
            if not isinstance(call_id, str) or not call_id:
                raise ValidationError(
                    f"outputs[{index}].call_id must be a non-empty string"
                )
            if not isinstance(output, str):
                raise ValidationError(f"outputs[{index}].output must be a string")
            queued.append(
                QueuedToolOutput(call_id=call_id, output=output, added_at=now)
            )
        session.queued_tool_outputs.extend(queued)
        self._touch(session)

    def clear_queues(self, session: Session) -> None:
        """Empty both pending queues."""
        if not session.queued_instructions and not session.queued_tool_outputs:
            return
        session.queued_instructions = []
        session.queued_tool_outputs = []
        self._touch(session)

    def update_defaults(
        self, session: Session, defaults: SessionDefaults | Mapping[str, Any]
    ) -> None:
        """Shallow-merge *defaults* into the session's defaults."""
        session.defaults = session.defaults.merged(SessionDefaults.coerce(defaults))
        self._touch(session)

    # --- views ----------------------------------------------------------

    def serialize(self, session: Session) -> SessionSnapshot:
        """Return a deep-copied snapshot of *session*."""
        return SessionSnapshot(
            id=session.id,
            provider=session.provider,
            model=session.model,
            messages=copy.deepcopy(session.messages),
            queued_instructions=list(session.queued_instructions),
            queued_tool_outputs=list(session.queued_tool_outputs),
            defaults=copy.copy(session.defaults),
            tools=copy.deepcopy(session.tools),
            created_at=session.created_at,
            updated_at=session.updated_at,
        )

    def list_active(self) -> list[SessionSnapshot]:
        """Snapshot every live session after a sweep."""
        self.sweep()
        return [self.serialize(s) for s in self._sessions.values()]
