"""Canonical, provider-agnostic message/request/result model."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Literal

from castor.errors import ValidationError

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

Role = Literal["system", "user", "assistant", "tool"]

VALID_ROLES: frozenset[str] = frozenset({"system", "user", "assistant", "tool"})


class ProviderId(str, Enum):
    """Closed set of supported providers."""

    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GOOGLE = "google"
    OLLAMA = "ollama"

    @classmethod
    def parse(cls, value: ProviderId | str) -> ProviderId:
        """Coerce *value* into a ``ProviderId`` or raise ``ValidationError``."""
        if isinstance(value, ProviderId):
            return value
        try:
            return cls(value)
        except ValueError:
            supported = ", ".join(p.value for p in cls)
            raise ValidationError(
                f"Unsupported provider: {value!r}",
                hint=f"Supported providers: {supported}",
            ) from None


@dataclass(frozen=True)
class ToolCall:
    """A tool call requested by the model.

    ``arguments`` is always a JSON-encoded string, never a parsed object.
    """

    id: str
    name: str
    arguments: str

    def to_dict(self) -> dict[str, str]:
        """Return a plain dict representation."""
        return {"id": self.id, "name": self.name, "arguments": self.arguments}


@dataclass(frozen=True)
class ToolDefinition:
    """A function the model may call."""

    name: str
    description: str | None = None
    #: JSON-schema-shaped parameter description.
    parameters: dict[str, Any] | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ToolDefinition:
        """Build a definition from a plain mapping."""
        name = data.get("name")
        if not isinstance(name, str) or not name:
            raise ValidationError("Tool definitions require a non-empty name")
        parameters = data.get("parameters")
        return cls(
            name=name,
            description=data.get("description"),
            parameters=dict(parameters) if isinstance(parameters, dict) else None,
        )


@dataclass
class Message:
    """One conversational turn."""

    role: str
    content: str = ""
    #: Required when ``role == "tool"``.
    tool_call_id: str | None = None
    #: Only meaningful on assistant turns.
    tool_calls: list[ToolCall] | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Message:
        """Build a message from a plain mapping (snake or camel case keys)."""
        raw_calls = data.get("tool_calls", data.get("toolCalls"))
        tool_calls: list[ToolCall] | None = None
        if raw_calls is not None:
            tool_calls = [
                tc if isinstance(tc, ToolCall) else ToolCall(**tc) for tc in raw_calls
            ]
        content = data.get("content")
        return cls(
            role=str(data.get("role", "")),
            content=content if isinstance(content, str) else "",
            tool_call_id=data.get("tool_call_id", data.get("toolCallId")),
            tool_calls=tool_calls,
        )

    def to_dict(self) -> dict[str, Any]:
        """Return a plain dict, omitting unset optional fields."""
        out: dict[str, Any] = {"role": self.role, "content": self.content}
        if self.tool_call_id is not None:
            out["tool_call_id"] = self.tool_call_id
        if self.tool_calls is not None:
            out["tool_calls"] = [tc.to_dict() for tc in self.tool_calls]
        return out


@dataclass(frozen=True)
class Usage:
    """Token accounting normalized across providers."""

    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0


@dataclass
class GenerationRequest:
    """A single text generation request."""

    provider: ProviderId | str
    model: str
    messages: list[Message]
    max_tokens: int | None = None
    temperature: float | None = None
    top_p: float | None = None
    tools: list[ToolDefinition] | None = None


@dataclass
class GenerationResult:
    """Canonical result returned by every adapter."""

    provider: ProviderId
    model: str
    text: str
    tool_calls: list[ToolCall] | None = None
    usage: Usage | None = None
    #: Decoded provider response, kept for diagnostics only.
    raw_response: Any = field(default=None, repr=False, compare=False)


def validate_messages(messages: Iterable[Message]) -> None:
    """Reject malformed message lists before any adapter sees them."""
    items = list(messages) if messages is not None else []
    if not items:
        raise ValidationError("At least one message is required")

    for message in items:
        if message.role not in VALID_ROLES:
            raise ValidationError(f"Unsupported message role: {message.role!r}")
        if not message.tool_calls and (
            not isinstance(message.content, str) or not message.content.strip()
        ):
            raise ValidationError(
                "Message content must be a non-empty string",
                hint="Only assistant turns carrying tool_calls may have empty content.",
            )
        if message.role == "tool" and not message.tool_call_id:
            raise ValidationError("Tool messages require a tool_call_id")
