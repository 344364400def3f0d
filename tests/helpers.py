"""Test helpers (small, reusable doubles).

Keep this file tiny and purpose-built: it exists to prevent test suites from
growing lots of one-off adapter subclasses and client mocks.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any
from unittest.mock import AsyncMock, MagicMock

from castor.models import (
    GenerationResult,
    Message,
    ProviderId,
    ToolDefinition,
)
from castor.providers.base import ProviderAdapter, ProviderParams


@dataclass
class FakeClock:
    """Manually advanced clock in seconds."""

    now: float = 1000.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ScriptedAdapter(ProviderAdapter):
    """Adapter double that records params and returns scripted results.

    Each script item is a ``GenerationResult``, a dict of result fields, or an
    exception to raise.
    """

    requires_api_key = False

    def __init__(
        self,
        provider: ProviderId = ProviderId.OPENAI,
        script: list[GenerationResult | dict[str, Any] | BaseException] | None = None,
    ) -> None:
        self.provider = provider  # type: ignore[misc]
        self.script = list(script or [])
        self.calls: list[ProviderParams] = []
        self.closed = False

    async def generate(self, params: ProviderParams) -> GenerationResult:
        self.calls.append(params)
        if not self.script:
            return GenerationResult(
                provider=self.provider, model=params.model, text="ok"
            )
        item = self.script.pop(0)
        if isinstance(item, BaseException):
            raise item
        if isinstance(item, GenerationResult):
            return item
        return GenerationResult(provider=self.provider, model=params.model, **item)

    async def aclose(self) -> None:
        self.closed = True


def make_params(
    messages: list[Message] | None = None,
    *,
    model: str = "test-model",
    system_prompt: str | None = None,
    tools: list[ToolDefinition] | None = None,
    **kwargs: Any,
) -> ProviderParams:
    """Build ``ProviderParams`` the way the dispatcher would."""
    messages = messages or [Message(role="user", content="hi")]
    return ProviderParams(
        model=model,
        messages=messages,
        conversation_messages=[m for m in messages if m.role != "system"],
        system_prompt=system_prompt,
        tools=tools,
        **kwargs,
    )


@dataclass
class CapturingCall:
    """Async callable that records kwargs and returns a canned response."""

    response: Any = None
    error: BaseException | None = None
    calls: list[dict[str, Any]] = field(default_factory=list)

    async def __call__(self, **kwargs: Any) -> Any:
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        return self.response


def fake_openai_client(call: CapturingCall) -> MagicMock:
    client = MagicMock()
    client.chat.completions.create = call
    client.close = AsyncMock()
    return client


def fake_anthropic_client(call: CapturingCall) -> MagicMock:
    client = MagicMock()
    client.messages.create = call
    client.close = AsyncMock()
    return client


def fake_genai_client(call: CapturingCall) -> MagicMock:
    client = MagicMock()
    client.aio.models.generate_content = call
    client.aio.aclose = AsyncMock()
    return client


OPEN_CANVAS = ToolDefinition(
    name="openCanvas",
    description="Open a blank drawing canvas.",
    parameters={"type": "object", "properties": {}, "required": []},
)
