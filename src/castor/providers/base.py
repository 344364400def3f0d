"""Adapter contract shared by every provider."""

from __future__ import annotations

from dataclasses import dataclass
import json
from typing import TYPE_CHECKING, Any, ClassVar

from castor.config import resolve_api_key
from castor.errors import ValidationError

if TYPE_CHECKING:
    from castor.models import (
        GenerationResult,
        Message,
        ProviderId,
        ToolDefinition,
    )


@dataclass(frozen=True)
class ProviderParams:
    """Adapter-facing parameter bag.

    Optional fields are ``None`` when the caller did not set them; each adapter
    applies its own defaults.
    """

    model: str
    #: Full caller timeline, system turns included, in original order.
    messages: list[Message]
    #: Timeline with system turns removed.
    conversation_messages: list[Message]
    system_prompt: str | None = None
    max_tokens: int | None = None
    temperature: float | None = None
    top_p: float | None = None
    tools: list[ToolDefinition] | None = None


class ProviderAdapter:
    """Translate a canonical request, make one network call, parse the reply.

    Subclasses implement ``translate``, ``invoke`` and ``parse``; ``generate``
    runs them in order after the credential check, so configuration errors
    always precede any network attempt.
    """

    provider: ClassVar[ProviderId]
    requires_api_key: ClassVar[bool] = True

    def check_credentials(self) -> str | None:
        """Return the API key, raising ``ConfigurationError`` when it is missing."""
        if not self.requires_api_key:
            return None
        return resolve_api_key(self.provider)

    def translate(self, params: ProviderParams) -> dict[str, Any]:
        """Build the provider wire request."""
        raise NotImplementedError

    async def invoke(self, wire: dict[str, Any]) -> dict[str, Any]:
        """Perform exactly one network exchange and return the decoded body."""
        raise NotImplementedError

    def parse(self, raw: dict[str, Any], params: ProviderParams) -> GenerationResult:
        """Decode the provider response into a canonical result."""
        raise NotImplementedError

    async def generate(self, params: ProviderParams) -> GenerationResult:
        """Run the translate → invoke → parse pipeline."""
        self.check_credentials()
        wire = self.translate(params)
        raw = await self.invoke(wire)
        return self.parse(raw, params)

    async def aclose(self) -> None:
        """Release client resources. No-op by default."""
        return None


def load_arguments(arguments: str) -> Any:
    """Parse a canonical JSON argument string into a native object.

    Empty strings count as ``{}``; malformed JSON is a ``ValidationError``.
    """
    if not arguments:
        return {}
    try:
        return json.loads(arguments)
    except json.JSONDecodeError as e:
        raise ValidationError(
            "Tool call arguments must be a JSON-encoded string"
        ) from e


def dump_arguments(value: Any) -> str:
    """Serialize a native argument object into the canonical JSON string."""
    if isinstance(value, str):
        return value
    return json.dumps(value if value is not None else {})


def to_plain_dict(response: Any, *, by_alias: bool = False) -> dict[str, Any]:
    """Decode an SDK response object into plain JSON-like data."""
    if isinstance(response, dict):
        return response
    dump = getattr(response, "model_dump", None)
    if callable(dump):
        return dump(mode="json", exclude_none=True, by_alias=by_alias)
    raise TypeError(f"Unexpected response type: {type(response).__name__}")


def function_tool_spec(tool: ToolDefinition) -> dict[str, Any]:
    """Render a tool as an OpenAI-style ``{"type": "function", ...}`` entry."""
    function: dict[str, Any] = {"name": tool.name}
    if tool.description is not None:
        function["description"] = tool.description
    if tool.parameters is not None:
        function["parameters"] = tool.parameters
    return {"type": "function", "function": function}
