"""OpenAI Chat Completions provider."""

from __future__ import annotations

import asyncio
from typing import Any

from pydantic import BaseModel

from castor.errors import ConfigurationError
from castor.models import (
    GenerationResult,
    ProviderId,
    ToolCall,
    Usage,
)
from castor.providers._errors import wrap_provider_error
from castor.providers.base import (
    ProviderAdapter,
    ProviderParams,
    function_tool_spec,
    to_plain_dict,
)


class _WireFunction(BaseModel):
    name: str
    arguments: str | None = None


class _WireToolCall(BaseModel):
    id: str
    type: str = "function"
    function: _WireFunction


class _WireMessage(BaseModel):
    role: str = "assistant"
    content: str | None = None
    tool_calls: list[_WireToolCall] | None = None


class _WireChoice(BaseModel):
    message: _WireMessage


class _WireUsage(BaseModel):
    prompt_tokens: int | None = None
    completion_tokens: int | None = None
    total_tokens: int | None = None


class ChatCompletion(BaseModel):
    """The subset of a Chat Completions response Castor reads."""

    choices: list[_WireChoice] = []
    usage: _WireUsage | None = None


class OpenAIAdapter(ProviderAdapter):
    """OpenAI Chat Completions adapter."""

    provider = ProviderId.OPENAI

    def __init__(self) -> None:
        """Create the adapter; the SDK client is built on first use."""
        self._client: Any = None

    def _get_client(self) -> Any:
        """Lazily initialize and return the OpenAI client."""
        if self._client is None:
            try:
                from openai import AsyncOpenAI
            except ImportError as e:
                raise ConfigurationError(
                    "openai package not installed",
                    hint="pip install openai",
                ) from e
            self._client = AsyncOpenAI(api_key=self.check_credentials())
        return self._client

    def translate(self, params: ProviderParams) -> dict[str, Any]:
        """Build a Chat Completions request body."""
        messages: list[dict[str, Any]] = []
        for message in params.messages:
            wire: dict[str, Any] = {
                "role": message.role,
                "content": message.content,
            }
            if message.role == "tool" and message.tool_call_id:
                wire["tool_call_id"] = message.tool_call_id
            if message.role == "assistant" and message.tool_calls:
                wire["tool_calls"] = [
                    {
                        "id": tc.id,
                        "type": "function",
                        "function": {"name": tc.name, "arguments": tc.arguments},
                    }
                    for tc in message.tool_calls
                ]
                if not message.content:
                    wire["content"] = None
            messages.append(wire)

        body: dict[str, Any] = {"model": params.model, "messages": messages}
        if params.max_tokens is not None:
            body["max_completion_tokens"] = params.max_tokens
        if params.temperature is not None:
            body["temperature"] = params.temperature
        if params.top_p is not None:
            body["top_p"] = params.top_p
        if params.tools:
            body["tools"] = [function_tool_spec(tool) for tool in params.tools]
        return body

    async def invoke(self, wire: dict[str, Any]) -> dict[str, Any]:
        """Send the request through the OpenAI SDK."""
        client = self._get_client()
        try:
            response = await client.chat.completions.create(**wire)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            raise wrap_provider_error(
                e,
                provider=self.provider.value,
                message="OpenAI API error",
                env_var="OPENAI_API_KEY",
            ) from e
        return to_plain_dict(response)

    def parse(self, raw: dict[str, Any], params: ProviderParams) -> GenerationResult:
        """Decode a Chat Completions response."""
        completion = ChatCompletion.model_validate(raw)
        message = completion.choices[0].message if completion.choices else None

        text = (message.content if message else None) or ""
        tool_calls = [
            ToolCall(
                id=tc.id,
                name=tc.function.name,
                arguments=tc.function.arguments or "{}",
            )
            for tc in ((message.tool_calls if message else None) or [])
        ]

        usage = None
        if completion.usage is not None:
            usage = Usage(
                input_tokens=completion.usage.prompt_tokens or 0,
                output_tokens=completion.usage.completion_tokens or 0,
                total_tokens=completion.usage.total_tokens or 0,
            )

        return GenerationResult(
            provider=self.provider,
            model=params.model,
            text=text,
            tool_calls=tool_calls or None,
            usage=usage,
            raw_response=raw,
        )

    async def aclose(self) -> None:
        """Close underlying async client resources."""
        client = self._client
        if client is None:
            return
        self._client = None
        await client.close()

