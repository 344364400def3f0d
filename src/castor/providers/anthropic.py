"""Anthropic Messages API provider."""

from __future__ import annotations

import asyncio
from typing import Any

from pydantic import BaseModel

from castor.errors import ConfigurationError
from castor.models import GenerationResult, Message, ProviderId, ToolCall, Usage
from castor.providers._errors import wrap_provider_error
from castor.providers.base import (
    ProviderAdapter,
    ProviderParams,
    dump_arguments,
    load_arguments,
    to_plain_dict,
)

#: Anthropic rejects requests without ``max_tokens``.
DEFAULT_MAX_TOKENS = 1024


class _WireBlock(BaseModel):
    type: str
    text: str | None = None
    id: str | None = None
    name: str | None = None
    input: Any = None


class _WireUsage(BaseModel):
    input_tokens: int | None = None
    output_tokens: int | None = None


class AnthropicMessage(BaseModel):
    """The subset of a Messages API response Castor reads."""

    content: list[_WireBlock] = []
    usage: _WireUsage | None = None
    stop_reason: str | None = None


class AnthropicAdapter(ProviderAdapter):
    """Anthropic Messages API adapter."""

    provider = ProviderId.ANTHROPIC

    def __init__(self) -> None:
        """Create the adapter; the SDK client is built on first use."""
        self._client: Any = None

    def _get_client(self) -> Any:
        """Lazily initialize and return the async Anthropic client."""
        if self._client is None:
            try:
                from anthropic import AsyncAnthropic
            except ImportError as e:
                raise ConfigurationError(
                    "anthropic package not installed",
                    hint="pip install anthropic",
                ) from e
            self._client = AsyncAnthropic(api_key=self.check_credentials())
        return self._client

    def translate(self, params: ProviderParams) -> dict[str, Any]:
        """Build a Messages API request body.

        The system prompt travels in the top-level ``system`` field; only the
        non-system conversation becomes ``messages``.
        """
        body: dict[str, Any] = {
            "model": params.model,
            "max_tokens": (
                params.max_tokens
                if params.max_tokens is not None
                else DEFAULT_MAX_TOKENS
            ),
            "messages": _build_messages(params.conversation_messages),
        }
        if params.temperature is not None:
            body["temperature"] = params.temperature
        if params.top_p is not None:
            body["top_p"] = params.top_p
        if params.system_prompt:
            body["system"] = params.system_prompt
        if params.tools:
            tools: list[dict[str, Any]] = []
            for tool in params.tools:
                tool_def: dict[str, Any] = {
                    "name": tool.name,
                    "input_schema": (
                        tool.parameters
                        if tool.parameters is not None
                        else {"type": "object"}
                    ),
                }
                if tool.description is not None:
                    tool_def["description"] = tool.description
                tools.append(tool_def)
            body["tools"] = tools
        return body

    async def invoke(self, wire: dict[str, Any]) -> dict[str, Any]:
        """Send the request through the Anthropic SDK."""
        client = self._get_client()
        try:
            response = await client.messages.create(**wire)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            raise wrap_provider_error(
                e,
                provider=self.provider.value,
                message="Anthropic API error",
                env_var="ANTHROPIC_API_KEY",
            ) from e
        return to_plain_dict(response)

    def parse(self, raw: dict[str, Any], params: ProviderParams) -> GenerationResult:
        """Decode a Messages API response."""
        message = AnthropicMessage.model_validate(raw)

        text_parts: list[str] = []
        tool_calls: list[ToolCall] = []
        for block in message.content:
            if block.type == "text":
                text_parts.append(block.text or "")
            elif block.type == "tool_use":
                tool_calls.append(
                    ToolCall(
                        id=block.id or "",
                        name=block.name or "",
                        arguments=dump_arguments(block.input),
                    )
                )

        usage = None
        if message.usage is not None:
            input_tokens = message.usage.input_tokens or 0
            output_tokens = message.usage.output_tokens or 0
            usage = Usage(
                input_tokens=input_tokens,
                output_tokens=output_tokens,
                total_tokens=input_tokens + output_tokens,
            )

        return GenerationResult(
            provider=self.provider,
            model=params.model,
            text="".join(text_parts),
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


def _build_messages(conversation: list[Message]) -> list[dict[str, Any]]:
    """Convert canonical turns into Anthropic content-block messages."""
    messages: list[dict[str, Any]] = []
    for item in conversation:
        if item.role == "tool" and item.tool_call_id:
            _append_message(
                messages,
                {
                    "role": "user",
                    "content": [
                        {
                            "type": "tool_result",
                            "tool_use_id": item.tool_call_id,
                            "content": item.content,
                        }
                    ],
                },
            )
        elif item.role == "assistant" and item.tool_calls:
            blocks: list[dict[str, Any]] = []
            if item.content:
                blocks.append({"type": "text", "text": item.content})
            for tc in item.tool_calls:
                blocks.append(
                    {
                        "type": "tool_use",
                        "id": tc.id,
                        "name": tc.name,
                        "input": load_arguments(tc.arguments),
                    }
                )
            _append_message(messages, {"role": "assistant", "content": blocks})
        else:
            role = "assistant" if item.role == "assistant" else "user"
            _append_message(
                messages,
                {"role": role, "content": [{"type": "text", "text": item.content}]},
            )
    return messages


def _append_message(messages: list[dict[str, Any]], msg: dict[str, Any]) -> None:
    """Append *msg*, merging into the previous message when roles match.

    Anthropic requires strict user/assistant alternation, so consecutive
    same-role turns (for example several tool results) share one message.
    """
    if messages and messages[-1]["role"] == msg["role"]:
        messages[-1]["content"] = messages[-1]["content"] + msg["content"]
    else:
        messages.append(msg)
