"""Ollama (local) provider over the native ``/api/chat`` endpoint."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any
import uuid

import httpx
from pydantic import BaseModel

from castor.config import resolve_ollama_base_url
from castor.errors import ProviderError
from castor.models import GenerationResult, ProviderId, ToolCall, Usage
from castor.providers._errors import wrap_provider_error
from castor.providers.base import (
    ProviderAdapter,
    ProviderParams,
    dump_arguments,
    function_tool_spec,
    load_arguments,
)

logger = logging.getLogger(__name__)

_FENCE = "```"


class _WireFunction(BaseModel):
    name: str
    arguments: Any = None


class _WireToolCall(BaseModel):
    function: _WireFunction


class _WireMessage(BaseModel):
    role: str | None = None
    content: str | None = None
    tool_calls: list[_WireToolCall] | None = None


class OllamaChatResponse(BaseModel):
    """The subset of an ``/api/chat`` response Castor reads."""

    model: str | None = None
    message: _WireMessage | None = None
    response: str | None = None
    prompt_eval_count: int | None = None
    eval_count: int | None = None


class OllamaAdapter(ProviderAdapter):
    """Ollama adapter. No credential; base URL from ``OLLAMA_BASE_URL``."""

    provider = ProviderId.OLLAMA
    requires_api_key = False

    def __init__(self, *, client: httpx.AsyncClient | None = None) -> None:
        """Create the adapter, optionally around an existing HTTP client."""
        self._client = client

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            # No request timeout: local models can take minutes to answer.
            self._client = httpx.AsyncClient(timeout=None)
        return self._client

    def translate(self, params: ProviderParams) -> dict[str, Any]:
        """Build an ``/api/chat`` request body.

        System turns stay in place in the message list. Ollama has no call-id
        channel, so tool results are folded into the message text.
        """
        messages: list[dict[str, Any]] = []
        for message in params.messages:
            wire: dict[str, Any] = {"role": message.role, "content": message.content}
            if message.role == "tool" and message.tool_call_id:
                wire["content"] = (
                    f"Tool result for {message.tool_call_id}: {message.content}"
                )
            if message.role == "assistant" and message.tool_calls:
                wire["tool_calls"] = [
                    {
                        "function": {
                            "name": tc.name,
                            "arguments": load_arguments(tc.arguments),
                        }
                    }
                    for tc in message.tool_calls
                ]
            messages.append(wire)

        body: dict[str, Any] = {
            "model": params.model,
            "stream": False,
            "messages": messages,
        }
        options: dict[str, Any] = {}
        if params.temperature is not None:
            options["temperature"] = params.temperature
        if params.max_tokens is not None:
            options["num_predict"] = params.max_tokens
        if params.top_p is not None:
            options["top_p"] = params.top_p
        if options:
            body["options"] = options
        if params.tools:
            body["tools"] = [function_tool_spec(tool) for tool in params.tools]
        return body

    async def invoke(self, wire: dict[str, Any]) -> dict[str, Any]:
        """POST the request to ``{base_url}/api/chat``."""
        url = f"{resolve_ollama_base_url()}/api/chat"
        client = self._get_client()
        try:
            response = await client.post(url, json=wire)
        except asyncio.CancelledError:
            raise
        except httpx.HTTPError as e:
            raise wrap_provider_error(
                e,
                provider=self.provider.value,
                message=f"Ollama request to {url} failed",
            ) from e

        if not response.is_success:
            raise ProviderError(
                f"Ollama API error: {response.status_code} "
                f"{response.reason_phrase} - {response.text}",
                status_code=response.status_code,
                provider=self.provider.value,
                body=response.text,
            )
        try:
            data = response.json()
        except ValueError as e:
            raise ProviderError(
                "Ollama returned a non-JSON response",
                status_code=response.status_code,
                provider=self.provider.value,
                body=response.text,
            ) from e
        return data if isinstance(data, dict) else {}

    def parse(self, raw: dict[str, Any], params: ProviderParams) -> GenerationResult:
        """Decode an ``/api/chat`` response.

        Models without native function calling tend to answer with the call
        written out as JSON text; when tools were declared and no native
        ``tool_calls`` arrived, that text is parsed as a fallback.
        """
        response = OllamaChatResponse.model_validate(raw)
        message = response.message

        text = (message.content if message else None) or response.response or ""

        tool_calls = [
            ToolCall(
                id=f"call_{uuid.uuid4().hex[:12]}",
                name=tc.function.name,
                arguments=dump_arguments(tc.function.arguments),
            )
            for tc in ((message.tool_calls if message else None) or [])
        ]
        if not tool_calls and params.tools:
            tool_calls = extract_fallback_tool_calls(text)
            if tool_calls:
                logger.debug(
                    "Recovered %d tool call(s) from Ollama message text",
                    len(tool_calls),
                )

        usage = None
        if response.prompt_eval_count is not None or response.eval_count is not None:
            input_tokens = response.prompt_eval_count or 0
            output_tokens = response.eval_count or 0
            usage = Usage(
                input_tokens=input_tokens,
                output_tokens=output_tokens,
                total_tokens=input_tokens + output_tokens,
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
        """Close the HTTP client."""
        client = self._client
        if client is None:
            return
        self._client = None
        await client.aclose()


def strip_code_fence(content: str) -> str:
    """Remove a surrounding Markdown code fence (with optional language tag)."""
    trimmed = content.strip()
    if not trimmed.startswith(_FENCE) or trimmed.rfind(_FENCE) == 0:
        return trimmed

    first_newline = trimmed.find("\n")
    if first_newline == -1:
        return trimmed

    body = trimmed[first_newline + 1 :]
    closing = body.rfind(_FENCE)
    if closing == -1:
        return trimmed
    return body[:closing].strip()


def extract_fallback_tool_calls(text: str) -> list[ToolCall]:
    """Parse tool calls written out as JSON in the assistant's text.

    Accepts one object or an array of objects shaped ``{name, arguments}``,
    optionally inside a code fence. ``arguments`` must be an object or a JSON
    string encoding one; other items are skipped. Anything unparseable yields
    no calls; this never raises.
    """
    if not text or not text.strip():
        return []

    try:
        parsed = json.loads(strip_code_fence(text))
    except (ValueError, RecursionError):
        return []

    items = parsed if isinstance(parsed, list) else [parsed]
    calls: list[ToolCall] = []
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            continue
        name = item.get("name")
        if not isinstance(name, str) or not name:
            continue
        args = item.get("arguments")
        if isinstance(args, str):
            # Some models send the arguments already JSON-encoded.
            try:
                args = json.loads(args) if args.strip() else None
            except (ValueError, RecursionError):
                continue
        if args is None:
            args = {}
        if not isinstance(args, dict):
            continue
        arguments = dump_arguments(args)
        calls.append(
            ToolCall(id=f"fallback_call_{index}", name=name, arguments=arguments)
        )
    return calls
