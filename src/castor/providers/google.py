"""Google Gemini provider."""

from __future__ import annotations

import asyncio
import logging
from typing import Any
import uuid

from pydantic import BaseModel, Field

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

logger = logging.getLogger(__name__)

MODEL_PREFIX = "models/"


class _WireFunctionCall(BaseModel):
    id: str | None = None
    name: str
    args: dict[str, Any] | None = None


class _WirePart(BaseModel):
    text: str | None = None
    thought: bool | None = None
    function_call: _WireFunctionCall | None = Field(default=None, alias="functionCall")


class _WireContent(BaseModel):
    role: str | None = None
    parts: list[_WirePart] = []


class _WireCandidate(BaseModel):
    content: _WireContent | None = None


class _WireUsage(BaseModel):
    prompt_token_count: int | None = Field(default=None, alias="promptTokenCount")
    candidates_token_count: int | None = Field(
        default=None, alias="candidatesTokenCount"
    )
    total_token_count: int | None = Field(default=None, alias="totalTokenCount")


class GeminiResponse(BaseModel):
    """The subset of a generateContent response Castor reads."""

    candidates: list[_WireCandidate] = []
    usage_metadata: _WireUsage | None = Field(default=None, alias="usageMetadata")


def normalize_model_id(model: str) -> str:
    """Prefix *model* with ``models/`` unless it already is."""
    if model.startswith(MODEL_PREFIX):
        return model
    return f"{MODEL_PREFIX}{model}"


class GoogleAdapter(ProviderAdapter):
    """Google Gemini adapter (``generateContent``)."""

    provider = ProviderId.GOOGLE

    def __init__(self) -> None:
        """Create the adapter; the SDK client is built on first use."""
        self._client: Any = None

    def _get_client(self) -> Any:
        """Lazy-initialize the Gemini client."""
        if self._client is None:
            try:
                from google import genai
            except ImportError as e:
                raise ConfigurationError(
                    "google-genai package not installed",
                    hint="pip install google-genai",
                ) from e
            self._client = genai.Client(api_key=self.check_credentials())
        return self._client

    def translate(self, params: ProviderParams) -> dict[str, Any]:
        """Build ``model``/``contents``/``config`` for generate_content.

        When tools are declared the model is forced to call one of them:
        calling mode ``ANY`` with an explicit allow-list of function names.
        """
        config: dict[str, Any] = {}
        if params.system_prompt:
            config["systemInstruction"] = params.system_prompt
        if params.max_tokens is not None:
            config["maxOutputTokens"] = params.max_tokens
        if params.temperature is not None:
            config["temperature"] = params.temperature
        if params.top_p is not None:
            config["topP"] = params.top_p
        if params.tools:
            declarations: list[dict[str, Any]] = []
            for tool in params.tools:
                declaration: dict[str, Any] = {"name": tool.name}
                if tool.description is not None:
                    declaration["description"] = tool.description
                if tool.parameters is not None:
                    declaration["parameters"] = tool.parameters
                declarations.append(declaration)
            config["tools"] = [{"functionDeclarations": declarations}]
            config["toolConfig"] = {
                "functionCallingConfig": {
                    "mode": "ANY",
                    "allowedFunctionNames": [tool.name for tool in params.tools],
                }
            }

        wire: dict[str, Any] = {
            "model": normalize_model_id(params.model),
            "contents": _build_contents(params.conversation_messages),
        }
        if config:
            wire["config"] = config
        return wire

    async def invoke(self, wire: dict[str, Any]) -> dict[str, Any]:
        """Send the request through the google-genai SDK."""
        client = self._get_client()
        try:
            response = await client.aio.models.generate_content(
                model=wire["model"],
                contents=wire["contents"],
                config=wire.get("config"),
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            raise wrap_provider_error(
                e,
                provider=self.provider.value,
                message="Google API error",
                env_var="GEMINI_API_KEY",
            ) from e
        return to_plain_dict(response, by_alias=True)

    def parse(self, raw: dict[str, Any], params: ProviderParams) -> GenerationResult:
        """Decode a generateContent response."""
        response = GeminiResponse.model_validate(raw)

        text = ""
        tool_calls: list[ToolCall] = []
        for candidate in response.candidates:
            parts = candidate.content.parts if candidate.content else []
            if not text:
                text = "".join(
                    p.text for p in parts if p.text and not p.thought
                )
            for part in parts:
                fc = part.function_call
                if fc is None:
                    continue
                tool_calls.append(
                    ToolCall(
                        id=fc.id or f"call_{uuid.uuid4().hex[:12]}",
                        name=fc.name,
                        arguments=dump_arguments(fc.args or {}),
                    )
                )

        usage = None
        if response.usage_metadata is not None:
            um = response.usage_metadata
            usage = Usage(
                input_tokens=um.prompt_token_count or 0,
                output_tokens=um.candidates_token_count or 0,
                total_tokens=um.total_token_count or 0,
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
        aio = getattr(client, "aio", None)
        aclose = getattr(aio, "aclose", None)
        if callable(aclose):
            await aclose()


def _build_contents(conversation: list[Message]) -> list[dict[str, Any]]:
    """Convert canonical turns into Gemini ``contents``.

    ``functionResponse`` has no call-id field, only a function name. Names are
    looked up from the tool calls of the most recent assistant turn (a turn
    without tool calls empties the table); an id with no match there is sent
    as the name.
    """
    contents: list[dict[str, Any]] = []
    names_by_id: dict[str, str] = {}
    for message in conversation:
        role = "model" if message.role == "assistant" else "user"
        parts: list[dict[str, Any]] = []

        if message.role == "assistant":
            names_by_id = {tc.id: tc.name for tc in message.tool_calls or ()}

        if message.role == "tool" and message.tool_call_id:
            name = names_by_id.get(message.tool_call_id)
            if name is None:
                logger.warning(
                    "No preceding tool call for id %r; using it as the function name",
                    message.tool_call_id,
                )
                name = message.tool_call_id
            parts.append(
                {
                    "functionResponse": {
                        "name": name,
                        "response": {"result": message.content},
                    }
                }
            )
        elif message.role == "assistant" and message.tool_calls:
            if message.content:
                parts.append({"text": message.content})
            for tc in message.tool_calls:
                parts.append(
                    {
                        "functionCall": {
                            "name": tc.name,
                            "args": load_arguments(tc.arguments),
                        }
                    }
                )
        else:
            parts.append({"text": message.content})

        contents.append({"role": role, "parts": parts})
    return contents
