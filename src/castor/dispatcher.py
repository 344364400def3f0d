"""Generation dispatcher: validate, partition, route to one adapter."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
import logging
from typing import TYPE_CHECKING, Any, assert_never

from castor.config import get_settings, has_credentials
from castor.errors import ProviderError, ValidationError
from castor.models import ProviderId, validate_messages
from castor.providers.anthropic import AnthropicAdapter
from castor.providers.base import ProviderParams
from castor.providers.google import GoogleAdapter
from castor.providers.ollama import OllamaAdapter
from castor.providers.openai import OpenAIAdapter

if TYPE_CHECKING:
    from collections.abc import Mapping

    from castor.models import GenerationRequest, GenerationResult, Message
    from castor.providers.base import ProviderAdapter

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProviderInfo:
    """Availability and catalog metadata for one provider."""

    provider: ProviderId
    has_credentials: bool
    default_model: str | None = None
    suggested_models: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        """Return plain JSON-ready data."""
        return {
            "provider": self.provider.value,
            "has_credentials": self.has_credentials,
            "default_model": self.default_model,
            "suggested_models": list(self.suggested_models),
        }


def split_system_messages(messages: list[Message]) -> tuple[str | None, list[Message]]:
    """Separate system content from the remaining conversation.

    System turns are trimmed and joined with a blank line; blank ones are
    dropped. The conversation keeps its original relative order.
    """
    system_parts = [
        m.content.strip()
        for m in messages
        if m.role == "system" and m.content and m.content.strip()
    ]
    conversation = [m for m in messages if m.role != "system"]
    return ("\n\n".join(system_parts) or None), conversation


def build_provider_params(request: GenerationRequest) -> ProviderParams:
    """Validate *request* messages and build the adapter parameter bag."""
    validate_messages(request.messages)

    system_prompt, conversation = split_system_messages(request.messages)
    if not conversation:
        raise ValidationError("At least one non-system message is required")

    return ProviderParams(
        model=request.model,
        messages=list(request.messages),
        conversation_messages=conversation,
        system_prompt=system_prompt,
        max_tokens=request.max_tokens,
        temperature=request.temperature,
        top_p=request.top_p,
        tools=list(request.tools) if request.tools is not None else None,
    )


def build_adapter(provider: ProviderId) -> ProviderAdapter:
    """Construct the adapter for *provider*.

    The ``match`` is exhaustive over ``ProviderId``; a new member without a
    case here fails static type checking at ``assert_never``.
    """
    match provider:
        case ProviderId.OPENAI:
            return OpenAIAdapter()
        case ProviderId.ANTHROPIC:
            return AnthropicAdapter()
        case ProviderId.GOOGLE:
            return GoogleAdapter()
        case ProviderId.OLLAMA:
            return OllamaAdapter()
        case _:
            assert_never(provider)


class Dispatcher:
    """Route validated generation requests to provider adapters.

    Adapters are built lazily, one per provider, and reused across calls.
    Pass *adapters* to substitute specific providers (tests, custom clients).
    """

    def __init__(
        self, adapters: Mapping[ProviderId, ProviderAdapter] | None = None
    ) -> None:
        """Create a dispatcher with optional pre-built adapters."""
        self._adapters: dict[ProviderId, ProviderAdapter] = dict(adapters or {})

    def adapter_for(self, provider: ProviderId) -> ProviderAdapter:
        """Return (building if needed) the adapter for *provider*."""
        adapter = self._adapters.get(provider)
        if adapter is None:
            adapter = build_adapter(provider)
            self._adapters[provider] = adapter
        return adapter

    async def generate(self, request: GenerationRequest) -> GenerationResult:
        """Validate *request*, route it, and return the adapter's result verbatim."""
        if not request.provider:
            raise ValidationError("Provider is required")
        provider = ProviderId.parse(request.provider)
        if not isinstance(request.model, str) or not request.model.strip():
            raise ValidationError("Model is required")

        params = build_provider_params(request)
        adapter = self.adapter_for(provider)
        logger.debug(
            "Generating with %s model=%s messages=%d tools=%d",
            provider.value,
            params.model,
            len(params.messages),
            len(params.tools or ()),
        )
        try:
            return await adapter.generate(params)
        except ProviderError as e:
            logger.warning(
                "%s generation failed (status=%s): %s", provider.value, e.status_code, e
            )
            raise

    def describe_providers(self) -> list[ProviderInfo]:
        """Report credential presence and model catalog per provider.

        Pure: reads the environment, makes no network calls.
        """
        infos: list[ProviderInfo] = []
        for provider in ProviderId:
            settings = get_settings(provider)
            infos.append(
                ProviderInfo(
                    provider=provider,
                    has_credentials=has_credentials(provider),
                    default_model=settings.default_model,
                    suggested_models=settings.suggested_models,
                )
            )
        return infos

    async def aclose(self) -> None:
        """Close every adapter that has been built."""
        adapters = list(self._adapters.values())
        self._adapters.clear()
        for adapter in adapters:
            try:
                await adapter.aclose()
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.warning(
                    "%s adapter cleanup failed: %s", adapter.provider.value, exc
                )
