"""Provider adapter implementations."""

from .anthropic import AnthropicAdapter
from .base import ProviderAdapter, ProviderParams
from .google import GoogleAdapter
from .ollama import OllamaAdapter, extract_fallback_tool_calls
from .openai import OpenAIAdapter

__all__ = [
    "AnthropicAdapter",
    "GoogleAdapter",
    "OllamaAdapter",
    "OpenAIAdapter",
    "ProviderAdapter",
    "ProviderParams",
    "extract_fallback_tool_calls",
]
