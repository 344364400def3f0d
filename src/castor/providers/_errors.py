"""Map provider SDK and transport exceptions into ``ProviderError``.

The upstream status code and raw body are passed through unmodified. No retry
metadata is attached: resilience is the caller's concern.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any

import httpx

from castor.errors import CastorError, ProviderError, _walk_exception_chain


def extract_status_code(exc: BaseException) -> int | None:
    """Walk the exception chain to find an HTTP status code."""
    for e in _walk_exception_chain(exc):
        # google-genai exposes the HTTP status as ``code``.
        for attr in ("status_code", "code", "status"):
            value = getattr(e, attr, None)
            if isinstance(value, int) and 100 <= value <= 599:
                return value
        response = getattr(e, "response", None)
        value = getattr(response, "status_code", None)
        if isinstance(value, int) and 100 <= value <= 599:
            return value
    return None


def extract_body(exc: BaseException) -> str | None:
    """Walk the exception chain to find the raw upstream response body."""
    for e in _walk_exception_chain(exc):
        response = getattr(e, "response", None)
        if isinstance(response, httpx.Response):
            try:
                return response.text
            except httpx.ResponseNotRead:
                pass
        for attr in ("body", "response_json"):
            value: Any = getattr(e, attr, None)
            if isinstance(value, str):
                return value
            if isinstance(value, (dict, list)):
                return json.dumps(value)
    return None


def _auth_hint(status_code: int | None, env_var: str | None) -> str | None:
    """Generate a hint for auth errors where naming the env var is useful."""
    if env_var is not None and status_code in {401, 403}:
        return f"Check credentials/permissions (is {env_var} valid?)."
    return None


def wrap_provider_error(
    exc: BaseException,
    *,
    provider: str,
    message: str | None = None,
    env_var: str | None = None,
) -> CastorError:
    """Map a provider failure into ``ProviderError`` with upstream details."""
    if isinstance(exc, asyncio.CancelledError):
        raise exc

    # Already one of ours; fill in missing context only.
    if isinstance(exc, ProviderError):
        if exc.provider is None:
            exc.provider = provider
        return exc
    if isinstance(exc, CastorError):
        return exc

    status_code = extract_status_code(exc)
    body = extract_body(exc)
    msg = message or f"{provider} request failed"
    status_note = f" (status={status_code})" if status_code is not None else ""
    cause = str(exc)
    return ProviderError(
        f"{msg}{status_note}: {cause}" if cause else f"{msg}{status_note}",
        hint=_auth_hint(status_code, env_var),
        status_code=status_code,
        provider=provider,
        body=body,
    )
