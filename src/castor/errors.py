"""Exception hierarchy for Castor.

Every error carries a ``status_code`` hint so an outer transport layer can map
it onto its own protocol without inspecting the message text.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterator


class CastorError(Exception):
    """Base exception for all Castor errors."""

    default_status_code: int = 500

    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.hint = hint
        self.status_code = (
            status_code if status_code is not None else self.default_status_code
        )


class ConfigurationError(CastorError):
    """A required credential or setting is missing or invalid."""


class ValidationError(CastorError):
    """A request, message, or session setting is malformed."""

    default_status_code = 400


class NotFoundError(CastorError):
    """No live session exists for the given identifier."""

    default_status_code = 404


class ProviderError(CastorError):
    """An upstream provider call failed.

    ``status_code`` and ``body`` are the upstream values, passed through
    unmodified. Transport failures with no upstream response use 502.
    """

    default_status_code = 502

    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        status_code: int | None = None,
        provider: str | None = None,
        body: str | None = None,
    ) -> None:
        super().__init__(message, hint=hint, status_code=status_code)
        self.provider = provider
        self.body = body


def _walk_exception_chain(exc: BaseException) -> Iterator[BaseException]:
    """Yield *exc* and its ``__cause__``/``__context__`` chain, skipping cycles."""
    seen: set[int] = set()
    stack: list[BaseException] = [exc]
    while stack:
        cur = stack.pop()
        if id(cur) in seen:
            continue
        seen.add(id(cur))
        yield cur

        cause = cur.__cause__
        if isinstance(cause, BaseException):
            stack.append(cause)
        context = cur.__context__
        if isinstance(context, BaseException):
            stack.append(context)
