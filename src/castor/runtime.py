"""Process-scoped state: one dispatcher and one session store."""

from __future__ import annotations

import logging
from types import TracebackType
from typing import Self

from castor.dispatcher import Dispatcher
from castor.sessions import SessionStore

logger = logging.getLogger(__name__)


class Runtime:
    """Own the dispatcher and session store for the life of the process.

    Example:
        async with Runtime() as rt:
            snapshot = rt.sessions.create("openai", "gpt-4o-mini")
    """

    def __init__(
        self,
        *,
        dispatcher: Dispatcher | None = None,
        sessions: SessionStore | None = None,
    ) -> None:
        """Create a runtime, building defaults for anything not supplied."""
        self.dispatcher = dispatcher if dispatcher is not None else Dispatcher()
        self.sessions = sessions if sessions is not None else SessionStore()

    async def aclose(self) -> None:
        """Close provider clients and drop all sessions."""
        await self.dispatcher.aclose()
        self.sessions.clear()
        logger.debug("Runtime closed")

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()
