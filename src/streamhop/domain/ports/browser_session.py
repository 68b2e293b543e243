"""Port for scoped headless-browser sessions."""

from __future__ import annotations

from contextlib import AbstractAsyncContextManager
from typing import Any, Protocol, runtime_checkable

from streamhop.domain.entities.resolution import Fingerprint


@runtime_checkable
class BrowserSessionPort(Protocol):
    """Hands out browser sessions configured from one fingerprint.

    A session is released (its context closed) when the context manager
    exits, whatever the exit path.
    """

    def session(self, fingerprint: Fingerprint) -> AbstractAsyncContextManager[Any]:
        """Open a session for *fingerprint*."""
        ...

    async def cleanup(self) -> None:
        """Release the shared browser."""
        ...
