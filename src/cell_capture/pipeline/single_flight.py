"""Single-flight control for submission runs.

Only the most recently started run may complete. Starting a run cancels and
disposes the previous token before the new one is installed, with no
suspension point in between, so the swap is atomic on the event loop.
"""

from __future__ import annotations

import asyncio
import logging

from cell_capture.core.exceptions import RunCancelledError

logger = logging.getLogger(__name__)


class CancellationToken:
    """Marks one run as live or obsolete.

    Cancellation is cooperative: stages call `raise_if_cancelled()` after each
    suspension point, and awaiters can race against `wait()`.
    """

    __slots__ = ("_disposed", "_event", "generation")

    def __init__(self, generation: int) -> None:
        """Create a live token for the given run generation."""
        self.generation = generation
        self._event = asyncio.Event()
        self._disposed = False

    @property
    def is_cancelled(self) -> bool:
        """Whether the run has been superseded."""
        return self._event.is_set()

    @property
    def is_disposed(self) -> bool:
        """Whether the token has been released by its owner."""
        return self._disposed

    def cancel(self) -> None:
        """Mark the run obsolete and wake anything waiting on it."""
        self._event.set()

    def dispose(self) -> None:
        """Release the token; a disposed token can no longer be reused."""
        self._disposed = True

    async def wait(self) -> None:
        """Block until the token is cancelled."""
        await self._event.wait()

    def raise_if_cancelled(self) -> None:
        """Raise `RunCancelledError` when the run has been superseded."""
        if self.is_cancelled:
            raise RunCancelledError(self.generation)

    def __repr__(self) -> str:
        state = "cancelled" if self.is_cancelled else "live"
        return f"CancellationToken(generation={self.generation}, {state})"


class SingleFlight:
    """Owns the one live token slot shared by all submission runs."""

    def __init__(self) -> None:
        """Start with an empty slot at generation zero."""
        self._generation = 0
        self._current: CancellationToken | None = None

    @property
    def generation(self) -> int:
        """Generation of the most recently started run."""
        return self._generation

    @property
    def current(self) -> CancellationToken | None:
        """The live token, if a run is in flight."""
        return self._current

    def begin_run(self) -> CancellationToken:
        """Cancel the in-flight run (if any) and install a fresh token."""
        previous = self._current
        if previous is not None:
            previous.cancel()
            previous.dispose()
            logger.debug("Superseded run %d", previous.generation)
        self._generation += 1
        token = CancellationToken(self._generation)
        self._current = token
        return token

    def end_run(self, token: CancellationToken) -> None:
        """Clear the slot if `token` is still the installed one.

        A stale run finishing after a newer run started leaves the slot alone.
        """
        if self._current is token:
            self._current = None
            token.dispose()

    def is_current(self, token: CancellationToken) -> bool:
        """Whether `token` belongs to the newest run and is still live."""
        return (
            not token.is_cancelled
            and self._current is not None
            and token.generation == self._current.generation
        )
