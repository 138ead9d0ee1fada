"""Generation-counter cancellation.

A :class:`CancellationToken` is a monotonically increasing counter owned by
one orchestrator.  A run captures the generation current at its start; once
the owner bumps the counter (new run started, explicit cancel, disposal) the
captured generation is *stale* and the run must stop mutating shared state.

Unlike an event-style token there is nothing to reset: starting a new run
simply bumps again, and every earlier run becomes stale at once.

Check-before-apply rule
~~~~~~~~~~~~~~~~~~~~~~~
Every asynchronous step checks the token immediately before applying its
result::

    generation = token.bump()
    credential = await identity.get_credential(force_fresh=True)
    token.raise_if_stale(generation)      # discard if superseded meanwhile
    self._phase = SyncPhase.LINKING_BACKEND

Thread-safety
~~~~~~~~~~~~~
Plain in-process object with no locking.  Safe for single-threaded
``asyncio`` usage, which is how careersync operates.
"""

from __future__ import annotations

import logging

from careersync.core.exceptions import StaleRunError

__all__ = ["CancellationToken"]

logger = logging.getLogger(__name__)


class CancellationToken:
    """Monotonic generation counter used to detect stale asynchronous work.

    Args:
        name: Label used in debug logs (e.g. ``"sync"``, ``"ranking-poll"``).
    """

    def __init__(self, name: str = "run") -> None:
        self._name = name
        self._generation = 0

    def current(self) -> int:
        """Return the current generation."""
        return self._generation

    def bump(self) -> int:
        """Advance the generation, invalidating every in-flight run.

        Returns:
            The new generation; a run started now should capture it.
        """
        self._generation += 1
        logger.debug("%s generation advanced to %d.", self._name, self._generation)
        return self._generation

    def is_stale(self, generation: int) -> bool:
        """``True`` if *generation* has been superseded."""
        return generation != self._generation

    def raise_if_stale(self, generation: int) -> None:
        """Raise :class:`StaleRunError` if *generation* has been superseded.

        Raises:
            StaleRunError: The caller's run is no longer live.
        """
        if self.is_stale(generation):
            raise StaleRunError(generation, self._generation)

    def __repr__(self) -> str:
        return f"CancellationToken(name={self._name!r}, generation={self._generation})"
