"""The "delay" capability used by every retry and polling loop.

Orchestrators never call :func:`asyncio.sleep` or :func:`time.monotonic`
directly.  They receive a :class:`Scheduler` and use its clock, its sleep and
its bounded wait, so the whole state machine can be driven by a virtual
clock in tests (see ``tests/conftest.py``) without real wall-clock waits.

Production code uses :class:`AsyncioScheduler`, a thin wrapper over the
running event loop.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable
from typing import Protocol, TypeVar

__all__ = ["Scheduler", "AsyncioScheduler"]

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Scheduler(Protocol):
    """Clock, sleep and timeout primitives for cooperative scheduling."""

    def now(self) -> float:
        """Return a monotonic timestamp in seconds."""
        ...

    async def sleep(self, seconds: float) -> None:
        """Suspend the calling task for *seconds*."""
        ...

    async def wait_for(self, awaitable: Awaitable[T], timeout: float) -> T:
        """Await *awaitable*, cancelling it after *timeout* seconds.

        Raises:
            TimeoutError: The awaitable did not finish in time.
        """
        ...


class AsyncioScheduler:
    """:class:`Scheduler` backed by the running asyncio event loop."""

    def now(self) -> float:
        return time.monotonic()

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(max(0.0, seconds))

    async def wait_for(self, awaitable: Awaitable[T], timeout: float) -> T:
        # wait_for cancels the inner task on timeout, which aborts the
        # underlying httpx request.
        return await asyncio.wait_for(awaitable, timeout=timeout)
