"""Shared pytest fixtures and configuration for the careersync test suite.

This file is loaded automatically by pytest before any test module.
It provides project-wide fixtures used across the unit tests, most notably a
virtual-clock :class:`FakeScheduler` so no test waits on real time.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
from collections.abc import Awaitable
from typing import Any, TypeVar

import pytest
from pydantic_settings import SettingsConfigDict

from careersync.core import configure_logging
from careersync.core.settings import Settings

T = TypeVar("T")


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _configure_test_logging() -> None:
    """Force DEBUG logging in text format for every test.

    ``force=True`` ensures the configuration is applied even when pytest's
    own ``log_cli`` handler is already present.
    """
    configure_logging(level="DEBUG", fmt="text", force=True)


# ---------------------------------------------------------------------------
# Environment
# ---------------------------------------------------------------------------


@pytest.fixture()
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Remove careersync-related env vars for the duration of a test.

    Also disables pydantic-settings ``.env`` file loading so values from a
    developer's local ``.env`` do not leak into Settings isolation tests.
    """
    prefixes = (
        "BACKEND_",
        "TOKEN_",
        "LINK_",
        "PROFILE_",
        "PATCH_",
        "REQUEST_",
        "RANKING_",
        "PARSING_",
        "LOG_LEVEL",
        "LOG_FORMAT",
    )
    for key in list(os.environ):
        if any(key.startswith(prefix) for prefix in prefixes):
            monkeypatch.delenv(key, raising=False)

    monkeypatch.setattr(
        Settings,
        "model_config",
        SettingsConfigDict(
            env_file=None,
            env_file_encoding="utf-8",
            extra="ignore",
        ),
    )


# ---------------------------------------------------------------------------
# Virtual clock
# ---------------------------------------------------------------------------


class FakeScheduler:
    """Deterministic :class:`~careersync.resilience.scheduler.Scheduler`.

    ``sleep`` advances the virtual clock instantly and yields once to the
    event loop.  ``wait_for`` lets the awaitable run for a few loop turns;
    if it is still pending it is cancelled, the clock jumps by *timeout* and
    :class:`TimeoutError` is raised, mimicking a hung request.
    """

    #: Event-loop turns granted to an awaitable before it counts as hung.
    settle_rounds = 50

    def __init__(self, start: float = 0.0) -> None:
        self._now = start
        self.sleeps: list[float] = []
        self.timeouts: list[float] = []

    def now(self) -> float:
        return self._now

    def advance(self, seconds: float) -> None:
        self._now += seconds

    @property
    def elapsed(self) -> float:
        return sum(self.sleeps) + sum(self.timeouts)

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self._now += max(0.0, seconds)
        await asyncio.sleep(0)

    async def wait_for(self, awaitable: Awaitable[T], timeout: float) -> T:
        task = asyncio.ensure_future(awaitable)
        for _ in range(self.settle_rounds):
            if task.done():
                break
            await asyncio.sleep(0)
        if not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
            self.timeouts.append(timeout)
            self._now += timeout
            raise TimeoutError(f"virtual timeout after {timeout}s")
        return task.result()


@pytest.fixture()
def scheduler() -> FakeScheduler:
    """A fresh virtual-clock scheduler starting at t=0."""
    return FakeScheduler()


# ---------------------------------------------------------------------------
# Misc helpers
# ---------------------------------------------------------------------------


class CredentialSequence:
    """Identity collaborator replaying a scripted sequence of outcomes.

    Each item is returned as-is, or raised when it is an exception.  Once
    the script is exhausted the last item repeats.
    """

    def __init__(self, *outcomes: Any) -> None:
        self._outcomes = list(outcomes)
        self.calls: list[bool] = []
        self.signed_out = False

    async def get_credential(self, *, force_fresh: bool = False) -> str | None:
        index = min(len(self.calls), len(self._outcomes) - 1)
        self.calls.append(force_fresh)
        outcome = self._outcomes[index]
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    async def sign_out(self) -> None:
        self.signed_out = True


@pytest.fixture()
def credentials() -> type[CredentialSequence]:
    """Factory for scripted identity collaborators."""
    return CredentialSequence


@pytest.fixture()
def logger() -> logging.Logger:
    """Return a ``logging.Logger`` scoped to the running test."""
    return logging.getLogger("tests")
