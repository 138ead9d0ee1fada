"""Generic bounded polling for server-side asynchronous tasks.

A :class:`PollingController` repeatedly fetches the status of one task and
classifies it until a terminal answer arrives or the attempt cap is hit:

1. fetch the raw status with ``fetch_status(target)``;
2. map it with ``classify(raw)`` to a :class:`Classification`;
3. ``COMPLETED`` stops with the payload, ``FAILED`` stops with a message;
4. ``NOT_STARTED`` increments a consecutive counter and, when a limit is
   configured and reached, stops early with a *soft* failure;
5. ``IN_PROGRESS`` resets that counter and polls again after ``interval``;
6. reaching ``max_attempts`` stops with a *soft* timeout.

A fetch or classification error counts as an attempt and leaves the
not-started counter untouched; it never ends the session on its own.

The loop awaits :meth:`Scheduler.sleep` between ticks, so a session is a
plain coroutine driven by the event loop (or by a virtual clock in tests).
Starting a new session bumps the controller's
:class:`~careersync.resilience.cancellation.CancellationToken`, which makes
the previous session stop at its next checkpoint without publishing anything.

Typical usage::

    controller = PollingController(fetch, classify, PollingConfig(2.0, 30, 5))
    result = await controller.poll(job_id)
    if result and result.outcome.is_soft:
        print(result.message)
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from careersync.core import events
from careersync.core.logging_config import run_scope
from careersync.core.models import PollOutcome, PollResult, PollView, TaskStatus
from careersync.resilience.cancellation import CancellationToken
from careersync.resilience.scheduler import AsyncioScheduler, Scheduler

__all__ = [
    "Classification",
    "PollMessages",
    "PollingConfig",
    "PollingController",
    "PollingSession",
]

logger = logging.getLogger(__name__)

T = TypeVar("T")

PollListener = Callable[[PollView], None]


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PollingConfig:
    """Cadence and limits of a polling session.

    Attributes:
        interval: Seconds between two fetches.
        max_attempts: Fetches before the session times out.
        not_started_limit: Consecutive ``NOT_STARTED`` answers that end the
            session early, or ``None`` to keep polling through them.
        delay_first: Wait one interval before the first fetch.

    Raises:
        ValueError: On a non-positive interval or limits below 1.
    """

    interval: float
    max_attempts: int
    not_started_limit: int | None = None
    delay_first: bool = False

    def __post_init__(self) -> None:
        if self.interval <= 0:
            raise ValueError(f"interval must be positive, got {self.interval!r}")
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be ≥ 1, got {self.max_attempts!r}")
        if self.not_started_limit is not None and self.not_started_limit < 1:
            raise ValueError(
                f"not_started_limit must be ≥ 1 or None, got {self.not_started_limit!r}"
            )

    @property
    def max_duration(self) -> float:
        """Upper bound of the total time spent sleeping in one session."""
        sleeps = self.max_attempts if self.delay_first else self.max_attempts - 1
        return sleeps * self.interval


@dataclass(frozen=True)
class PollMessages:
    """User-facing messages for the non-successful outcomes."""

    failed: str = "The task failed. Please try again."
    timed_out: str = "The task is taking longer than expected. Please check back later."
    not_started: str = "The task has not started yet. Try triggering it again."


@dataclass(frozen=True)
class Classification:
    """Result of classifying one raw status response.

    Attributes:
        status: Classified task status.
        payload: Result carried by a ``COMPLETED`` classification.
        message: Failure detail for a ``FAILED`` classification.
    """

    status: TaskStatus
    payload: Any = None
    message: str | None = None


# ---------------------------------------------------------------------------
# Session state
# ---------------------------------------------------------------------------


@dataclass
class PollingSession(Generic[T]):
    """Mutable state of one polling session, owned by its controller."""

    target: T
    attempt: int = 0
    status: TaskStatus = TaskStatus.NOT_STARTED
    consecutive_not_started: int = 0
    result: Any = None
    error: str | None = None
    outcome: PollOutcome | None = None
    history: list[TaskStatus] = field(default_factory=list)

    def view(self) -> PollView:
        return PollView(
            status=self.status,
            attempts=self.attempt,
            result=self.result,
            error=self.error,
        )


# ---------------------------------------------------------------------------
# Controller
# ---------------------------------------------------------------------------


class PollingController(Generic[T]):
    """Run bounded polling sessions for one kind of server-side task.

    Args:
        fetch_status: Coroutine function returning the raw status of a target.
        classify: Maps a raw status to a :class:`Classification`.
        config: Cadence and limits.
        scheduler: Clock and sleep implementation.
        messages: User-facing messages for failed and soft outcomes.
        name: Label used in log lines.
    """

    def __init__(
        self,
        fetch_status: Callable[[T], Awaitable[Any]],
        classify: Callable[[Any], Classification],
        config: PollingConfig,
        *,
        scheduler: Scheduler | None = None,
        messages: PollMessages | None = None,
        name: str = "poll",
    ) -> None:
        self._fetch_status = fetch_status
        self._classify = classify
        self.config = config
        self._scheduler = scheduler or AsyncioScheduler()
        self._messages = messages or PollMessages()
        self._name = name
        self._token = CancellationToken(name)
        self._session: PollingSession[T] | None = None
        self._task: asyncio.Task[PollResult | None] | None = None
        self._listeners: list[PollListener] = []

    # ------------------------------------------------------------------
    # Observable state
    # ------------------------------------------------------------------

    @property
    def view(self) -> PollView:
        """Snapshot of the latest session (empty before the first one)."""
        return self._session.view() if self._session is not None else PollView()

    @property
    def session(self) -> PollingSession[T] | None:
        return self._session

    @property
    def is_polling(self) -> bool:
        return self._session is not None and self._session.outcome is None and (
            self._task is None or not self._task.done()
        )

    def subscribe(self, listener: PollListener) -> Callable[[], None]:
        """Register *listener* for session updates; returns an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # ------------------------------------------------------------------
    # Control
    # ------------------------------------------------------------------

    def start(self, target: T) -> asyncio.Task[PollResult | None]:
        """Run :meth:`poll` for *target* in a background task."""
        self._task = asyncio.create_task(self.poll(target), name=f"{self._name}-{target}")
        return self._task

    def cancel(self) -> None:
        """Stop the live session silently at its next checkpoint."""
        self._token.bump()
        logger.debug("[%s] Polling cancelled.", self._name)

    async def poll(self, target: T) -> PollResult | None:
        """Poll *target* until it resolves or the session runs out of attempts.

        Supersedes any session still running on this controller.

        Returns:
            The terminal :class:`PollResult`, or ``None`` when the session was
            cancelled or superseded before it finished.
        """
        generation = self._token.bump()
        session: PollingSession[T] = PollingSession(target=target)
        self._session = session
        with run_scope():
            logger.info(
                "[%s] Polling %s (interval=%.1fs, max_attempts=%d).",
                self._name,
                target,
                self.config.interval,
                self.config.max_attempts,
                extra={"event": events.POLL_START},
            )
            self._publish(session)
            return await self._loop(session, generation)

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------

    async def _loop(self, session: PollingSession[T], generation: int) -> PollResult | None:
        config = self.config
        limit = config.not_started_limit

        for attempt in range(1, config.max_attempts + 1):
            if attempt > 1 or config.delay_first:
                await self._scheduler.sleep(config.interval)
            if self._token.is_stale(generation):
                return self._discard(session)

            session.attempt = attempt
            try:
                raw = await self._fetch_status(session.target)
                classification = self._classify(raw)
            except Exception as exc:  # noqa: BLE001
                if self._token.is_stale(generation):
                    return self._discard(session)
                logger.warning(
                    "[%s] Status check %d/%d failed: %s",
                    self._name,
                    attempt,
                    config.max_attempts,
                    exc,
                    extra={"event": events.POLL_FETCH_ERROR},
                )
                self._publish(session)
                continue

            if self._token.is_stale(generation):
                return self._discard(session)

            status = classification.status
            session.status = status
            session.history.append(status)
            logger.debug(
                "[%s] Attempt %d/%d: %s",
                self._name,
                attempt,
                config.max_attempts,
                status,
                extra={"event": events.POLL_TICK},
            )

            if status == TaskStatus.COMPLETED:
                session.result = classification.payload
                return self._finish(
                    session,
                    PollOutcome.COMPLETED,
                    payload=classification.payload,
                    event=events.POLL_COMPLETED,
                )

            if status == TaskStatus.FAILED:
                message = classification.message or self._messages.failed
                return self._finish(
                    session, PollOutcome.FAILED, message=message, event=events.POLL_FAILED
                )

            if status == TaskStatus.NOT_STARTED:
                session.consecutive_not_started += 1
                if limit is not None and session.consecutive_not_started >= limit:
                    return self._finish(
                        session,
                        PollOutcome.NOT_STARTED,
                        message=self._messages.not_started,
                        event=events.POLL_NOT_STARTED,
                    )
            else:
                session.consecutive_not_started = 0

            self._publish(session)

        # A timed-out task may still be running server-side.
        session.status = TaskStatus.IN_PROGRESS
        return self._finish(
            session,
            PollOutcome.TIMED_OUT,
            message=self._messages.timed_out,
            event=events.POLL_TIMED_OUT,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _finish(
        self,
        session: PollingSession[T],
        outcome: PollOutcome,
        *,
        payload: Any = None,
        message: str | None = None,
        event: str,
    ) -> PollResult:
        session.outcome = outcome
        session.error = message
        level = logging.INFO if outcome == PollOutcome.COMPLETED else logging.WARNING
        if outcome == PollOutcome.FAILED:
            level = logging.ERROR
        logger.log(
            level,
            "[%s] Polling %s ended: %s after %d attempt(s).",
            self._name,
            session.target,
            outcome,
            session.attempt,
            extra={"event": event},
        )
        self._publish(session)
        return PollResult(
            outcome=outcome,
            attempts=session.attempt,
            payload=payload,
            message=message,
        )

    def _discard(self, session: PollingSession[T]) -> None:
        logger.debug(
            "[%s] Superseded session for %s discarded at attempt %d.",
            self._name,
            session.target,
            session.attempt,
        )
        return None

    def _publish(self, session: PollingSession[T]) -> None:
        if session is not self._session:
            return
        view = session.view()
        for listener in list(self._listeners):
            try:
                listener(view)
            except Exception:  # noqa: BLE001
                logger.exception("[%s] Polling listener raised.", self._name)
