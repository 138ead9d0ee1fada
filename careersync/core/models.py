"""careersync core domain models.

Defines the identity handed over by the identity provider, the phases of the
account-sync state machine, the status vocabulary shared by every polling
session, and the read-only snapshots exposed to the presentation layer.

Typical usage::

    from careersync.core.models import Identity, SyncPhase

    identity = Identity(id="user_2abc", email="ada@example.com", first_name="Ada")
    assert identity.has_contact
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator

__all__ = [
    "Identity",
    "SyncPhase",
    "SyncView",
    "TaskStatus",
    "PollOutcome",
    "PollResult",
    "PollView",
]

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Identity
# ---------------------------------------------------------------------------


class Identity(BaseModel):
    """The user handed over by the third-party identity provider.

    The model is frozen so one instance can be shared between the
    orchestrator and an in-flight run without accidental mutation.

    Attributes:
        id: Identity-provider user ID (e.g. ``"user_2abc123"``).
        email: Primary email address.  May be empty when the provider has
            not populated it; the orchestrator rejects such identities.
        first_name: Optional given name, used by the profile-name patch.
        last_name: Optional family name, used by the profile-name patch.
    """

    model_config = ConfigDict(frozen=True)

    id: str = ""
    email: str = ""
    first_name: str = ""
    last_name: str = ""

    @field_validator("id", "email", "first_name", "last_name", mode="before")
    @classmethod
    def _strip(cls, v: str | None) -> str:
        return (v or "").strip()

    @property
    def has_contact(self) -> bool:
        """``True`` when both the user ID and the email are present."""
        return bool(self.id and self.email)

    @property
    def has_name(self) -> bool:
        """``True`` when at least one name part is non-blank."""
        return bool(self.first_name or self.last_name)


# ---------------------------------------------------------------------------
# Sync state machine
# ---------------------------------------------------------------------------


class SyncPhase(StrEnum):
    """States of the account-sync state machine.

    ::

        IDLE ──start──▶ ACQUIRING_TOKEN ──▶ LINKING_BACKEND ──▶ SUCCEEDED
                               │                   │
                               └──────▶ FAILED ◀───┘

    ``CANCELLED`` is reachable from any state when the generation advances.
    """

    IDLE = "idle"
    ACQUIRING_TOKEN = "acquiring_token"
    LINKING_BACKEND = "linking_backend"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_busy(self) -> bool:
        """``True`` while a run is actively working through a phase."""
        return self in (SyncPhase.ACQUIRING_TOKEN, SyncPhase.LINKING_BACKEND)


@dataclass(frozen=True)
class SyncView:
    """Snapshot of the sync orchestrator as seen by the presentation layer.

    Attributes:
        phase: Current :class:`SyncPhase`.
        error_message: User-facing error, set only in ``FAILED``.
        success_message: User-facing confirmation, set only in ``SUCCEEDED``.
        failure_reason: ``"token"``, ``"sync"`` or ``"identity"`` when failed,
            else ``None``.
    """

    phase: SyncPhase = SyncPhase.IDLE
    error_message: str | None = None
    success_message: str | None = None
    failure_reason: str | None = None

    @property
    def is_busy(self) -> bool:
        return self.phase.is_busy


# ---------------------------------------------------------------------------
# Polling
# ---------------------------------------------------------------------------


class TaskStatus(StrEnum):
    """Classified status of a server-side asynchronous task."""

    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


class PollOutcome(StrEnum):
    """How a polling session terminated."""

    COMPLETED = "completed"
    """The task finished; ``PollResult.payload`` carries its result."""

    FAILED = "failed"
    """The task reported a hard failure."""

    TIMED_OUT = "timed_out"
    """Soft timeout: attempts exhausted, the task may still be running."""

    NOT_STARTED = "not_started"
    """Soft failure: the task kept reporting that it was never started."""

    @property
    def is_soft(self) -> bool:
        """``True`` for inconclusive outcomes the user should retry later."""
        return self in (PollOutcome.TIMED_OUT, PollOutcome.NOT_STARTED)


@dataclass(frozen=True)
class PollResult:
    """Terminal result of one polling session.

    Attributes:
        outcome: How the session ended.
        attempts: Number of fetches performed.
        payload: Result payload for ``COMPLETED`` outcomes.
        message: User-facing message for every non-``COMPLETED`` outcome.
    """

    outcome: PollOutcome
    attempts: int
    payload: Any = None
    message: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.outcome == PollOutcome.COMPLETED


@dataclass(frozen=True)
class PollView:
    """Snapshot of a polling session as seen by the presentation layer."""

    status: TaskStatus = TaskStatus.NOT_STARTED
    attempts: int = 0
    result: Any = None
    error: str | None = None
