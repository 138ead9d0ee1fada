"""Structured log event name constants.

Every key transition of a sync run or polling session emits a log record with
an ``event`` field (passed via ``extra={"event": events.X}``).  In
``LOG_FORMAT=json`` mode the value surfaces as ``extra.event``; in text mode
the message text is self-describing and the event is not interpolated.

Usage example::

    import logging
    from careersync.core import events

    logger = logging.getLogger(__name__)

    logger.info("Account linked", extra={"event": events.LINK_OK})
"""

from __future__ import annotations

__all__ = [
    # Sync run lifecycle
    "SYNC_START",
    "SYNC_REJECTED",
    "SYNC_SUCCEEDED",
    "SYNC_FAILED",
    "SYNC_CANCELLED",
    "SYNC_STALE_DISCARDED",
    # Credential phase
    "TOKEN_ATTEMPT_FAILED",
    "TOKEN_ACQUIRED",
    "TOKEN_TIMEOUT",
    # Link phase
    "LINK_ATTEMPT_FAILED",
    "LINK_OK",
    "LINK_TIMEOUT",
    "PROFILE_PATCH_FAILED",
    # Polling
    "POLL_START",
    "POLL_TICK",
    "POLL_FETCH_ERROR",
    "POLL_COMPLETED",
    "POLL_FAILED",
    "POLL_NOT_STARTED",
    "POLL_TIMED_OUT",
]

# ---------------------------------------------------------------------------
# Sync run lifecycle
# ---------------------------------------------------------------------------

#: A new sync run captured a generation and entered the token phase.
SYNC_START: str = "SYNC_START"

#: ``start()`` was called while a run was in flight and did not supersede it.
SYNC_REJECTED: str = "SYNC_REJECTED"

#: The run linked the account and fired the success side effect.
SYNC_SUCCEEDED: str = "SYNC_SUCCEEDED"

#: The run exhausted a phase budget; a user-facing error was set.
SYNC_FAILED: str = "SYNC_FAILED"

#: ``cancel()`` bumped the generation (unmount / sign-out).
SYNC_CANCELLED: str = "SYNC_CANCELLED"

#: A superseded run reached a checkpoint and was discarded without effect.
SYNC_STALE_DISCARDED: str = "SYNC_STALE_DISCARDED"

# ---------------------------------------------------------------------------
# Credential phase
# ---------------------------------------------------------------------------

TOKEN_ATTEMPT_FAILED: str = "TOKEN_ATTEMPT_FAILED"
TOKEN_ACQUIRED: str = "TOKEN_ACQUIRED"
TOKEN_TIMEOUT: str = "TOKEN_TIMEOUT"

# ---------------------------------------------------------------------------
# Link phase
# ---------------------------------------------------------------------------

LINK_ATTEMPT_FAILED: str = "LINK_ATTEMPT_FAILED"
LINK_OK: str = "LINK_OK"
LINK_TIMEOUT: str = "LINK_TIMEOUT"

#: The non-gating profile-name patch failed after a successful link.
PROFILE_PATCH_FAILED: str = "PROFILE_PATCH_FAILED"

# ---------------------------------------------------------------------------
# Polling
# ---------------------------------------------------------------------------

POLL_START: str = "POLL_START"
POLL_TICK: str = "POLL_TICK"

#: ``fetch_status`` raised; the attempt is counted and polling continues.
POLL_FETCH_ERROR: str = "POLL_FETCH_ERROR"

POLL_COMPLETED: str = "POLL_COMPLETED"
POLL_FAILED: str = "POLL_FAILED"

#: Soft failure: the task reported "not started" too many times in a row.
POLL_NOT_STARTED: str = "POLL_NOT_STARTED"

#: Soft timeout: ``max_attempts`` reached without a definitive answer.
POLL_TIMED_OUT: str = "POLL_TIMED_OUT"
