"""careersync logging configuration and run-scoped log context.

A *run* is one unit of background work: a single account-sync attempt
driven by :class:`~careersync.sync.orchestrator.SyncOrchestrator`, or one
polling session of a :class:`~careersync.polling.controller.PollingController`.
Each run gets a short hex ID so that interleaved runs (a sync in flight while
a ranking poll ticks) can be told apart in the logs::

    2026-10-19 09:12:03 INFO     [3f9c01ab] careersync.sync.linker: [sync] Backend link succeeded on attempt 2.
    2026-10-19 09:12:03 DEBUG    [77d2e410] careersync.polling.controller: [ranking] Attempt 4/30: in_progress

Call :func:`configure_logging` once at process startup (``__main__`` does).
Every other module defines its own module-scope logger and annotates state
transitions with ``extra={"event": events.X}``.

Environment variables read at call time, when no explicit value is passed:
    LOG_LEVEL   DEBUG | INFO | WARNING | ERROR | CRITICAL   (default: INFO)
    LOG_FORMAT  text | json                                 (default: text)
"""

from __future__ import annotations

import json
import logging
import os
import sys
import traceback
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any

__all__ = [
    "configure_logging",
    "JsonFormatter",
    "RUN_ID_CTX",
    "RunContextFilter",
    "new_run_id",
    "run_scope",
]

logger = logging.getLogger(__name__)

#: ID of the run the current task belongs to; ``"-"`` outside of any run.
#: Tasks created inside a run inherit it through the copied context.
RUN_ID_CTX: ContextVar[str] = ContextVar("run_id", default="-")

_NO_RUN = "-"
_VALID_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
_VALID_FORMATS = {"text", "json"}

_TEXT_FORMAT = "%(asctime)s %(levelname)-8s [%(run_id)s] %(name)s: %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Loggers that are chatty at INFO and say nothing about sync or polling.
_QUIET_LOGGERS = ("httpx", "httpcore", "asyncio")


def new_run_id() -> str:
    """Return a fresh 8-char hex run ID."""
    return uuid.uuid4().hex[:8]


@contextmanager
def run_scope(run_id: str | None = None) -> Iterator[str]:
    """Bind *run_id* (or a fresh one) to :data:`RUN_ID_CTX` for the block.

    Yields:
        The bound run ID.
    """
    bound = run_id or new_run_id()
    token = RUN_ID_CTX.set(bound)
    try:
        yield bound
    finally:
        RUN_ID_CTX.reset(token)


class RunContextFilter(logging.Filter):
    """Stamp ``record.run_id`` from :data:`RUN_ID_CTX`.

    Attached to the handler, so records from third-party loggers carry the
    run ID too.
    """

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003
        record.run_id = RUN_ID_CTX.get(_NO_RUN)
        return True


def configure_logging(
    level: str | None = None,
    fmt: str | None = None,
    *,
    force: bool = False,
) -> None:
    """Configure the root logger for the process.

    Args:
        level: Level name; falls back to ``$LOG_LEVEL``, then ``"INFO"``.
        fmt: ``"text"`` or ``"json"``; falls back to ``$LOG_FORMAT``, then
            ``"text"``.
        force: Replace existing root handlers.  Without it an already
            configured root logger only has its level adjusted.

    Raises:
        ValueError: If *level* or *fmt* is not recognised.
    """
    resolved_level = (level or os.environ.get("LOG_LEVEL", "INFO")).upper()
    resolved_fmt = (fmt or os.environ.get("LOG_FORMAT", "text")).lower()

    if resolved_level not in _VALID_LEVELS:
        raise ValueError(
            f"Unknown LOG_LEVEL {resolved_level!r}. "
            f"Must be one of: {', '.join(sorted(_VALID_LEVELS))}"
        )
    if resolved_fmt not in _VALID_FORMATS:
        raise ValueError(
            f"Unknown LOG_FORMAT {resolved_fmt!r}. "
            f"Must be one of: {', '.join(sorted(_VALID_FORMATS))}"
        )

    root = logging.getLogger()

    if root.handlers and not force:
        root.setLevel(resolved_level)
        return

    root.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(resolved_level)
    handler.addFilter(RunContextFilter())
    if resolved_fmt == "json":
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter(fmt=_TEXT_FORMAT, datefmt=_DATE_FORMAT))

    root.setLevel(resolved_level)
    root.addHandler(handler)

    if resolved_level != "DEBUG":
        for name in _QUIET_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)


class JsonFormatter(logging.Formatter):
    """One JSON object per record, keyed for run-level log queries.

    ``run_id`` and ``event`` are promoted to top-level keys so a whole sync
    run or polling session can be pulled out of an aggregator with a single
    filter.  Any other ``extra`` attributes stay under ``"extra"``::

        {
            "ts":      "2026-10-19T09:12:03.412Z",
            "level":   "ERROR",
            "logger":  "careersync.sync.orchestrator",
            "run_id":  "3f9c01ab",
            "event":   "SYNC_FAILED",
            "message": "[sync] Sync failed (reason=sync, attempts=7).",
            "extra":   {}
        }

    ``event`` is ``null`` for records without one.  ``exc_info`` and
    ``stack_info`` appear only when present.
    """

    _PROMOTED: frozenset[str] = frozenset({"run_id", "event"})

    # Standard LogRecord attributes; everything else is caller-supplied extra.
    _RECORD_ATTRS: frozenset[str] = frozenset(
        vars(logging.LogRecord("", 0, "", 0, "", None, None))
    ) | {"message", "asctime", "taskName"}

    def format(self, record: logging.LogRecord) -> str:  # noqa: A003
        record.message = record.getMessage()
        ts = (
            datetime.fromtimestamp(record.created, tz=UTC).strftime("%Y-%m-%dT%H:%M:%S.")
            + f"{int(record.msecs):03d}Z"
        )

        payload: dict[str, Any] = {
            "ts": ts,
            "level": record.levelname,
            "logger": record.name,
            "run_id": getattr(record, "run_id", None) or RUN_ID_CTX.get(_NO_RUN),
            "event": getattr(record, "event", None),
            "message": record.message,
            "extra": {
                key: value
                for key, value in vars(record).items()
                if key not in self._RECORD_ATTRS and key not in self._PROMOTED
            },
        }

        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        elif record.exc_text:
            payload["exc_info"] = record.exc_text
        if record.stack_info:
            payload["stack_info"] = self.formatStack(record.stack_info)

        try:
            return json.dumps(payload, default=str)
        except (TypeError, ValueError):  # pragma: no cover
            return json.dumps(
                {
                    "ts": ts,
                    "level": "ERROR",
                    "logger": __name__,
                    "run_id": payload["run_id"],
                    "event": None,
                    "message": "JsonFormatter serialisation error",
                    "exc_info": traceback.format_exc(),
                    "extra": {},
                }
            )
