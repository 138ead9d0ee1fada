"""Candidate-ranking jobs: trigger and poll until the ranking is available.

Ranking is computed by a background worker.  Triggering returns immediately,
usually with a ``task_id``; the ranking data endpoint is then polled every
2 s for up to 30 attempts, starting one interval after the trigger.

"Not started" signal
~~~~~~~~~~~~~~~~~~~~
The backend reports a job that was never ranked either with HTTP 404 or with
``ranking_status == "not_started"``.  :func:`fetch_ranking_data` normalises
the 404 into the status field, so :func:`classify_ranking` only ever looks at
``ranking_status``.  Five consecutive "not started" answers end the session
early with a soft failure.

Typical usage::

    poller = RankingPoller(client, settings.ranking_polling())
    result = await poller.trigger(job_id)
"""

from __future__ import annotations

import logging
from typing import Any

from careersync.backend.http_client import BackendHttpClient
from careersync.core.exceptions import BackendError, BackendRequestError, PollingError
from careersync.core.models import PollOutcome, PollResult, TaskStatus
from careersync.polling.controller import (
    Classification,
    PollingConfig,
    PollingController,
    PollMessages,
)
from careersync.resilience.scheduler import Scheduler

__all__ = [
    "DEFAULT_RANKING_CONFIG",
    "RANKING_MESSAGES",
    "RankingPoller",
    "TRIGGER_FAILED_MESSAGE",
    "classify_ranking",
    "fetch_ranking_data",
]

logger = logging.getLogger(__name__)

DEFAULT_RANKING_CONFIG = PollingConfig(
    interval=2.0,
    max_attempts=30,
    not_started_limit=5,
    delay_first=True,
)

RANKING_MESSAGES = PollMessages(
    failed="Ranking failed. Please try again.",
    timed_out="Ranking is taking longer than expected. Please refresh to check status.",
    not_started="Ranking has not started yet. Try triggering it again.",
)

TRIGGER_FAILED_MESSAGE: str = "Failed to trigger candidate ranking. Please try again."

_NOT_STARTED_BODY: dict[str, Any] = {"ranked_candidates": [], "ranking_status": "not_started"}


async def fetch_ranking_data(client: BackendHttpClient, job_id: str) -> dict[str, Any]:
    """Fetch the current ranking data of *job_id*.

    Returns:
        The response body.  A 404 is returned as
        ``{"ranked_candidates": [], "ranking_status": "not_started"}``.

    Raises:
        BackendError: On any other failure.
    """
    try:
        response = await client.get(f"/api/jobs/{job_id}/ranking-data/")
    except BackendRequestError as exc:
        if exc.status == 404:
            return dict(_NOT_STARTED_BODY)
        raise
    return response.json if isinstance(response.json, dict) else {}


def classify_ranking(data: dict[str, Any]) -> Classification:
    """Map a ranking-data body to a :class:`Classification`.

    A non-empty ``ranked_candidates`` list counts as completed even when the
    status field lags behind.
    """
    status = str(data.get("ranking_status") or "").lower()
    candidates = data.get("ranked_candidates") or []

    if status == "completed" or candidates:
        return Classification(TaskStatus.COMPLETED, payload=data)
    if status == "failed":
        return Classification(TaskStatus.FAILED, message=RANKING_MESSAGES.failed)
    if status == "not_started":
        return Classification(TaskStatus.NOT_STARTED)
    return Classification(TaskStatus.IN_PROGRESS)


class RankingPoller:
    """Trigger ranking for a job and wait for the ranked candidates.

    Args:
        client: Backend HTTP client.
        config: Polling cadence; defaults to :data:`DEFAULT_RANKING_CONFIG`.
        scheduler: Clock and sleep implementation.
    """

    def __init__(
        self,
        client: BackendHttpClient,
        config: PollingConfig = DEFAULT_RANKING_CONFIG,
        *,
        scheduler: Scheduler | None = None,
    ) -> None:
        self._client = client
        self.controller: PollingController[str] = PollingController(
            self._fetch,
            classify_ranking,
            config,
            scheduler=scheduler,
            messages=RANKING_MESSAGES,
            name="ranking",
        )

    async def trigger(self, job_id: str) -> PollResult | None:
        """Start ranking *job_id* and wait for the outcome.

        When the backend answers without a task reference and without a
        ``"ranking"`` status, the ranking data is fetched once instead of
        polling.

        Raises:
            PollingError: The trigger request was rejected.
        """
        try:
            response = await self._client.post(f"/api/jobs/{job_id}/rank-candidates/", {})
        except BackendError as exc:
            logger.error("Ranking trigger for job %s failed: %s", job_id, exc)
            raise PollingError(TRIGGER_FAILED_MESSAGE) from exc

        body = response.json if isinstance(response.json, dict) else {}
        if body.get("task_id") or body.get("ranking_status") == "ranking":
            logger.info("Ranking queued for job %s (task_id=%s).", job_id, body.get("task_id"))
            return await self.controller.poll(job_id)

        return await self.fetch_once(job_id)

    async def poll(self, job_id: str) -> PollResult | None:
        """Poll a job whose ranking was triggered elsewhere."""
        return await self.controller.poll(job_id)

    async def fetch_once(self, job_id: str) -> PollResult:
        """Fetch the ranking data a single time and report it as a result."""
        data = await self._fetch(job_id)
        classification = classify_ranking(data)
        if classification.status == TaskStatus.COMPLETED:
            return PollResult(PollOutcome.COMPLETED, attempts=1, payload=data)
        if classification.status == TaskStatus.FAILED:
            return PollResult(
                PollOutcome.FAILED, attempts=1, message=classification.message
            )
        if classification.status == TaskStatus.NOT_STARTED:
            return PollResult(
                PollOutcome.NOT_STARTED, attempts=1, message=RANKING_MESSAGES.not_started
            )
        return PollResult(PollOutcome.TIMED_OUT, attempts=1, message=RANKING_MESSAGES.timed_out)

    def cancel(self) -> None:
        self.controller.cancel()

    async def _fetch(self, job_id: str) -> dict[str, Any]:
        return await fetch_ranking_data(self._client, job_id)
