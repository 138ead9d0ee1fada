"""Resume-parsing jobs: trigger and poll until the parsed resume is available.

After an upload the backend parses the resume in the background.  The
parsing-status endpoint is polled every 1.5 s for up to 20 attempts, the
first one immediately.  A "not yet" answer (including HTTP 404) is the state
being waited out, so there is no not-started early exit.

A job reported as parsed but without any extractable resume data fails with
a dedicated message, so the user can fall back to manual entry.
"""

from __future__ import annotations

import logging
from typing import Any

from careersync.backend.http_client import BackendHttpClient
from careersync.core.exceptions import BackendError, BackendRequestError
from careersync.core.models import PollResult, TaskStatus
from careersync.polling.controller import (
    Classification,
    PollingConfig,
    PollingController,
    PollMessages,
)
from careersync.resilience.scheduler import Scheduler

__all__ = [
    "DEFAULT_PARSING_CONFIG",
    "NO_DATA_MESSAGE",
    "PARSE_FAILURE_MESSAGE",
    "PARSE_TIMEOUT_MESSAGE",
    "ResumeParsingPoller",
    "classify_parsing",
    "extract_resume_payload",
    "fetch_parsing_status",
]

logger = logging.getLogger(__name__)

DEFAULT_PARSING_CONFIG = PollingConfig(
    interval=1.5,
    max_attempts=20,
    not_started_limit=None,
    delay_first=False,
)

PARSE_FAILURE_MESSAGE: str = "Something went wrong with resume parsing."
PARSE_TIMEOUT_MESSAGE: str = (
    "Resume parsing is taking longer than expected. "
    "You can retry or continue with manual entry."
)
NO_DATA_MESSAGE: str = (
    "Resume was processed but no data could be extracted. "
    "The file may be corrupted or in an unsupported format."
)

PARSING_MESSAGES = PollMessages(
    failed=PARSE_FAILURE_MESSAGE,
    timed_out=PARSE_TIMEOUT_MESSAGE,
    not_started=PARSE_TIMEOUT_MESSAGE,
)

#: Envelope keys the backend has used for the parsed resume, in lookup order.
_PAYLOAD_KEYS: tuple[str, ...] = (
    "resume",
    "data",
    "parsed_data",
    "parsedData",
    "resume_data",
    "resumeData",
    "userData",
)

#: Keys holding a raw resume record, checked on the body and then on the
#: envelope.
_RESUME_KEYS: tuple[str, ...] = ("resume", "resume_data", "resumeData")

#: Profile sections recognised in an already structured payload.
_SECTION_KEYS: tuple[str, ...] = (
    "basicInfo",
    "education",
    "workExperience",
    "skills",
    "projects",
    "achievements",
    "certification",
    "preference",
    "otherDetails",
    "reviewAgree",
)

_WAITING_STATUSES = frozenset({"", "not_started", "pending", "queued", "uploaded"})


def extract_resume_payload(body: Any) -> dict[str, Any]:
    """Pull the parsed resume out of a parsing-status body.

    A record found under a generic envelope such as ``data`` only counts
    when it holds profile sections or looks like a resume itself.

    Returns:
        The structured profile sections found, the raw resume record when
        the backend returned an unstructured one, or ``{}`` when the body
        carries no resume data at all.
    """
    if not isinstance(body, dict):
        return {}

    candidate: dict[str, Any] = body
    for key in _PAYLOAD_KEYS:
        value = body.get(key)
        if isinstance(value, dict):
            candidate = value
            break

    sections = {
        key: candidate[key] for key in _SECTION_KEYS if isinstance(candidate.get(key), dict)
    }
    if sections:
        return sections

    record = _resume_record(body, candidate)
    return dict(record) if record is not None else {}


def _resume_record(body: dict[str, Any], candidate: dict[str, Any]) -> dict[str, Any] | None:
    for source in (body, candidate):
        for key in _RESUME_KEYS:
            value = source.get(key)
            if isinstance(value, dict):
                return value

    looks_like_resume = (
        isinstance(candidate.get("name"), str)
        or isinstance(candidate.get("email"), str)
        or isinstance(candidate.get("skills"), list | str)
    )
    if looks_like_resume and "basicInfo" not in candidate:
        return candidate
    return None


async def fetch_parsing_status(client: BackendHttpClient, slug: str) -> dict[str, Any]:
    """Fetch the parsing status of the profile *slug*, resume included.

    A 404 (profile or job not known yet) is returned as
    ``{"parsing_status": "not_started"}``.
    """
    try:
        response = await client.get(
            f"/api/candidates/profiles/{slug}/parsing-status/",
            params={"include_resume": "true"},
        )
    except BackendRequestError as exc:
        if exc.status == 404:
            return {"parsing_status": "not_started"}
        raise
    return response.json if isinstance(response.json, dict) else {}


def classify_parsing(body: dict[str, Any]) -> Classification:
    """Map a parsing-status body to a :class:`Classification`."""
    status = str(body.get("parsing_status") or "").lower()
    has_resume_data = bool(
        body.get("has_resume_data")
        or body.get("hasResumeData")
        or body.get("resume_data")
        or body.get("resumeData")
    )

    if status == "parsed" or has_resume_data:
        payload = extract_resume_payload(body)
        if payload:
            return Classification(TaskStatus.COMPLETED, payload=payload)
        logger.warning("Parsing reported complete but no resume data was found.")
        return Classification(TaskStatus.FAILED, message=NO_DATA_MESSAGE)

    if status in ("failed", "error"):
        message = body.get("error") or body.get("message") or PARSE_FAILURE_MESSAGE
        return Classification(TaskStatus.FAILED, message=str(message))

    if status in _WAITING_STATUSES:
        return Classification(TaskStatus.NOT_STARTED)

    if status != "parsing":
        logger.debug("Unknown parsing status %r; still waiting.", status)
    return Classification(TaskStatus.IN_PROGRESS)


class ResumeParsingPoller:
    """Trigger resume parsing for a profile and wait for the parsed data.

    Args:
        client: Backend HTTP client.
        config: Polling cadence; defaults to :data:`DEFAULT_PARSING_CONFIG`.
        scheduler: Clock and sleep implementation.
    """

    def __init__(
        self,
        client: BackendHttpClient,
        config: PollingConfig = DEFAULT_PARSING_CONFIG,
        *,
        scheduler: Scheduler | None = None,
    ) -> None:
        self._client = client
        self.controller: PollingController[str] = PollingController(
            self._fetch,
            classify_parsing,
            config,
            scheduler=scheduler,
            messages=PARSING_MESSAGES,
            name="parsing",
        )

    async def trigger(self, slug: str) -> PollResult | None:
        """Ask the backend to parse the resume of *slug*, then poll.

        The trigger is best effort: parsing is often already queued by the
        upload itself, so a failed trigger is logged and polling goes on.
        """
        try:
            await self._client.post(f"/api/candidates/profiles/{slug}/parse-resume/", {})
        except BackendError as exc:
            logger.warning("Parse trigger for %s failed (continuing to poll): %s", slug, exc)
        return await self.controller.poll(slug)

    async def poll(self, slug: str) -> PollResult | None:
        """Poll a profile whose parsing was started elsewhere."""
        return await self.controller.poll(slug)

    def cancel(self) -> None:
        self.controller.cancel()

    async def _fetch(self, slug: str) -> dict[str, Any]:
        return await fetch_parsing_status(self._client, slug)
