"""Bounded polling of server-side asynchronous tasks (ranking, resume parsing)."""

from careersync.polling.controller import (
    Classification,
    PollingConfig,
    PollingController,
    PollingSession,
    PollMessages,
)
from careersync.polling.parsing import ResumeParsingPoller, classify_parsing
from careersync.polling.ranking import RankingPoller, classify_ranking

__all__ = [
    "Classification",
    "PollMessages",
    "PollingConfig",
    "PollingController",
    "PollingSession",
    "RankingPoller",
    "ResumeParsingPoller",
    "classify_parsing",
    "classify_ranking",
]
