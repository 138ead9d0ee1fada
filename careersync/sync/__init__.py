"""Account sync after an identity-provider handoff."""

from careersync.sync.credentials import DEFAULT_TOKEN_POLICY, CredentialAcquirer
from careersync.sync.linker import (
    DEFAULT_ATTEMPT_TIMEOUT,
    DEFAULT_LINK_POLICY,
    BackendLinker,
    LinkResult,
)
from careersync.sync.orchestrator import SUCCESS_MESSAGE, SyncOrchestrator

__all__ = [
    "BackendLinker",
    "CredentialAcquirer",
    "DEFAULT_ATTEMPT_TIMEOUT",
    "DEFAULT_LINK_POLICY",
    "DEFAULT_TOKEN_POLICY",
    "LinkResult",
    "SUCCESS_MESSAGE",
    "SyncOrchestrator",
]
