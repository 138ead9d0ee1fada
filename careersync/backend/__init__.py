"""Backend HTTP access and the identity collaborator contract."""

from careersync.backend.http_client import (
    BackendHttpClient,
    BackendResponse,
    extract_error_message,
)
from careersync.backend.identity import IdentityProvider, RefreshEndpointIdentity

__all__ = [
    "BackendHttpClient",
    "BackendResponse",
    "IdentityProvider",
    "RefreshEndpointIdentity",
    "extract_error_message",
]
