"""careersync settings loaded from environment and ``.env`` files.

Uses :mod:`pydantic_settings` to parse environment variables (and optionally
an ``.env`` file) into a validated settings object.  The field name is the
**lowercase** version of the env-var name (e.g. ``BACKEND_BASE_URL`` →
``backend_base_url``).  All durations are in seconds.

Typical usage::

    from careersync.core.settings import Settings

    settings = Settings()                      # loads from env + .env
    policy = settings.token_backoff()          # BackoffPolicy for phase 1
    print(settings.backend_configured)         # True / False
"""

from __future__ import annotations

import logging

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from careersync.polling.controller import PollingConfig
from careersync.resilience.retry_budget import BackoffPolicy

__all__ = ["Settings"]

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Central application configuration.

    Values are loaded in priority order:

    1. Actual environment variables (highest priority).
    2. ``.env`` file in the working directory.
    3. Field defaults (lowest priority).

    The defaults reproduce the budgets the platform ships with; they only
    need overriding for load tests or unusually slow backends.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Backend
    # ------------------------------------------------------------------
    backend_base_url: str = Field(
        default="",
        description="Base URL of the backend API (required for the CLI).",
    )
    backend_refresh_token: str = Field(
        default="",
        description="Refresh token used to mint fresh bearer credentials.",
    )
    token_refresh_endpoint: str = Field(
        default="/api/auth/token/refresh/",
        description="Endpoint exchanging a refresh token for an access token.",
    )
    link_endpoint: str = Field(
        default="/api/auth/clerk-sync/",
        description="Endpoint linking an identity-provider user to a backend account.",
    )
    profile_endpoint: str = Field(
        default="/api/users/profile/",
        description="Endpoint receiving the best-effort profile-name patch.",
    )
    patch_profile_names: bool = Field(
        default=True,
        description="Send the non-gating profile-name patch after linking.",
    )
    request_timeout: float = Field(
        default=20.0,
        gt=0.0,
        description="Default timeout for a single backend request.",
    )

    # ------------------------------------------------------------------
    # Phase 1: credential acquisition
    # ------------------------------------------------------------------
    token_wait_window: float = Field(default=20.0, gt=0.0)
    token_initial_delay: float = Field(default=0.5, gt=0.0)
    token_backoff_multiplier: float = Field(default=1.5, ge=1.0)
    token_max_delay: float = Field(default=3.0, gt=0.0)

    # ------------------------------------------------------------------
    # Phase 2: backend linking
    # ------------------------------------------------------------------
    link_retry_window: float = Field(default=20.0, gt=0.0)
    link_initial_delay: float = Field(default=0.9, gt=0.0)
    link_backoff_multiplier: float = Field(default=1.7, ge=1.0)
    link_max_delay: float = Field(default=5.0, gt=0.0)
    link_attempt_timeout: float = Field(
        default=10.0,
        gt=0.0,
        description="Upper bound for one link request; a hung call is cancelled.",
    )

    # ------------------------------------------------------------------
    # Polling
    # ------------------------------------------------------------------
    ranking_poll_interval: float = Field(default=2.0, gt=0.0)
    ranking_max_attempts: int = Field(default=30, ge=1)
    ranking_not_started_limit: int = Field(
        default=5,
        ge=1,
        description="Consecutive 'not started' answers before giving up early.",
    )
    parsing_poll_interval: float = Field(default=1.5, gt=0.0)
    parsing_max_attempts: int = Field(default=20, ge=1)

    # ------------------------------------------------------------------
    # Runtime flags
    # ------------------------------------------------------------------
    log_level: str = Field(default="INFO", description="Logging level.")
    log_format: str = Field(default="text", description="Log format: 'text' or 'json'.")

    # ------------------------------------------------------------------
    # Field validators
    # ------------------------------------------------------------------

    @field_validator("backend_base_url")
    @classmethod
    def _strip_trailing_slash(cls, v: str) -> str:
        return v.strip().rstrip("/")

    @field_validator("log_level")
    @classmethod
    def _validate_log_level(cls, v: str) -> str:
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR"}
        v_upper = v.upper()
        if v_upper not in allowed:
            raise ValueError(f"log_level must be one of {allowed}, got {v!r}")
        return v_upper

    @field_validator("log_format")
    @classmethod
    def _validate_log_format(cls, v: str) -> str:
        allowed = {"text", "json"}
        v_lower = v.lower()
        if v_lower not in allowed:
            raise ValueError(f"log_format must be one of {allowed}, got {v!r}")
        return v_lower

    # ------------------------------------------------------------------
    # Model validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def _validate_backoff_bounds(self) -> Settings:
        """Ensure initial delay ≤ max delay for both phases."""
        if self.token_initial_delay > self.token_max_delay:
            raise ValueError(
                f"token_initial_delay ({self.token_initial_delay}) "
                f"> token_max_delay ({self.token_max_delay})"
            )
        if self.link_initial_delay > self.link_max_delay:
            raise ValueError(
                f"link_initial_delay ({self.link_initial_delay}) "
                f"> link_max_delay ({self.link_max_delay})"
            )
        return self

    # ------------------------------------------------------------------
    # Derived helpers
    # ------------------------------------------------------------------

    def token_backoff(self) -> BackoffPolicy:
        """Build the :class:`BackoffPolicy` for credential acquisition."""
        return BackoffPolicy(
            window=self.token_wait_window,
            initial_delay=self.token_initial_delay,
            multiplier=self.token_backoff_multiplier,
            cap_delay=self.token_max_delay,
        )

    def link_backoff(self) -> BackoffPolicy:
        """Build the :class:`BackoffPolicy` for backend linking."""
        return BackoffPolicy(
            window=self.link_retry_window,
            initial_delay=self.link_initial_delay,
            multiplier=self.link_backoff_multiplier,
            cap_delay=self.link_max_delay,
        )

    def ranking_polling(self) -> PollingConfig:
        """Polling parameters for background ranking jobs.

        The first fetch happens one interval after the trigger, giving the
        worker a chance to pick the job up.
        """
        return PollingConfig(
            interval=self.ranking_poll_interval,
            max_attempts=self.ranking_max_attempts,
            not_started_limit=self.ranking_not_started_limit,
            delay_first=True,
        )

    def parsing_polling(self) -> PollingConfig:
        """Polling parameters for resume-parsing jobs.

        No not-started early exit: a "not yet" answer is the state being
        waited out.
        """
        return PollingConfig(
            interval=self.parsing_poll_interval,
            max_attempts=self.parsing_max_attempts,
            not_started_limit=None,
            delay_first=False,
        )

    @property
    def backend_configured(self) -> bool:
        """``True`` if a backend base URL is set."""
        return bool(self.backend_base_url)

    @property
    def identity_configured(self) -> bool:
        """``True`` if a refresh token is available for the identity collaborator."""
        return bool(self.backend_refresh_token)
