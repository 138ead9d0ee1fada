"""careersync process entry-point.

Usage:
    python -m careersync sync --user-id ID --email EMAIL [--first-name F] [--last-name L]
    python -m careersync rank JOB_ID
    python -m careersync parse SLUG [--no-trigger]

Every sub-command reads its backend location and refresh token from the
environment (see :class:`~careersync.core.settings.Settings`).  The module is
intentionally thin: it calls ``configure_logging()`` first, then hands off to
the sync orchestrator or a polling session.

Exit codes: ``0`` on success, ``1`` on a terminal failure, a soft polling
outcome or a configuration error.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import TYPE_CHECKING

from pydantic import ValidationError

from careersync.core import configure_logging
from careersync.core.exceptions import CareerSyncError, ConfigError
from careersync.core.settings import Settings

if TYPE_CHECKING:
    from careersync.backend.http_client import BackendHttpClient

logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="careersync",
        description="Account sync and background-job polling for the career platform.",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        metavar="LEVEL",
        help="Override LOG_LEVEL env var (DEBUG|INFO|WARNING|ERROR).",
    )
    parser.add_argument(
        "--log-format",
        default=None,
        metavar="FORMAT",
        help="Override LOG_FORMAT env var (text|json).",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    sync = commands.add_parser("sync", help="Link an identity-provider user to the backend.")
    sync.add_argument("--user-id", required=True, help="Identity-provider user ID.")
    sync.add_argument("--email", required=True, help="Primary email address.")
    sync.add_argument("--first-name", default="", help="Given name for the profile patch.")
    sync.add_argument("--last-name", default="", help="Family name for the profile patch.")

    rank = commands.add_parser("rank", help="Trigger candidate ranking and wait for it.")
    rank.add_argument("job_id", help="Job whose candidates are ranked.")

    parse = commands.add_parser("parse", help="Wait for a resume to be parsed.")
    parse.add_argument("slug", help="Candidate profile slug.")
    parse.add_argument(
        "--no-trigger",
        action="store_true",
        help="Only poll; do not ask the backend to (re)start parsing.",
    )
    return parser


async def _run_sync(args: argparse.Namespace, settings: Settings) -> int:
    from careersync.backend.http_client import BackendHttpClient  # noqa: PLC0415
    from careersync.backend.identity import RefreshEndpointIdentity  # noqa: PLC0415
    from careersync.core.models import Identity, SyncPhase  # noqa: PLC0415
    from careersync.sync.orchestrator import SyncOrchestrator  # noqa: PLC0415

    identity = Identity(
        id=args.user_id,
        email=args.email,
        first_name=args.first_name,
        last_name=args.last_name,
    )
    async with BackendHttpClient(
        base_url=settings.backend_base_url, timeout=settings.request_timeout
    ) as client:
        provider = RefreshEndpointIdentity(
            client,
            settings.backend_refresh_token,
            refresh_endpoint=settings.token_refresh_endpoint,
        )
        orchestrator = SyncOrchestrator.from_settings(settings, provider, client, identity)
        orchestrator.start()
        await orchestrator.wait()

    view = orchestrator.view
    if view.phase == SyncPhase.SUCCEEDED:
        print(view.success_message)  # noqa: T201
        return 0
    print(view.error_message or "Sync did not complete.", file=sys.stderr)  # noqa: T201
    return 1


async def _run_poll(args: argparse.Namespace, settings: Settings) -> int:
    from careersync.backend.http_client import BackendHttpClient  # noqa: PLC0415
    from careersync.polling.parsing import ResumeParsingPoller  # noqa: PLC0415
    from careersync.polling.ranking import RankingPoller  # noqa: PLC0415

    async with BackendHttpClient(
        base_url=settings.backend_base_url, timeout=settings.request_timeout
    ) as client:
        credential = await _bearer(client, settings)
        if credential:
            client.set_credential(credential)

        if args.command == "rank":
            result = await RankingPoller(client, settings.ranking_polling()).trigger(args.job_id)
        else:
            poller = ResumeParsingPoller(client, settings.parsing_polling())
            if args.no_trigger:
                result = await poller.poll(args.slug)
            else:
                result = await poller.trigger(args.slug)

    if result is None:
        return 1
    if result.succeeded:
        print(f"Completed after {result.attempts} attempt(s).")  # noqa: T201
        return 0
    print(result.message, file=sys.stderr)  # noqa: T201
    return 1


async def _bearer(client: BackendHttpClient, settings: Settings) -> str | None:
    """Mint a credential for the polling commands, if a refresh token is set."""
    if not settings.identity_configured:
        return None
    from careersync.backend.identity import RefreshEndpointIdentity  # noqa: PLC0415

    provider = RefreshEndpointIdentity(
        client,
        settings.backend_refresh_token,
        refresh_endpoint=settings.token_refresh_endpoint,
    )
    return await provider.get_credential(force_fresh=True)


def main(argv: list[str] | None = None) -> None:
    """CLI entry-point registered in ``pyproject.toml``."""
    args = _build_parser().parse_args(argv)

    try:
        configure_logging(level=args.log_level, fmt=args.log_format)
    except ValueError as exc:
        print(f"careersync: configuration error: {exc}", file=sys.stderr)  # noqa: T201
        sys.exit(1)

    try:
        try:
            settings = Settings()
        except ValidationError as exc:
            raise ConfigError(f"Invalid settings: {exc}") from exc
        if not settings.backend_configured:
            raise ConfigError("BACKEND_BASE_URL is not set.")
        if args.command == "sync":
            code = asyncio.run(_run_sync(args, settings))
        else:
            code = asyncio.run(_run_poll(args, settings))
    except ConfigError as exc:
        logger.critical("Configuration error: %s", exc)
        sys.exit(1)
    except CareerSyncError as exc:
        logger.error("%s", exc)
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Interrupted, exiting.")
        sys.exit(1)

    sys.exit(code)


if __name__ == "__main__":
    main()
