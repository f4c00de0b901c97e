"""Command line entry point for trakt-list-sync."""

from __future__ import annotations

import argparse
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import trakt_list_sync
from trakt_list_sync.backend.common.errors import AuthError, ConfigError, TraktSyncError
from trakt_list_sync.backend.common.logging import get_logger, init_logging
from trakt_list_sync.backend.common.types import SyncOutcome
from trakt_list_sync.backend.information_handlers.models import DeviceCode
from trakt_list_sync.config.settings import core as settings_core
from trakt_list_sync.config.settings import paths as path_settings
from trakt_list_sync import runtime

from ._utils import build_subparser, exit_with_error, parse_duration, print_json, require_subcommand

log = get_logger("trakt_list_sync.cli")

DEFAULT_DAEMON_INTERVAL = "6h"


def _config_path(args: argparse.Namespace) -> Path:
    return path_settings.get_config_path(args.config)


def _load(args: argparse.Namespace) -> settings_core.Settings:
    try:
        settings = settings_core.load_settings(_config_path(args))
    except ConfigError as exc:
        exit_with_error(f"failed to load config: {exc}", code=SyncOutcome.PRECONDITION_FAILED.exit_code)
    level = "DEBUG" if args.verbose else settings.logging.level
    init_logging(level, settings.logging.format)

    return settings


def _split_lists(value: Optional[str]) -> Optional[List[str]]:
    if not value:
        return None
    return [slug.strip() for slug in value.split(",") if slug.strip()]


# ---------------- handlers ----------------

def _print_device_code(device: DeviceCode) -> None:
    print("\nPlease authenticate by visiting:")
    print(f"\n  {device.verification_url}\n")
    print(f"And enter this code: {device.user_code}\n")
    print("Waiting for authorization...")


def _handle_auth(args: argparse.Namespace) -> int:
    settings = _load(args)
    try:
        runtime.run_auth(settings, _config_path(args), on_device_code=_print_device_code)
    except (AuthError, ConfigError) as exc:
        log.error("Authentication failed: %s", exc)
        return SyncOutcome.PRECONDITION_FAILED.exit_code
    except TraktSyncError as exc:
        log.error("Authentication failed: %s", exc)
        return SyncOutcome.TOTAL_FAILURE.exit_code
    print("Authentication successful! Tokens saved to config.")

    return 0


def _handle_sync(args: argparse.Namespace) -> int:
    settings = _load(args)
    report = runtime.run_sync(
        settings,
        _config_path(args),
        lists_filter=_split_lists(args.lists),
        dry_run=args.dry_run,
    )
    if report.outcome not in (SyncOutcome.SUCCESS, SyncOutcome.NOOP):
        log.error("Sync failed", extra={"outcome": report.outcome.value})

    return report.exit_code


def _handle_daemon(args: argparse.Namespace) -> int:
    _load(args)
    report = runtime.run_daemon(
        _config_path(args),
        args.interval,
        dry_run=args.dry_run,
        lists_filter=_split_lists(args.lists),
    )

    return report.exit_code


def _status_payload(settings: settings_core.Settings, config_path: Path) -> Dict[str, Any]:
    authenticated = settings.is_authenticated()
    return {
        "config_file": str(config_path),
        "username": settings.trakt.username,
        "authenticated": authenticated,
        "token_expires_at": settings_core.format_timestamp(settings.trakt.token_expires_at) or None,
        "needs_refresh": settings.needs_refresh() if authenticated else False,
        "enabled_lists": [d.slug for d in runtime.list_definitions(settings) if d.enabled],
        "limit": settings.sync.limit,
        "min_rating": settings.sync.min_rating,
        "list_privacy": settings.sync.list_privacy,
        "full_refresh_days": settings.sync.full_refresh_days,
        "last_full_refresh": {
            "movies": settings_core.format_timestamp(settings.sync.last_full_refresh.movies) or None,
            "shows": settings_core.format_timestamp(settings.sync.last_full_refresh.shows) or None,
        },
    }


def _handle_status(args: argparse.Namespace) -> int:
    settings = _load(args)
    payload = _status_payload(settings, _config_path(args))
    if args.json:
        print_json(payload)
        return 0

    print("Trakt Sync Status")
    print("=================")
    print(f"Config file: {payload['config_file']}")
    print(f"Username: {payload['username']}")
    print(f"Authenticated: {payload['authenticated']}")
    if payload["authenticated"]:
        print(f"Token expires: {payload['token_expires_at'] or 'unknown'}")
        print(f"Token needs refresh: {'YES' if payload['needs_refresh'] else 'NO'}")

    print("\nEnabled Lists:")
    for slug in payload["enabled_lists"]:
        print(f"  - {slug}")

    print(f"\nSync limit: {settings.sync.limit} items per source")
    print(f"Minimum rating: {settings.sync.min_rating}")
    print(f"List privacy: {settings.sync.list_privacy}")
    print(f"Full refresh: every {settings.sync.full_refresh_days} days")

    return 0


def _handle_config_validate(args: argparse.Namespace) -> int:
    settings = _load(args)
    try:
        settings.validate()
    except ConfigError as exc:
        log.error("Configuration is invalid: %s", exc)
        return SyncOutcome.PRECONDITION_FAILED.exit_code
    print("Configuration is valid")

    return 0


def _handle_version(_: argparse.Namespace) -> int:
    print(f"trakt-list-sync version {trakt_list_sync.__version__}")
    return 0


# ---------------- parser ----------------

def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="trakt-list-sync",
        description="Sync Trakt lists with the trending and most watched charts.",
    )
    parser.add_argument("-c", "--config", help="config file (default: ~/.config/trakt-list-sync/config.json)")
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    parser.add_argument("--dry-run", action="store_true", help="show what would happen without making changes")

    subparsers = parser.add_subparsers(dest="command")
    require_subcommand(subparsers)

    auth_parser = build_subparser(subparsers, "auth", help="Authenticate with Trakt using the device flow")
    auth_parser.set_defaults(func=_handle_auth)

    sync_parser = build_subparser(subparsers, "sync", help="Sync enabled lists once")
    sync_parser.add_argument("--lists", help="comma-separated list slugs, e.g. trakt-sync-filme,trakt-sync-serien")
    sync_parser.set_defaults(func=_handle_sync)

    daemon_parser = build_subparser(subparsers, "daemon", help="Sync periodically until interrupted")
    daemon_parser.add_argument(
        "--interval",
        type=parse_duration,
        default=parse_duration(DEFAULT_DAEMON_INTERVAL),
        help=f"time between passes, e.g. 30m or 6h (default: {DEFAULT_DAEMON_INTERVAL})",
    )
    daemon_parser.add_argument("--lists", help="comma-separated list slugs to restrict each pass to")
    daemon_parser.set_defaults(func=_handle_daemon)

    status_parser = build_subparser(subparsers, "status", help="Show authentication and configuration status")
    status_parser.add_argument("--json", action="store_true", help="print the status as JSON")
    status_parser.set_defaults(func=_handle_status)

    config_parser = build_subparser(subparsers, "config", help="Configuration commands")
    config_sub = config_parser.add_subparsers(dest="config_command")
    require_subcommand(config_sub)
    validate_parser = build_subparser(config_sub, "validate", help="Validate the configuration file")
    validate_parser.set_defaults(func=_handle_config_validate)

    version_parser = build_subparser(subparsers, "version", help="Show version")
    version_parser.set_defaults(func=_handle_version)

    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    init_logging()
    parser = _build_parser()
    args = parser.parse_args(argv)
    handler = getattr(args, "func", None)
    if handler is None:
        parser.print_help()
        return 0

    return handler(args)


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
