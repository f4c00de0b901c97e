"""Glue between the saved settings and the sync engine.

Everything here works on a :class:`Settings` instance plus the path it was
loaded from, so refreshed tokens and full-refresh stamps can be written back.
"""

from __future__ import annotations

import signal
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence

from trakt_list_sync.backend.common.errors import ConfigError, TraktSyncError
from trakt_list_sync.backend.common.logging import get_logger
from trakt_list_sync.backend.common.tasks import PeriodicRunner, TaskSpec
from trakt_list_sync.backend.common.types import SyncOutcome
from trakt_list_sync.backend.information_handlers.models import DeviceCode, OAuthToken
from trakt_list_sync.backend.information_handlers.trakt_auth import DeviceFlow, TraktAuth
from trakt_list_sync.backend.information_handlers.trakt_catalog import TraktCatalog
from trakt_list_sync.backend.information_handlers.trakt_lists import TraktListManager
from trakt_list_sync.backend.network_handlers.session import HttpSession
from trakt_list_sync.backend.sync.definitions import (
    ListDefinition,
    default_list_definitions,
    filter_definitions,
)
from trakt_list_sync.backend.sync.syncer import ListSyncResult, SyncResult, Syncer
from trakt_list_sync.config.settings.core import Settings, load_settings, save_settings

log = get_logger(__name__)


@dataclass
class RunReport:
    outcome: SyncOutcome
    result: Optional[SyncResult] = None
    error: Optional[BaseException] = None

    @property
    def exit_code(self) -> int:
        return self.outcome.exit_code


def apply_token(settings: Settings, token: OAuthToken) -> None:
    settings.trakt.access_token = token.access_token
    if token.refresh_token:
        settings.trakt.refresh_token = token.refresh_token
    settings.trakt.token_expires_at = token.expires_at


class SettingsTokenObserver:
    """Copies refreshed tokens into ``settings`` and saves them to ``path``."""

    def __init__(self, settings: Settings, path: Optional[Path]):
        self._settings = settings
        self._path = path

    def tokens_updated(self, token: OAuthToken) -> None:
        apply_token(self._settings, token)
        save_settings(self._settings, self._path)


def persist_state(settings: Settings, path: Optional[Path]) -> bool:
    """Save settings after a sync; a failure is only worth a warning at this point."""

    try:
        save_settings(settings, path)
    except OSError as exc:
        log.warning("Failed to save sync state: %s", exc, extra={"path": str(path or "")})
        return False
    return True


def build_session(settings: Settings, *, http: Any = None, **kwargs: Any) -> HttpSession:
    return HttpSession(
        settings.trakt.client_id,
        settings.trakt.access_token,
        http=http,
        **kwargs,
    )


def list_definitions(settings: Settings, lists_filter: Optional[Sequence[str]] = None) -> List[ListDefinition]:
    definitions = default_list_definitions(
        movies_enabled=settings.sync.lists.movies,
        shows_enabled=settings.sync.lists.shows,
        privacy=settings.sync.list_privacy,
        limit=settings.sync.limit,
    )
    return filter_definitions(definitions, lists_filter)


# ---------------- auth ----------------

def run_auth(
    settings: Settings,
    config_path: Optional[Path] = None,
    *,
    on_device_code: Optional[Callable[[DeviceCode], None]] = None,
    session: Optional[HttpSession] = None,
    flow_kwargs: Optional[Dict[str, Any]] = None,
) -> OAuthToken:
    """Run the device flow to completion and save the granted tokens.

    Raises :class:`ConfigError` when the settings are incomplete or the tokens
    cannot be written, and :class:`AuthError` subclasses for terminal flow
    states.
    """

    settings.validate()
    session = session or build_session(settings)
    auth = TraktAuth(session, settings.trakt.client_secret)
    flow = DeviceFlow(auth, on_device_code=on_device_code, **(flow_kwargs or {}))

    token = flow.run()
    apply_token(settings, token)
    try:
        save_settings(settings, config_path)
    except OSError as exc:
        raise ConfigError(f"failed to save config: {exc}") from exc
    log.info("Authentication successful, tokens saved")

    return token


# ---------------- sync ----------------

def _dry_run(definitions: Sequence[ListDefinition], settings: Settings) -> SyncResult:
    log.info("DRY RUN: no API calls will be made")
    result = SyncResult()
    for definition in definitions:
        if not definition.enabled:
            continue
        result.record(ListSyncResult(slug=definition.slug))
        log.info("DRY RUN: would sync list", extra={"list": definition.slug, "limit": settings.sync.limit})

    return result


def run_sync(
    settings: Settings,
    config_path: Optional[Path] = None,
    *,
    lists_filter: Optional[Sequence[str]] = None,
    dry_run: bool = False,
    session: Optional[HttpSession] = None,
) -> RunReport:
    """One aggregate pass, with the precondition checks in front of it."""

    try:
        settings.validate()
    except ConfigError as exc:
        log.error("Config validation failed: %s", exc)
        return RunReport(SyncOutcome.PRECONDITION_FAILED, error=exc)

    definitions = list_definitions(settings, lists_filter)
    if dry_run:
        result = _dry_run(definitions, settings)
        return RunReport(result.outcome, result)

    if not settings.is_authenticated():
        exc = ConfigError("not authenticated, run 'trakt-list-sync auth' first")
        log.error("%s", exc)
        return RunReport(SyncOutcome.PRECONDITION_FAILED, error=exc)

    if session is not None:
        return _sync_pass(settings, config_path, definitions, session)

    owned = build_session(settings)
    try:
        return _sync_pass(settings, config_path, definitions, owned)
    finally:
        owned.close()


def _sync_pass(
    settings: Settings,
    config_path: Optional[Path],
    definitions: Sequence[ListDefinition],
    session: HttpSession,
) -> RunReport:
    auth = TraktAuth(
        session,
        settings.trakt.client_secret,
        refresh_token=settings.trakt.refresh_token,
        observer=SettingsTokenObserver(settings, config_path),
    )
    auth.attach()

    if settings.needs_refresh():
        log.info("Access token expires soon, refreshing")
        try:
            auth.refresh_tokens()
        except TraktSyncError as exc:
            log.error("Failed to refresh token: %s", exc)
            return RunReport(SyncOutcome.PRECONDITION_FAILED, error=exc)

    syncer = Syncer(
        TraktCatalog(session),
        TraktListManager(session),
        owner=settings.trakt.username,
        settings=settings.sync,
    )
    result = syncer.sync_all(definitions)

    if syncer.state_dirty:
        persist_state(settings, config_path)

    return RunReport(result.outcome, result)


# ---------------- daemon ----------------

def _install_signal_handlers(runner: PeriodicRunner) -> None:
    if threading.current_thread() is not threading.main_thread():
        return

    def _handle(signum: int, _frame: Any) -> None:
        log.info("Received signal %s, stopping after the current pass", signal.Signals(signum).name)
        runner.stop()

    signal.signal(signal.SIGINT, _handle)
    signal.signal(signal.SIGTERM, _handle)


def run_daemon(
    config_path: Optional[Path],
    interval: float,
    *,
    dry_run: bool = False,
    lists_filter: Optional[Sequence[str]] = None,
    runner: Optional[PeriodicRunner] = None,
    session_factory: Optional[Callable[[Settings], HttpSession]] = None,
) -> RunReport:
    """Sync now and then every ``interval`` seconds until SIGINT/SIGTERM.

    Settings are re-read before every pass so edits to the config file and
    tokens saved by an earlier pass are picked up.
    """

    settings = load_settings(config_path)
    if not dry_run and not settings.is_authenticated():
        exc = ConfigError("not authenticated, run 'trakt-list-sync auth' first")
        log.error("%s", exc)
        return RunReport(SyncOutcome.PRECONDITION_FAILED, error=exc)

    runner = runner or PeriodicRunner(interval)
    _install_signal_handlers(runner)
    log.info("Starting daemon mode", extra={"interval": runner.interval})

    def _pass() -> RunReport:
        current = load_settings(config_path)
        session = session_factory(current) if session_factory else None
        report = run_sync(
            current,
            config_path,
            lists_filter=lists_filter,
            dry_run=dry_run,
            session=session,
        )
        if report.outcome not in (SyncOutcome.SUCCESS, SyncOutcome.NOOP):
            log.error("Sync pass finished with %s", report.outcome.value)
        return report

    runner.run_forever(TaskSpec(fn=_pass, name="sync"))

    return RunReport(SyncOutcome.SUCCESS)


__all__ = [
    "RunReport",
    "SettingsTokenObserver",
    "apply_token",
    "build_session",
    "list_definitions",
    "persist_state",
    "run_auth",
    "run_daemon",
    "run_sync",
]
