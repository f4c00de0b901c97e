from __future__ import annotations

import json
import os
import tempfile
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from trakt_list_sync.backend.common.errors import ConfigError
from trakt_list_sync.backend.common.logging import get_logger
from trakt_list_sync.backend.common.types import LogFormat
from trakt_list_sync.backend.sync.reconcile import FullRefreshState

from .paths import get_config_path, read_json

log = get_logger(__name__)

VALID_PRIVACY = ("private", "friends", "public")
REFRESH_WINDOW = timedelta(hours=1)


@dataclass
class TraktSettings:
    client_id: str = ""
    client_secret: str = ""
    username: str = ""
    access_token: str = ""
    refresh_token: str = ""
    token_expires_at: Optional[datetime] = None


@dataclass
class ListToggles:
    movies: bool = True
    shows: bool = True


@dataclass
class SyncSettings:
    limit: int = 30
    min_rating: int = 60
    list_privacy: str = "private"
    full_refresh_days: int = 7
    last_full_refresh: FullRefreshState = field(default_factory=FullRefreshState)
    lists: ListToggles = field(default_factory=ListToggles)


@dataclass
class LoggingSettings:
    level: str = "info"
    format: LogFormat = "text"


@dataclass
class Settings:
    trakt: TraktSettings = field(default_factory=TraktSettings)
    sync: SyncSettings = field(default_factory=SyncSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)

    def validate(self) -> None:
        if not self.trakt.client_id:
            raise ConfigError("trakt.client_id is required")
        if not self.trakt.client_secret:
            raise ConfigError("trakt.client_secret is required")
        if not self.trakt.username:
            raise ConfigError("trakt.username is required")
        if self.sync.limit <= 0:
            raise ConfigError("sync.limit must be greater than 0")
        if not 0 <= self.sync.min_rating <= 100:
            raise ConfigError("sync.min_rating must be between 0 and 100")
        privacy = (self.sync.list_privacy or "").strip()
        if not privacy:
            raise ConfigError("sync.list_privacy is required")
        if privacy not in VALID_PRIVACY:
            raise ConfigError(f"sync.list_privacy must be one of {', '.join(VALID_PRIVACY)}")
        if self.sync.full_refresh_days <= 0:
            raise ConfigError("sync.full_refresh_days must be greater than 0")

    def is_authenticated(self) -> bool:
        return bool(self.trakt.access_token and self.trakt.refresh_token)

    def needs_refresh(self, now: Optional[datetime] = None) -> bool:
        if not self.trakt.access_token:
            return False
        expires_at = self.trakt.token_expires_at
        if expires_at is None:
            return True
        current = now or datetime.now(timezone.utc)

        return current + REFRESH_WINDOW > expires_at

    def as_dict(self) -> Dict[str, Any]:
        privacy = (self.sync.list_privacy or "").strip() or "private"
        return {
            "trakt": {
                "client_id": self.trakt.client_id,
                "client_secret": self.trakt.client_secret,
                "username": self.trakt.username,
                "access_token": self.trakt.access_token,
                "refresh_token": self.trakt.refresh_token,
                "token_expires_at": format_timestamp(self.trakt.token_expires_at),
            },
            "sync": {
                "limit": self.sync.limit,
                "min_rating": self.sync.min_rating,
                "list_privacy": privacy,
                "full_refresh_days": self.sync.full_refresh_days,
                "last_full_refresh": {
                    "movies": format_timestamp(self.sync.last_full_refresh.movies),
                    "shows": format_timestamp(self.sync.last_full_refresh.shows),
                },
                "lists": {
                    "movies": self.sync.lists.movies,
                    "shows": self.sync.lists.shows,
                },
            },
            "logging": {
                "level": self.logging.level,
                "format": self.logging.format,
            },
        }


def parse_timestamp(value: Any, *, key: str = "timestamp") -> Optional[datetime]:
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if not text:
            return None
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError as exc:
            raise ConfigError(f"{key} is not an ISO 8601 timestamp: {text!r}") from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)

    return parsed


def format_timestamp(value: Optional[datetime]) -> str:
    if value is None:
        return ""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)

    return value.astimezone(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def _section(payload: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    value = payload.get(key)
    return value if isinstance(value, Mapping) else {}


def _as_int(value: Any, default: int, *, key: str) -> int:
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{key} must be an integer, got {value!r}") from exc


def _as_bool(value: Any, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


def settings_from_dict(payload: Mapping[str, Any]) -> Settings:
    trakt_cfg = _section(payload, "trakt")
    sync_cfg = _section(payload, "sync")
    logging_cfg = _section(payload, "logging")
    refresh_cfg = _section(sync_cfg, "last_full_refresh")
    lists_cfg = _section(sync_cfg, "lists")
    defaults = SyncSettings()

    return Settings(
        trakt=TraktSettings(
            client_id=str(trakt_cfg.get("client_id") or ""),
            client_secret=str(trakt_cfg.get("client_secret") or ""),
            username=str(trakt_cfg.get("username") or ""),
            access_token=str(trakt_cfg.get("access_token") or ""),
            refresh_token=str(trakt_cfg.get("refresh_token") or ""),
            token_expires_at=parse_timestamp(trakt_cfg.get("token_expires_at"), key="trakt.token_expires_at"),
        ),
        sync=SyncSettings(
            limit=_as_int(sync_cfg.get("limit"), defaults.limit, key="sync.limit"),
            min_rating=_as_int(sync_cfg.get("min_rating"), defaults.min_rating, key="sync.min_rating"),
            list_privacy=str(sync_cfg.get("list_privacy") or defaults.list_privacy).strip(),
            full_refresh_days=_as_int(
                sync_cfg.get("full_refresh_days"), defaults.full_refresh_days, key="sync.full_refresh_days"
            ),
            last_full_refresh=FullRefreshState(
                movies=parse_timestamp(refresh_cfg.get("movies"), key="sync.last_full_refresh.movies"),
                shows=parse_timestamp(refresh_cfg.get("shows"), key="sync.last_full_refresh.shows"),
            ),
            lists=ListToggles(
                movies=_as_bool(lists_cfg.get("movies"), True),
                shows=_as_bool(lists_cfg.get("shows"), True),
            ),
        ),
        logging=LoggingSettings(
            level=str(logging_cfg.get("level") or "info"),
            format=str(logging_cfg.get("format") or "text"),
        ),
    )


def _apply_env_overrides(settings: Settings) -> Settings:
    settings.trakt.client_id = os.getenv("TRAKT_CLIENT_ID", settings.trakt.client_id)
    settings.trakt.client_secret = os.getenv("TRAKT_CLIENT_SECRET", settings.trakt.client_secret)
    settings.trakt.username = os.getenv("TRAKT_USERNAME", settings.trakt.username)
    settings.logging.level = os.getenv("TRAKT_SYNC_LOG_LEVEL", settings.logging.level)
    settings.logging.format = os.getenv("TRAKT_SYNC_LOG_FORMAT", settings.logging.format)

    return settings


def load_settings(path: Optional[os.PathLike[str] | str] = None) -> Settings:
    """Read the config file, writing a default one first when it does not exist yet."""
    config_path = get_config_path(str(path) if path else None)
    if not config_path.exists():
        log.info("Config file %s not found; writing defaults", config_path)
        save_settings(Settings(), config_path)

    try:
        payload = read_json(config_path)
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Failed to parse {config_path}: {exc}") from exc
    if not isinstance(payload, Mapping):
        raise ConfigError(f"{config_path} must contain a JSON object")

    return _apply_env_overrides(settings_from_dict(payload))


def save_settings(settings: Settings, path: Optional[os.PathLike[str] | str] = None) -> Path:
    config_path = get_config_path(str(path) if path else None)
    config_path.parent.mkdir(parents=True, exist_ok=True)

    fd, tmp_name = tempfile.mkstemp(prefix=".config-", suffix=".json", dir=str(config_path.parent))
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            json.dump(settings.as_dict(), fh, indent=2, ensure_ascii=False)
            fh.write("\n")
        os.replace(tmp_name, config_path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise

    return config_path


__all__ = [
    "ListToggles",
    "LoggingSettings",
    "Settings",
    "SyncSettings",
    "TraktSettings",
    "format_timestamp",
    "load_settings",
    "parse_timestamp",
    "save_settings",
    "settings_from_dict",
]
