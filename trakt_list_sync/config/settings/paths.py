from __future__ import annotations

import json
import os
import re
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv

_CONFIG_DIR = Path(__file__).resolve().parent.parent

load_dotenv(Path.cwd() / ".env")

CONFIG_ENV_VAR = "TRAKT_SYNC_CONFIG"

_DEFAULT_CONFIG_PATHS = {
    "service_settings": str(_CONFIG_DIR / "servicesettings.json"),
    "user_config": str(Path("~/.config/trakt-list-sync/config.json").expanduser()),
}

_ENV_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")


def expand_env_in_str(value: str) -> str:
    """Expand ``${VAR}`` tokens within a string."""

    def _repl(match: re.Match[str]) -> str:
        var = match.group(1)
        return os.getenv(var, "")

    return _ENV_PATTERN.sub(_repl, value)


def expand_env(obj: Any) -> Any:
    """Recursively expand environment variables in nested structures."""
    if isinstance(obj, str):
        return expand_env_in_str(obj)
    if isinstance(obj, list):
        return [expand_env(v) for v in obj]
    if isinstance(obj, dict):
        return {k: expand_env(v) for k, v in obj.items()}

    return obj


def read_json(path: Path) -> Dict[str, Any]:
    with path.open("r", encoding="utf-8") as fh:
        return json.load(fh)


def get_service_settings_path() -> Path:
    return Path(_DEFAULT_CONFIG_PATHS["service_settings"])


def get_config_path(override: Optional[str] = None) -> Path:
    """Resolve the user config file: explicit override, then env, then the XDG default."""
    value = override or os.getenv(CONFIG_ENV_VAR) or _DEFAULT_CONFIG_PATHS["user_config"]

    return Path(value).expanduser()


__all__ = [
    "CONFIG_ENV_VAR",
    "expand_env",
    "expand_env_in_str",
    "get_config_path",
    "get_service_settings_path",
    "read_json",
]
