from __future__ import annotations

import importlib
from typing import TYPE_CHECKING, Any

__all__ = [
    "SERVICE_SETTINGS",
    "ListToggles",
    "LoggingSettings",
    "Settings",
    "SyncSettings",
    "TraktSettings",
    "core",
    "paths",
    "providers",
    "get_base_url",
    "get_config_path",
    "get_default_headers",
    "get_list_page_limit",
    "get_provider_endpoints",
    "get_rate_limits",
    "get_request_timeout",
    "get_service_config",
    "load_settings",
    "save_settings",
]

_MODULE_EXPORTS = {
    "core": {
        "ListToggles",
        "LoggingSettings",
        "Settings",
        "SyncSettings",
        "TraktSettings",
        "load_settings",
        "save_settings",
    },
    "paths": {
        "get_config_path",
    },
    "providers": {
        "SERVICE_SETTINGS",
        "get_base_url",
        "get_default_headers",
        "get_list_page_limit",
        "get_provider_endpoints",
        "get_rate_limits",
        "get_request_timeout",
        "get_service_config",
    },
}

_SUBMODULE_NAMES = {"core", "paths", "providers"}

if TYPE_CHECKING:  # pragma: no cover - only for static analysis
    from . import core, paths, providers
    from .core import ListToggles, LoggingSettings, Settings, SyncSettings, TraktSettings, load_settings, save_settings
    from .paths import get_config_path
    from .providers import (
        SERVICE_SETTINGS,
        get_base_url,
        get_default_headers,
        get_list_page_limit,
        get_provider_endpoints,
        get_rate_limits,
        get_request_timeout,
        get_service_config,
    )


def __getattr__(name: str) -> Any:
    if name in _SUBMODULE_NAMES:
        module = importlib.import_module(f"{__name__}.{name}")
        globals()[name] = module
        return module
    for module_name, symbols in _MODULE_EXPORTS.items():
        if name in symbols:
            module = importlib.import_module(f"{__name__}.{module_name}")
            value = getattr(module, name)
            globals()[name] = value
            return value
    raise AttributeError(f"module '{__name__}' has no attribute '{name}'")


def __dir__() -> list[str]:
    exported = set(__all__)
    exported.update(globals().keys())
    return sorted(exported)
