"""Backend public interfaces with lazy loading to avoid circular imports."""

from __future__ import annotations

import importlib
from typing import TYPE_CHECKING, Any

__all__ = [
    "DeviceFlow",
    "HttpSession",
    "SyncResult",
    "Syncer",
    "TraktAuth",
    "TraktCatalog",
    "TraktListManager",
    "compute_diff",
]

_MODULE_EXPORTS = {
    "network_handlers.session": {"HttpSession"},
    "information_handlers.trakt_auth": {"DeviceFlow", "TraktAuth"},
    "information_handlers.trakt_catalog": {"TraktCatalog"},
    "information_handlers.trakt_lists": {"TraktListManager"},
    "sync.reconcile": {"compute_diff"},
    "sync.syncer": {"SyncResult", "Syncer"},
}

if TYPE_CHECKING:  # pragma: no cover - imported for type checkers only
    from .information_handlers.trakt_auth import DeviceFlow, TraktAuth
    from .information_handlers.trakt_catalog import TraktCatalog
    from .information_handlers.trakt_lists import TraktListManager
    from .network_handlers.session import HttpSession
    from .sync.reconcile import compute_diff
    from .sync.syncer import SyncResult, Syncer


def __getattr__(name: str) -> Any:
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
