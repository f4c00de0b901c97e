from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Tuple
from urllib.parse import quote, urlencode, urljoin

from trakt_list_sync.config.settings import providers as provider_settings



# ----------------------------
# Data views (read-only access)
# ----------------------------

@dataclass(frozen=True)
class ServiceView:
    name: str
    base_url: str
    default_headers: Dict[str, str]
    rate_limits: Dict[str, Any]
    endpoints: Mapping[str, Any]
    timeout: float


# ----------------------------
# URL Manager
# ----------------------------

class URLManager:
    """
    Builds Trakt URLs and default headers from the bundled service settings,
    without doing any network I/O. Pure config-driven.

    Endpoint templates are looked up by group/key (``endpoint("lists", "items")``)
    and their placeholders are path-escaped.
    """

    def __init__(self, service: str = "trakt", overrides: Optional[Mapping[str, Any]] = None):
        raw = dict(provider_settings.get_service_config(service) or {})
        if overrides:
            raw.update(overrides)
        if not raw.get("base_url"):
            raise ValueError(f"Service '{service}' has no base_url configured")

        headers = provider_settings.get_default_headers(service)
        headers.update({str(k): str(v) for k, v in (raw.get("default_headers") or {}).items()})

        self._view = ServiceView(
            name=service,
            base_url=str(raw["base_url"]),
            default_headers=headers,
            rate_limits=dict(raw.get("rate_limits") or {}),
            endpoints=dict(raw.get("endpoints") or {}),
            timeout=float(raw.get("timeout_seconds") or 30),
        )

    # -------- Public API --------

    @property
    def timeout(self) -> float:
        return self._view.timeout

    def build(self, path: str, params: Optional[Mapping[str, Any]] = None) -> Tuple[str, Dict[str, str]]:
        """
        Build a full URL for a relative path.
        Returns (url, headers).
        """
        base = _ensure_trailing_slash(self._view.base_url)
        url = urljoin(base, path.lstrip("/"))

        if params:
            url = f"{url}?{urlencode(dict(params), doseq=True)}"

        return url, dict(self._view.default_headers)

    def endpoint(self, group: str, key: str, **fmt_args: Any) -> str:
        """Resolve an endpoint template and fill it with path-escaped values.

        Example:
            endpoint("lists", "items", username="me", list_id="trakt-sync-filme")
        """
        section = self._view.endpoints.get(group) or {}
        template = section.get(key) if isinstance(section, Mapping) else None
        if not template:
            raise ValueError(f"Unknown endpoint '{group}.{key}' for service '{self._view.name}'")
        escaped = {name: quote(str(value), safe="") for name, value in fmt_args.items()}

        return str(template).format(**escaped)

    def rate_limits(self) -> Dict[str, Any]:
        return dict(self._view.rate_limits)

    def should_respect_retry_after(self) -> bool:
        val = self._view.rate_limits.get("respect_retry_after")

        return True if val is None else bool(val)


# ----------------------------
# Helpers
# ----------------------------

def _ensure_trailing_slash(u: str) -> str:
    return u if u.endswith("/") else (u + "/")
