from __future__ import annotations

from typing import Any, Dict, Mapping, Optional

from .paths import expand_env, get_service_settings_path, read_json


def load_service_settings() -> Dict[str, Any]:
    data = read_json(get_service_settings_path())

    return expand_env(data)


SERVICE_SETTINGS: Dict[str, Any] = load_service_settings()


def _provider_settings() -> Dict[str, Any]:
    return SERVICE_SETTINGS.get("providers", {}) if SERVICE_SETTINGS else {}


def get_service_config(service: str = "trakt") -> Optional[Dict[str, Any]]:
    providers = _provider_settings()
    if not providers:
        return None

    return providers.get(service)


def get_base_url(service: str = "trakt") -> Optional[str]:
    cfg = get_service_config(service)
    if not cfg:
        return None

    return cfg.get("base_url")


def get_default_headers(service: str = "trakt") -> Dict[str, str]:
    cfg = get_service_config(service) or {}
    headers = cfg.get("default_headers", {}) or {}

    return {str(k): str(v) for k, v in headers.items()}


def get_rate_limits(service: str = "trakt") -> Dict[str, Any]:
    cfg = get_service_config(service) or {}

    return dict(cfg.get("rate_limits") or {})


def get_provider_endpoints(service: str = "trakt") -> Mapping[str, Any]:
    cfg = get_service_config(service) or {}

    return cfg.get("endpoints", {}) or {}


def get_request_timeout(service: str = "trakt") -> float:
    cfg = get_service_config(service) or {}

    return float(cfg.get("timeout_seconds") or 30)


def get_list_page_limit(service: str = "trakt") -> int:
    cfg = get_service_config(service) or {}
    pagination = cfg.get("pagination") or {}

    return int(pagination.get("list_items_limit") or 100)


__all__ = [
    "SERVICE_SETTINGS",
    "get_base_url",
    "get_default_headers",
    "get_list_page_limit",
    "get_provider_endpoints",
    "get_rate_limits",
    "get_request_timeout",
    "get_service_config",
    "load_service_settings",
]
