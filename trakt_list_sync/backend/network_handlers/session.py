from __future__ import annotations

import json
import random
import threading
import time
from datetime import datetime, timedelta, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Callable, Collection, Dict, Mapping, Optional, Type, TypeVar

import requests
from pydantic import BaseModel, ValidationError
from requests.adapters import HTTPAdapter

from trakt_list_sync.backend.common.errors import (
    ApiError,
    ClientError,
    TraktSyncError,
    TransientNetworkError,
    error_for_status,
)
from trakt_list_sync.backend.common.logging import get_logger
from trakt_list_sync.backend.network_handlers.url_manager import URLManager

log = get_logger(__name__)

# Failures where the request may succeed if simply sent again.
_TRANSIENT_EXCEPTIONS = (
    requests.exceptions.Timeout,
    requests.exceptions.ConnectionError,
    requests.exceptions.ChunkedEncodingError,
)

# Largest exponent ever used for backoff; 2**32 * base is far beyond any cap.
_MAX_BACKOFF_EXPONENT = 32


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------- Backoff / header parsing ----------------

def backoff_delay(attempt: int, base: float, cap: float) -> float:
    """Delay in seconds before retry number ``attempt`` (1-based), never above ``cap``."""
    if attempt <= 0 or base <= 0:
        return 0.0
    exponent = min(attempt - 1, _MAX_BACKOFF_EXPONENT)

    return min(cap, base * (2 ** exponent))


def _try_int(value: Any) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return None


def parse_rate_limit_reset(value: Any, now: datetime) -> Optional[datetime]:
    """Interpret ``X-Ratelimit-Reset``: a Unix timestamp, or seconds from now for small values."""
    parsed = _try_int(value)
    if parsed is None:
        return None
    if parsed > now.timestamp() + 60:
        return datetime.fromtimestamp(parsed, tz=timezone.utc)

    return now + timedelta(seconds=parsed)


def retry_after_seconds(
    headers: Optional[Mapping[str, Any]],
    now: datetime,
    *,
    use_reset: bool = False,
) -> float:
    """Server-provided wait hint: ``Retry-After`` (seconds or HTTP-date), else the reset header."""
    if not headers:
        return 0.0

    raw = headers.get("Retry-After")
    if raw:
        seconds = _try_int(raw)
        if seconds is not None:
            return float(max(0, seconds))
        try:
            when = parsedate_to_datetime(str(raw))
        except (TypeError, ValueError):
            when = None
        if when is not None:
            if when.tzinfo is None:
                when = when.replace(tzinfo=timezone.utc)
            return max(0.0, (when - now).total_seconds())

    if use_reset:
        reset = parse_rate_limit_reset(headers.get("X-Ratelimit-Reset"), now)
        if reset is not None:
            return max(0.0, (reset - now).total_seconds())

    return 0.0


# ---------------- Rate limit budget ----------------

class RateLimitState:
    """Remaining-call budget shared by every request made through one session."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._remaining: Optional[int] = None
        self._reset_at: Optional[datetime] = None

    def update(self, headers: Optional[Mapping[str, Any]], now: datetime) -> None:
        if not headers:
            return
        remaining = _try_int(headers.get("X-Ratelimit-Remaining"))
        reset_at = parse_rate_limit_reset(headers.get("X-Ratelimit-Reset"), now)

        # Missing or unparsable values leave the previous state untouched.
        with self._lock:
            if remaining is not None:
                self._remaining = remaining
            if reset_at is not None:
                self._reset_at = reset_at

    def wait_seconds(self, now: datetime) -> float:
        with self._lock:
            remaining = self._remaining
            reset_at = self._reset_at

        # An unknown or already-passed reset never blocks.
        if remaining != 0 or reset_at is None or reset_at <= now:
            return 0.0

        return (reset_at - now).total_seconds()


# ---------------- Response helpers ----------------

def parse_json(response: requests.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError as exc:
        raise ClientError(response.status_code, "invalid_json", "Trakt returned invalid JSON") from exc


ModelT = TypeVar("ModelT", bound=BaseModel)


def parse_model(response: requests.Response, model: Type[ModelT]) -> ModelT:
    """Validate a JSON body into ``model``; a shape mismatch is a non-retryable client error."""
    try:
        return model.model_validate(parse_json(response))
    except ValidationError as exc:
        raise ClientError(
            response.status_code,
            "invalid_response",
            f"unexpected {model.__name__} payload: {exc.error_count()} validation error(s)",
        ) from exc


def _error_from_response(response: requests.Response, now: datetime) -> ApiError:
    status = response.status_code
    code: Optional[str] = None
    description: Optional[str] = None
    try:
        payload = response.json() if response.content else None
    except ValueError:
        payload = None

    if isinstance(payload, Mapping) and payload.get("error"):
        code = str(payload.get("error"))
        description = payload.get("error_description")
    else:
        description = (response.text or "").strip()[:500] or None

    hint = retry_after_seconds(response.headers, now, use_reset=status == 429)

    return error_for_status(status, code, description, retry_after=hint)


# ---------------- Main Session ----------------

TokenRefresher = Callable[[], Optional[str]]


class HttpSession:
    """
    Rate-aware Trakt request executor:
      - URL building + default headers via URLManager
      - Single mutable credential (client id + bearer token) shared by all calls
      - Blocks on an exhausted rate-limit budget until the declared reset
      - Exponential backoff on transient errors, 429 and 5xx, honouring Retry-After
      - Typed error mapping
      - One token refresh on 401 for non-OAuth calls
    """

    def __init__(
        self,
        client_id: str = "",
        access_token: str = "",
        *,
        urlm: Optional[URLManager] = None,
        http: Optional[requests.Session] = None,
        timeout: Optional[float] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], datetime] = utcnow,
        jitter_ms: int = 0,
    ):
        self.urlm = urlm or URLManager()
        self.timeout = timeout if timeout is not None else self.urlm.timeout

        if http is None:
            http = requests.Session()
            http.mount("http://", HTTPAdapter(pool_connections=4, pool_maxsize=8))
            http.mount("https://", HTTPAdapter(pool_connections=4, pool_maxsize=8))
        self._session = http

        retry_cfg = self.urlm.rate_limits()
        self.retry_max_attempts = max(1, int(retry_cfg.get("max_attempts", 3)))
        self.base_backoff = float(retry_cfg.get("base_backoff_ms", 500)) / 1000.0
        self.max_backoff = float(retry_cfg.get("max_backoff_ms", 5000)) / 1000.0
        self.jitter_ms = max(0, jitter_ms)

        self.rate_limit = RateLimitState()
        self._sleep = sleep
        self._clock = clock

        self._credential_lock = threading.Lock()
        self._client_id = client_id
        self._access_token = access_token
        self._token_refresher: Optional[TokenRefresher] = None

    # -------- credential --------

    @property
    def client_id(self) -> str:
        return self._client_id

    @property
    def access_token(self) -> str:
        with self._credential_lock:
            return self._access_token

    def set_access_token(self, token: str) -> None:
        with self._credential_lock:
            self._access_token = token or ""

    def register_token_refresher(self, handler: Optional[TokenRefresher]) -> None:
        """Register or remove the hook invoked once when a call comes back 401."""

        self._token_refresher = handler

    # -------- public API --------

    def get(
        self,
        path: str,
        *,
        params: Optional[Mapping[str, Any]] = None,
        allowed_statuses: Optional[Collection[int]] = None,
    ) -> requests.Response:

        return self.request("GET", path, params=params, allowed_statuses=allowed_statuses)

    def post(
        self,
        path: str,
        *,
        json_body: Optional[Any] = None,
        params: Optional[Mapping[str, Any]] = None,
        allowed_statuses: Optional[Collection[int]] = None,
    ) -> requests.Response:

        return self.request(
            "POST",
            path,
            params=params,
            json_body=json_body,
            allowed_statuses=allowed_statuses,
        )

    def request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Mapping[str, Any]] = None,
        json_body: Optional[Any] = None,
        allowed_statuses: Optional[Collection[int]] = None,
    ) -> requests.Response:
        """Issue one logical call; returns the response or raises the last :class:`ApiError`."""

        url, base_headers = self.urlm.build(path, params)
        data = json.dumps(json_body) if json_body is not None else None
        allowed = set(allowed_statuses or ())
        is_oauth_request = (path or "").lstrip("/").startswith("oauth/")

        attempt = 1
        token_refresh_attempted = False
        last_exc: Optional[ApiError] = None

        while True:
            self._wait_for_rate_limit()

            try:
                resp = self._session.request(
                    method=method,
                    url=url,
                    headers=self._headers(base_headers),
                    data=data,
                    timeout=self.timeout,
                )
            except _TRANSIENT_EXCEPTIONS as e:
                last_exc = TransientNetworkError(0, None, str(e))
            except requests.exceptions.RequestException as e:
                raise ApiError(0, None, str(e)) from e
            else:
                now = self._clock()
                self.rate_limit.update(resp.headers, now)
                status = resp.status_code

                if status < 400 or status in allowed:
                    return resp

                err = _error_from_response(resp, now)

                if status == 401 and self._token_refresher is not None and not token_refresh_attempted and not is_oauth_request:
                    token_refresh_attempted = True
                    log.info("Trakt returned 401; refreshing access token", extra={"path": path})
                    try:
                        self._token_refresher()
                    except TraktSyncError as exc:
                        log.warning("Token refresh after 401 failed: %s", exc)
                        raise err from exc
                    continue

                if not err.retryable:
                    raise err
                last_exc = err

            if attempt >= self.retry_max_attempts:
                raise last_exc

            delay = self._retry_delay(attempt, last_exc)
            attempt += 1
            log.warning(
                "Retrying %s %s after %s",
                method,
                path,
                last_exc,
                extra={"attempt": attempt, "delay": round(delay, 3)},
            )
            if delay > 0:
                self._sleep(delay)

    def close(self) -> None:
        self._session.close()

    # -------- internals --------

    def _headers(self, base: Dict[str, str]) -> Dict[str, str]:
        headers = dict(base)
        with self._credential_lock:
            client_id = self._client_id
            token = self._access_token
        if client_id:
            headers["trakt-api-key"] = client_id
        if token:
            headers["Authorization"] = f"Bearer {token}"

        return headers

    def _retry_delay(self, attempt: int, exc: ApiError) -> float:
        delay = backoff_delay(attempt, self.base_backoff, self.max_backoff)
        if self.jitter_ms:
            delay = min(self.max_backoff, delay + random.randint(0, self.jitter_ms) / 1000.0)
        if self.urlm.should_respect_retry_after() and exc.retry_after > delay:
            delay = exc.retry_after

        return delay

    def _wait_for_rate_limit(self) -> None:
        wait = self.rate_limit.wait_seconds(self._clock())
        if wait > 0:
            log.warning("Rate limit reached, waiting for reset", extra={"delay": round(wait, 3)})
            self._sleep(wait)
