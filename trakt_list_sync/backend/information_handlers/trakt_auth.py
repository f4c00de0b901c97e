"""Trakt OAuth: device-code authorization and refresh-token exchange."""

from __future__ import annotations

import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Mapping, Optional, Protocol

from trakt_list_sync.backend.common.errors import (
    AuthDenied,
    AuthError,
    AuthExpired,
    AuthTimedOut,
    ClientError,
    MissingRefreshToken,
)
from trakt_list_sync.backend.common.logging import get_logger
from trakt_list_sync.backend.information_handlers.models import DeviceCode, OAuthToken
from trakt_list_sync.backend.network_handlers.session import HttpSession, parse_json, parse_model

log = get_logger(__name__)

DEFAULT_POLL_INTERVAL = 5
DEFAULT_DEVICE_EXPIRY = 10 * 60
SLOW_DOWN_INCREMENT = 5
OOB_REDIRECT_URI = "urn:ietf:wg:oauth:2.0:oob"

AUTHORIZED = "authorized"
PENDING = "authorization_pending"
SLOW_DOWN = "slow_down"
ACCESS_DENIED = "access_denied"
EXPIRED_TOKEN = "expired_token"

_KNOWN_CODES = {PENDING, SLOW_DOWN, ACCESS_DENIED, EXPIRED_TOKEN}

# Trakt answers the device token endpoint with bare status codes; any other
# 4xx without a recognised error code means the user has not finished yet.
_STATUS_CODES = {
    400: PENDING,
    410: EXPIRED_TOKEN,
    418: ACCESS_DENIED,
    429: SLOW_DOWN,
}
_POLL_STATUSES = frozenset(range(400, 500)) - {401}


class TokenObserver(Protocol):
    """Receives every new token pair so the owner can persist it."""

    def tokens_updated(self, token: OAuthToken) -> None: ...


@dataclass(frozen=True)
class PollResult:
    code: str
    token: Optional[OAuthToken] = None
    description: Optional[str] = None


class TraktAuth:
    """Issues device codes, exchanges them for tokens and refreshes access tokens.

    New tokens are pushed into the shared :class:`HttpSession` so every later
    call uses them, and handed to the registered :class:`TokenObserver`.
    """

    def __init__(
        self,
        session: HttpSession,
        client_secret: str,
        *,
        refresh_token: str = "",
        observer: Optional[TokenObserver] = None,
    ) -> None:
        self._session = session
        self._client_id = session.client_id
        self._client_secret = client_secret
        self._refresh_token = refresh_token
        self._observer = observer

    @property
    def refresh_token(self) -> str:
        return self._refresh_token

    def attach(self) -> None:
        """Let the session refresh once on its own when a call returns 401."""

        self._session.register_token_refresher(lambda: self.refresh_tokens().access_token)

    def request_device_code(self) -> DeviceCode:
        response = self._session.post(
            self._session.urlm.endpoint("oauth", "device_code"),
            json_body={"client_id": self._client_id},
        )
        device = parse_model(response, DeviceCode)
        log.info(
            "Trakt device code issued; user must visit %s and enter %s",
            device.verification_url,
            device.user_code,
        )

        return device

    def poll_device_token(self, device_code: str) -> PollResult:
        """Attempt a single device-code exchange."""

        payload = {
            "code": device_code,
            "client_id": self._client_id,
            "client_secret": self._client_secret,
        }
        response = self._session.post(
            self._session.urlm.endpoint("oauth", "device_token"),
            json_body=payload,
            allowed_statuses=_POLL_STATUSES,
        )

        if response.status_code < 400:
            token = parse_model(response, OAuthToken)
            return PollResult(AUTHORIZED, token=token)

        try:
            data = parse_json(response)
        except ClientError:
            data = None
        body: Mapping[str, Any] = data if isinstance(data, Mapping) else {}
        raw_code = str(body.get("error") or "")
        description = body.get("error_description")

        code = raw_code if raw_code in _KNOWN_CODES else _STATUS_CODES.get(response.status_code, PENDING)

        return PollResult(code, description=description)

    def refresh_tokens(self) -> OAuthToken:
        if not self._refresh_token:
            raise MissingRefreshToken("No refresh token available for Trakt")

        payload = {
            "refresh_token": self._refresh_token,
            "client_id": self._client_id,
            "client_secret": self._client_secret,
            "redirect_uri": OOB_REDIRECT_URI,
            "grant_type": "refresh_token",
        }
        response = self._session.post(self._session.urlm.endpoint("oauth", "token"), json_body=payload)
        token = parse_model(response, OAuthToken)
        self.store(token)
        log.info("Trakt access token refreshed")

        return token

    def store(self, token: OAuthToken) -> None:
        token.ensure_created_at()
        self._session.set_access_token(token.access_token)
        if token.refresh_token:
            self._refresh_token = token.refresh_token

        if self._observer is None:
            return
        try:
            self._observer.tokens_updated(token)
        except Exception as exc:  # noqa: BLE001
            # The new token is live in memory; losing it on disk only costs a re-auth later.
            log.warning("Failed to persist refreshed Trakt tokens: %s", exc, exc_info=True)


class DeviceFlowState(str, Enum):
    START = "start"
    POLLING = "polling"
    AUTHORIZED = "authorized"
    DENIED = "denied"
    EXPIRED = "expired"
    TIMED_OUT = "timed_out"

    @property
    def terminal(self) -> bool:
        return self not in (DeviceFlowState.START, DeviceFlowState.POLLING)


class DeviceFlow:
    """Device authorization driven one blocking :meth:`step` at a time.

    ``clock`` returns monotonic seconds and ``sleep`` blocks; both are
    injectable so the machine can be driven without real timers.
    """

    def __init__(
        self,
        auth: TraktAuth,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
        on_device_code: Optional[Callable[[DeviceCode], None]] = None,
    ) -> None:
        self._auth = auth
        self._clock = clock
        self._sleep = sleep
        self._on_device_code = on_device_code

        self.state = DeviceFlowState.START
        self.device: Optional[DeviceCode] = None
        self.interval = DEFAULT_POLL_INTERVAL
        self.deadline = 0.0
        self.token: Optional[OAuthToken] = None

    def step(self) -> DeviceFlowState:
        if self.state is DeviceFlowState.START:
            self._start()
        elif self.state is DeviceFlowState.POLLING:
            self._poll()

        return self.state

    def run(self) -> OAuthToken:
        while not self.state.terminal:
            self.step()

        if self.state is DeviceFlowState.AUTHORIZED and self.token is not None:
            return self.token
        if self.state is DeviceFlowState.DENIED:
            raise AuthDenied("user denied authorization")
        if self.state is DeviceFlowState.EXPIRED:
            raise AuthExpired("device code expired")
        raise AuthTimedOut("authorization timeout")

    def _start(self) -> None:
        device = self._auth.request_device_code()
        self.device = device
        self.interval = device.interval if device.interval > 0 else DEFAULT_POLL_INTERVAL
        expires_in = device.expires_in if device.expires_in > 0 else DEFAULT_DEVICE_EXPIRY
        self.deadline = self._clock() + expires_in
        if self._on_device_code is not None:
            self._on_device_code(device)
        self.state = DeviceFlowState.POLLING

    def _poll(self) -> None:
        if self.device is None:
            raise AuthError("device flow is polling without a device code")

        remaining = self.deadline - self._clock()
        if remaining <= 0:
            self.state = DeviceFlowState.TIMED_OUT
            return

        self._sleep(min(self.interval, remaining))
        if self._clock() >= self.deadline:
            self.state = DeviceFlowState.TIMED_OUT
            return

        result = self._auth.poll_device_token(self.device.device_code)
        if result.code == AUTHORIZED and result.token is not None:
            self._auth.store(result.token)
            self.token = result.token
            self.state = DeviceFlowState.AUTHORIZED
            log.info("Trakt access token granted via device flow")
        elif result.code == SLOW_DOWN:
            self.interval += SLOW_DOWN_INCREMENT
            log.debug("Slowing down device code polling", extra={"interval": self.interval})
        elif result.code == ACCESS_DENIED:
            self.state = DeviceFlowState.DENIED
        elif result.code == EXPIRED_TOKEN:
            self.state = DeviceFlowState.EXPIRED
        else:
            log.debug(
                "Still waiting for user authorization (%s)",
                result.description or "no description",
            )
