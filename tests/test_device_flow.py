from __future__ import annotations

import logging
from typing import List

import pytest

from conftest import make_response
from trakt_list_sync.backend.common.errors import (
    AuthDenied,
    AuthError,
    AuthExpired,
    AuthTimedOut,
    MissingRefreshToken,
    Unauthorized,
)
from trakt_list_sync.backend.information_handlers.trakt_auth import (
    ACCESS_DENIED,
    AUTHORIZED,
    EXPIRED_TOKEN,
    PENDING,
    SLOW_DOWN,
    DeviceFlow,
    DeviceFlowState,
    TraktAuth,
)

DEVICE = {
    "device_code": "dev-123",
    "user_code": "ABCD1234",
    "verification_url": "https://trakt.tv/activate",
    "expires_in": 600,
    "interval": 5,
}
TOKEN = {
    "access_token": "new-access",
    "token_type": "bearer",
    "expires_in": 7776000,
    "refresh_token": "new-refresh",
    "scope": "public",
    "created_at": 1717243200,
}


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: List[float] = []

    def time(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class RecordingObserver:
    def __init__(self, fail: bool = False) -> None:
        self.tokens = []
        self.fail = fail

    def tokens_updated(self, token) -> None:
        if self.fail:
            raise OSError("disk full")
        self.tokens.append(token)


def _flow(session, clock, **kwargs) -> DeviceFlow:
    auth = TraktAuth(session, "secret")
    return DeviceFlow(auth, clock=clock.time, sleep=clock.sleep, **kwargs)


def test_pending_then_authorized(session, fake_http) -> None:
    clock = FakeClock()
    shown = []
    fake_http.add("POST", "/oauth/device/code", make_response(200, DEVICE))
    fake_http.add(
        "POST",
        "/oauth/device/token",
        make_response(400),
        make_response(400, {"error": "authorization_pending"}),
        make_response(200, TOKEN),
    )

    token = _flow(session, clock, on_device_code=shown.append).run()

    assert token.access_token == "new-access"
    assert session.access_token == "new-access"
    assert clock.sleeps == [5, 5, 5]
    assert shown[0].user_code == "ABCD1234"
    assert fake_http.calls_to("/oauth/device/token")[0]["json"] == {
        "code": "dev-123",
        "client_id": "client-id",
        "client_secret": "secret",
    }


def test_slow_down_increases_interval(session, fake_http) -> None:
    clock = FakeClock()
    fake_http.add("POST", "/oauth/device/code", make_response(200, DEVICE))
    fake_http.add(
        "POST",
        "/oauth/device/token",
        make_response(429),
        make_response(400, {"error": "slow_down"}),
        make_response(200, TOKEN),
    )

    flow = _flow(session, clock)
    flow.run()

    assert clock.sleeps == [5, 10, 15]
    assert flow.interval == 15
    assert flow.state is DeviceFlowState.AUTHORIZED


@pytest.mark.parametrize(
    "reply, error, state",
    [
        (make_response(418), AuthDenied, DeviceFlowState.DENIED),
        (make_response(400, {"error": "access_denied"}), AuthDenied, DeviceFlowState.DENIED),
        (make_response(410), AuthExpired, DeviceFlowState.EXPIRED),
        (make_response(400, {"error": "expired_token"}), AuthExpired, DeviceFlowState.EXPIRED),
        (make_response(403, {"error": "access_denied"}), AuthDenied, DeviceFlowState.DENIED),
        (make_response(422, {"error": "expired_token"}), AuthExpired, DeviceFlowState.EXPIRED),
    ],
)
def test_terminal_failures(session, fake_http, reply, error, state) -> None:
    clock = FakeClock()
    fake_http.add("POST", "/oauth/device/code", make_response(200, DEVICE))
    fake_http.add("POST", "/oauth/device/token", reply)
    flow = _flow(session, clock)

    with pytest.raises(error):
        flow.run()

    assert flow.state is state
    assert len(fake_http.calls_to("/oauth/device/token")) == 1


def test_times_out_at_expiry_window(session, fake_http) -> None:
    clock = FakeClock()
    fake_http.add("POST", "/oauth/device/code", make_response(200, dict(DEVICE, expires_in=12)))
    fake_http.add("POST", "/oauth/device/token", make_response(400))
    flow = _flow(session, clock)

    with pytest.raises(AuthTimedOut):
        flow.run()

    assert flow.state is DeviceFlowState.TIMED_OUT
    assert clock.sleeps == [5, 5, 2]
    assert len(fake_http.calls_to("/oauth/device/token")) == 2


def test_non_positive_interval_and_expiry_use_defaults(session, fake_http) -> None:
    clock = FakeClock()
    fake_http.add("POST", "/oauth/device/code", make_response(200, dict(DEVICE, interval=0, expires_in=-1)))
    flow = _flow(session, clock)

    assert flow.step() is DeviceFlowState.POLLING
    assert flow.interval == 5
    assert flow.deadline == 600


def test_step_drives_one_transition_at_a_time(session, fake_http) -> None:
    clock = FakeClock()
    fake_http.add("POST", "/oauth/device/code", make_response(200, DEVICE))
    fake_http.add("POST", "/oauth/device/token", make_response(400), make_response(200, TOKEN))
    flow = _flow(session, clock)

    assert flow.state is DeviceFlowState.START
    assert flow.step() is DeviceFlowState.POLLING
    assert flow.step() is DeviceFlowState.POLLING
    assert flow.step() is DeviceFlowState.AUTHORIZED
    assert flow.step() is DeviceFlowState.AUTHORIZED
    assert len(fake_http.calls_to("/oauth/device/token")) == 2


def test_poll_maps_status_codes(session, fake_http) -> None:
    auth = TraktAuth(session, "secret")
    expected = [
        (400, PENDING),
        (404, PENDING),
        (409, PENDING),
        (429, SLOW_DOWN),
        (418, ACCESS_DENIED),
        (410, EXPIRED_TOKEN),
    ]
    for status, code in expected:
        fake_http.routes.clear()
        fake_http.add("POST", "/oauth/device/token", make_response(status, text="<html>oops</html>"))
        assert auth.poll_device_token("dev").code == code

    fake_http.routes.clear()
    fake_http.add("POST", "/oauth/device/token", make_response(200, TOKEN))
    result = auth.poll_device_token("dev")
    assert result.code == AUTHORIZED
    assert result.token.refresh_token == "new-refresh"


def test_refresh_requires_refresh_token(session) -> None:
    with pytest.raises(MissingRefreshToken):
        TraktAuth(session, "secret").refresh_tokens()


def test_refresh_updates_session_and_notifies_observer(session, fake_http) -> None:
    observer = RecordingObserver()
    fake_http.add("POST", "/oauth/token", make_response(200, TOKEN))
    auth = TraktAuth(session, "secret", refresh_token="old-refresh", observer=observer)

    token = auth.refresh_tokens()

    body = fake_http.calls[0]["json"]
    assert body["grant_type"] == "refresh_token"
    assert body["refresh_token"] == "old-refresh"
    assert body["redirect_uri"] == "urn:ietf:wg:oauth:2.0:oob"
    assert session.access_token == "new-access"
    assert auth.refresh_token == "new-refresh"
    assert observer.tokens == [token]
    assert int(token.expires_at.timestamp()) == 1717243200 + 7776000


def test_observer_failure_is_logged_not_raised(session, fake_http, caplog) -> None:
    fake_http.add("POST", "/oauth/token", make_response(200, TOKEN))
    auth = TraktAuth(session, "secret", refresh_token="old", observer=RecordingObserver(fail=True))

    with caplog.at_level(logging.WARNING):
        auth.refresh_tokens()

    assert session.access_token == "new-access"
    assert "Failed to persist refreshed Trakt tokens" in caplog.text


def test_attach_refreshes_on_401(session, fake_http) -> None:
    fake_http.add("POST", "/oauth/token", make_response(200, TOKEN))
    fake_http.add("GET", "/users/me/lists/x", make_response(401), make_response(200, {"name": "x"}))
    TraktAuth(session, "secret", refresh_token="old").attach()

    session.get("/users/me/lists/x")

    assert fake_http.calls[-1]["headers"]["Authorization"] == "Bearer new-access"


def test_failed_refresh_after_401_raises_unauthorized(session, fake_http) -> None:
    fake_http.add("GET", "/users/me/lists/x", make_response(401))
    TraktAuth(session, "secret").attach()

    with pytest.raises(Unauthorized) as excinfo:
        session.get("/users/me/lists/x")

    assert isinstance(excinfo.value.__cause__, MissingRefreshToken)


@pytest.mark.parametrize("status", [404, 409, 422])
def test_unrecognised_client_status_keeps_polling(session, fake_http, status) -> None:
    clock = FakeClock()
    fake_http.add("POST", "/oauth/device/code", make_response(200, DEVICE))
    fake_http.add("POST", "/oauth/device/token", make_response(status), make_response(200, TOKEN))
    flow = _flow(session, clock)

    assert flow.step() is DeviceFlowState.POLLING
    assert flow.step() is DeviceFlowState.POLLING
    assert flow.step() is DeviceFlowState.AUTHORIZED
    assert len(fake_http.calls_to("/oauth/device/token")) == 2


def test_unauthorized_client_ends_polling(session, fake_http) -> None:
    clock = FakeClock()
    fake_http.add("POST", "/oauth/device/code", make_response(200, DEVICE))
    fake_http.add("POST", "/oauth/device/token", make_response(401))
    flow = _flow(session, clock)

    with pytest.raises(Unauthorized):
        flow.run()


def test_polling_without_device_code_is_an_auth_error(session) -> None:
    flow = _flow(session, FakeClock())
    flow.state = DeviceFlowState.POLLING

    with pytest.raises(AuthError):
        flow.step()
