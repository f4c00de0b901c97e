from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union
from urllib.parse import parse_qs, urlsplit

import pytest
import requests
from requests.structures import CaseInsensitiveDict

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from trakt_list_sync.backend.network_handlers.session import HttpSession  # noqa: E402

NOW = datetime(2024, 6, 1, 12, 0, 0, tzinfo=timezone.utc)

_ENV_VARS = (
    "TRAKT_CLIENT_ID",
    "TRAKT_CLIENT_SECRET",
    "TRAKT_USERNAME",
    "TRAKT_SYNC_LOG_LEVEL",
    "TRAKT_SYNC_LOG_FORMAT",
    "TRAKT_SYNC_CONFIG",
)


def make_response(
    status: int = 200,
    body: Any = None,
    *,
    headers: Optional[Mapping[str, str]] = None,
    text: Optional[str] = None,
) -> requests.Response:
    resp = requests.Response()
    resp.status_code = status
    if text is not None:
        resp._content = text.encode("utf-8")
    elif body is not None:
        resp._content = json.dumps(body).encode("utf-8")
    else:
        resp._content = b""
    resp.encoding = "utf-8"
    resp.headers = CaseInsensitiveDict(headers or {})
    return resp


Reply = Union[requests.Response, Exception]


class FakeHttp:
    """Stands in for ``requests.Session``: replies are served per (method, path), in order.

    The last reply of a route repeats once the others are used up.
    """

    def __init__(self) -> None:
        self.routes: Dict[tuple, List[Reply]] = {}
        self.calls: List[Dict[str, Any]] = []
        self.closed = False

    def add(self, method: str, path: str, *replies: Reply) -> "FakeHttp":
        self.routes.setdefault((method.upper(), path), []).extend(replies)
        return self

    def request(self, method: str, url: str, headers=None, data=None, timeout=None):
        parts = urlsplit(url)
        call = {
            "method": method,
            "url": url,
            "path": parts.path,
            "params": {k: v[0] for k, v in parse_qs(parts.query).items()},
            "headers": dict(headers or {}),
            "json": json.loads(data) if data else None,
            "timeout": timeout,
        }
        self.calls.append(call)

        queue = self.routes.get((method.upper(), parts.path))
        if not queue:
            raise AssertionError(f"unexpected request {method} {parts.path}")
        reply = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(reply, Exception):
            raise reply
        return reply

    def calls_to(self, path: str) -> List[Dict[str, Any]]:
        return [c for c in self.calls if c["path"] == path]

    def close(self) -> None:
        self.closed = True


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture(autouse=True)
def _restore_root_logger():
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    for h in list(root.handlers):
        if h not in handlers:
            root.removeHandler(h)
    for h in handlers:
        if h not in root.handlers:
            root.addHandler(h)
    root.setLevel(level)


@pytest.fixture()
def fake_http() -> FakeHttp:
    return FakeHttp()


@pytest.fixture()
def sleeps() -> List[float]:
    return []


@pytest.fixture()
def session(fake_http: FakeHttp, sleeps: List[float]) -> HttpSession:
    return HttpSession(
        "client-id",
        "access-1",
        http=fake_http,
        sleep=sleeps.append,
        clock=lambda: NOW,
    )


def ranked(kind: str, *ids: int) -> List[Dict[str, Any]]:
    return [{"watchers": 100 - i, kind: {"title": f"{kind} {i}", "year": 2020, "ids": {"trakt": i, "slug": f"{kind}-{i}"}}} for i in ids]


def bare(*ids: int) -> List[Dict[str, Any]]:
    return [{"title": f"title {i}", "year": 2021, "ids": {"trakt": i, "slug": f"slug-{i}"}} for i in ids]


def list_entries(kind: str, *ids: int) -> List[Dict[str, Any]]:
    return [
        {
            "rank": n,
            "listed_at": "2024-05-01T10:00:00.000Z",
            "type": kind,
            kind: {"title": f"{kind} {i}", "ids": {"trakt": i, "slug": f"{kind}-{i}"}},
        }
        for n, i in enumerate(ids, start=1)
    ]
