from __future__ import annotations

import pytest

from conftest import list_entries, make_response
from trakt_list_sync.backend.common.errors import ClientError, Forbidden, NotFound
from trakt_list_sync.backend.information_handlers.models import (
    ManagedList,
    MediaIdentity,
    MediaType,
    MovieListItem,
    ShowListItem,
    parse_list_item,
)
from trakt_list_sync.backend.information_handlers.trakt_lists import TraktListManager

LIST_PATH = "/users/me/lists/trakt-sync-filme"
ITEMS_PATH = LIST_PATH + "/items"

MANAGED = ManagedList(
    slug="trakt-sync-filme",
    name="Trakt Sync Filme",
    description="charts",
    kind=MediaType.MOVIE,
)


def test_get_list_returns_none_when_missing(session, fake_http) -> None:
    fake_http.add("GET", LIST_PATH, make_response(404))

    assert TraktListManager(session).get_list("me", "trakt-sync-filme") is None


def test_ensure_exists_creates_missing_list(session, fake_http) -> None:
    fake_http.add("GET", LIST_PATH, make_response(404))
    fake_http.add("POST", "/users/me/lists", make_response(201, {"name": "Trakt Sync Filme", "ids": {"slug": "trakt-sync-filme"}}))

    created = TraktListManager(session).ensure_exists("me", MANAGED)

    assert created.name == "Trakt Sync Filme"
    body = fake_http.calls_to("/users/me/lists")[0]["json"]
    assert body == {
        "name": "Trakt Sync Filme",
        "description": "charts",
        "privacy": "private",
        "display_numbers": True,
        "allow_comments": False,
    }


def test_ensure_exists_defaults_blank_privacy_to_private(session, fake_http) -> None:
    fake_http.add("GET", LIST_PATH, make_response(404))
    fake_http.add("POST", "/users/me/lists", make_response(201, {"name": "x"}))

    TraktListManager(session).ensure_exists("me", MANAGED.model_copy(update={"privacy": " "}))

    assert fake_http.calls_to("/users/me/lists")[0]["json"]["privacy"] == "private"


def test_ensure_exists_is_idempotent(session, fake_http) -> None:
    fake_http.add("GET", LIST_PATH, make_response(200, {"name": "Trakt Sync Filme", "item_count": 3}))
    manager = TraktListManager(session)

    manager.ensure_exists("me", MANAGED)
    manager.ensure_exists("me", MANAGED)

    assert [c["method"] for c in fake_http.calls] == ["GET", "GET"]


def test_ensure_exists_propagates_other_errors(session, fake_http) -> None:
    fake_http.add("GET", LIST_PATH, make_response(403))

    with pytest.raises(Forbidden):
        TraktListManager(session).ensure_exists("me", MANAGED)
    assert all(c["method"] == "GET" for c in fake_http.calls)


def test_get_all_items_follows_pagination(session, fake_http) -> None:
    episode = {"rank": 3, "type": "episode", "episode": {"ids": {"trakt": 99}}}
    fake_http.add(
        "GET",
        ITEMS_PATH,
        make_response(200, list_entries("movie", 1, 2) + [episode], headers={"X-Pagination-Page-Count": "2"}),
        make_response(200, list_entries("movie", 3), headers={"X-Pagination-Page-Count": "2"}),
    )

    items = TraktListManager(session, page_limit=2).get_all_items("me", "trakt-sync-filme")

    assert [i.identity.trakt for i in items] == [1, 2, 3]
    assert all(isinstance(i, MovieListItem) for i in items)
    assert [c["params"] for c in fake_http.calls] == [{"page": "1", "limit": "2"}, {"page": "2", "limit": "2"}]


def test_get_all_items_stops_without_page_header(session, fake_http) -> None:
    fake_http.add("GET", ITEMS_PATH, make_response(200, list_entries("show", 5)))

    items = TraktListManager(session).get_all_items("me", "trakt-sync-filme")

    assert [i.identity.trakt for i in items] == [5]
    assert len(fake_http.calls) == 1
    assert fake_http.calls[0]["params"]["limit"] == "100"


def test_get_all_items_aborts_on_page_failure(session, fake_http) -> None:
    fake_http.add(
        "GET",
        ITEMS_PATH,
        make_response(200, list_entries("movie", 1), headers={"X-Pagination-Page-Count": "3"}),
        make_response(404),
    )

    with pytest.raises(NotFound):
        TraktListManager(session).get_all_items("me", "trakt-sync-filme")


def test_add_and_remove_post_one_batch_by_kind(session, fake_http) -> None:
    fake_http.add("POST", ITEMS_PATH, make_response(201, {"added": {"movies": 2}}))
    fake_http.add("POST", ITEMS_PATH + "/remove", make_response(200, {"deleted": {"shows": 1}}))
    manager = TraktListManager(session)

    added = manager.add_items(
        "me",
        "trakt-sync-filme",
        [MediaIdentity(trakt=1, slug="a", imdb="tt1"), MediaIdentity(trakt=2, slug="b")],
        MediaType.MOVIE,
    )
    removed = manager.remove_items("me", "trakt-sync-filme", [MediaIdentity(trakt=3, slug="c")], MediaType.SHOW)

    assert (added, removed) == (2, 1)
    assert fake_http.calls[0]["json"] == {
        "movies": [{"ids": {"trakt": 1, "slug": "a", "imdb": "tt1"}}, {"ids": {"trakt": 2, "slug": "b"}}]
    }
    assert fake_http.calls[1]["json"] == {"shows": [{"ids": {"trakt": 3, "slug": "c"}}]}


def test_empty_batches_are_not_submitted(session, fake_http) -> None:
    assert TraktListManager(session).add_items("me", "trakt-sync-filme", [], MediaType.MOVIE) == 0
    assert fake_http.calls == []


def test_parse_list_item_tags_by_embedded_object() -> None:
    show = parse_list_item({"type": "show", "show": {"ids": {"trakt": 8}}, "movie": {"ids": {"trakt": 9}}})
    movie = parse_list_item({"movie": {"title": "A", "ids": {"trakt": 4}}, "rank": 1})

    assert isinstance(show, ShowListItem) and show.identity.trakt == 8
    assert isinstance(movie, MovieListItem) and movie.rank == 1
    assert parse_list_item({"type": "person", "person": {}}) is None
    assert parse_list_item({"movie": {"title": "no ids"}}) is None


def test_unexpected_list_payload_is_a_client_error(session, fake_http) -> None:
    fake_http.add("GET", LIST_PATH, make_response(200, ["not", "a", "list"]))

    with pytest.raises(ClientError) as excinfo:
        TraktListManager(session).get_list("me", "trakt-sync-filme")

    assert excinfo.value.code == "invalid_response"
    assert len(fake_http.calls) == 1
