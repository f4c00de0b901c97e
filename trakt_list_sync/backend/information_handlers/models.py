"""Typed views over the Trakt payloads the sync engine consumes.

Only the fields the reconciliation needs are modelled. Everything else in a
Trakt response is ignored at validation time so that upstream additions never
break parsing. List entries are exposed as a tagged union
(:class:`MovieListItem` / :class:`ShowListItem`) instead of the wire shape with
two optional embedded objects.
"""

from __future__ import annotations

import time
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, List, Literal, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError


class MediaType(str, Enum):
    """Media kinds a managed list can hold."""

    MOVIE = "movie"
    SHOW = "show"

    @property
    def plural(self) -> str:
        return f"{self.value}s"


class RankingCategory(str, Enum):
    TRENDING = "trending"
    POPULAR = "popular"
    MOST_WATCHED = "most_watched"


class MediaIdentity(BaseModel):
    """Trakt ``ids`` object. Only ``trakt`` takes part in equality for diffing."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    trakt: int
    slug: str = ""
    imdb: Optional[str] = None
    tmdb: Optional[int] = None

    def as_payload(self) -> Dict[str, Any]:
        return {"ids": self.model_dump(exclude_none=True)}


class MediaSummary(BaseModel):
    model_config = ConfigDict(extra="ignore")

    title: Optional[str] = None
    year: Optional[int] = None
    ids: MediaIdentity


class RankedEntry(BaseModel):
    """Wrapper returned by the trending and most-watched endpoints."""

    model_config = ConfigDict(extra="ignore")

    watchers: Optional[int] = None
    watcher_count: Optional[int] = None
    play_count: Optional[int] = None
    collected_count: Optional[int] = None
    movie: Optional[MediaSummary] = None
    show: Optional[MediaSummary] = None

    def summary(self, kind: MediaType) -> Optional[MediaSummary]:
        return self.movie if kind is MediaType.MOVIE else self.show


class _ListItemBase(BaseModel):
    model_config = ConfigDict(frozen=True)

    identity: MediaIdentity
    title: Optional[str] = None
    rank: Optional[int] = None
    listed_at: Optional[datetime] = None


class MovieListItem(_ListItemBase):
    kind: Literal[MediaType.MOVIE] = MediaType.MOVIE


class ShowListItem(_ListItemBase):
    kind: Literal[MediaType.SHOW] = MediaType.SHOW


ListItem = Union[MovieListItem, ShowListItem]


def parse_list_item(payload: Mapping[str, Any]) -> Optional[ListItem]:
    """Convert a raw list entry into a tagged item.

    Returns ``None`` when no usable movie/show object is embedded, e.g. for
    seasons, episodes or people that someone added to the list by hand.
    """

    movie = payload.get("movie")
    show = payload.get("show")
    declared = payload.get("type")

    if isinstance(movie, Mapping) and isinstance(show, Mapping):
        if declared == "show":
            movie = None
        else:
            show = None

    if isinstance(movie, Mapping):
        cls: type[_ListItemBase] = MovieListItem
        embedded = movie
    elif isinstance(show, Mapping):
        cls = ShowListItem
        embedded = show
    else:
        return None

    try:
        summary = MediaSummary.model_validate(embedded)
        return cls(
            identity=summary.ids,
            title=summary.title,
            rank=payload.get("rank"),
            listed_at=payload.get("listed_at"),
        )
    except ValidationError:
        return None


class ManagedList(BaseModel):
    """A list whose membership this tool owns, keyed by ``slug``."""

    slug: str
    name: str
    description: str = ""
    privacy: str = "private"
    kind: MediaType


class TraktList(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str
    description: Optional[str] = None
    privacy: Optional[str] = None
    display_numbers: Optional[bool] = None
    allow_comments: Optional[bool] = None
    item_count: Optional[int] = None
    ids: Mapping[str, Any] = Field(default_factory=dict)


class DeviceCode(BaseModel):
    device_code: str
    user_code: str
    verification_url: str
    expires_in: int
    interval: int


class OAuthToken(BaseModel):
    model_config = ConfigDict(extra="ignore")

    access_token: str
    token_type: str = "bearer"
    expires_in: int
    refresh_token: Optional[str] = None
    scope: Optional[str] = None
    created_at: Optional[int] = None

    def ensure_created_at(self) -> int:
        created = self.created_at or int(time.time())
        if self.created_at is None:
            self.created_at = created
        return created

    @property
    def expires_at(self) -> datetime:
        return datetime.fromtimestamp(self.ensure_created_at() + int(self.expires_in), tz=timezone.utc)


def unique_identities(items: Iterable[MediaIdentity]) -> List[MediaIdentity]:
    """Drop repeated ``trakt`` ids, keeping the first occurrence and the input order."""

    seen: set[int] = set()
    unique: List[MediaIdentity] = []
    for identity in items:
        if identity.trakt in seen:
            continue
        seen.add(identity.trakt)
        unique.append(identity)

    return unique


__all__ = [
    "DeviceCode",
    "ListItem",
    "ManagedList",
    "MediaIdentity",
    "MediaSummary",
    "MediaType",
    "MovieListItem",
    "OAuthToken",
    "RankedEntry",
    "RankingCategory",
    "ShowListItem",
    "TraktList",
    "parse_list_item",
    "unique_identities",
]
