"""Diff engine for managed lists.

Identity is the Trakt integer id; slugs and external ids never take part in
the comparison. Both diff modes keep the input order of their sources so the
list keeps the chart ranking when items are re-added.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Dict, List, Optional, Sequence

from trakt_list_sync.backend.information_handlers.models import (
    ListItem,
    MediaIdentity,
    MediaType,
    unique_identities,
)

DEFAULT_FULL_REFRESH_DAYS = 7


class SyncMode(str, Enum):
    INCREMENTAL = "incremental"
    FULL_REFRESH = "full_refresh"


@dataclass
class FullRefreshState:
    """Last wholesale rebuild per media kind; ``None`` means never."""

    movies: Optional[datetime] = None
    shows: Optional[datetime] = None

    def get(self, kind: MediaType) -> Optional[datetime]:
        return self.movies if kind is MediaType.MOVIE else self.shows

    def mark(self, kind: MediaType, when: datetime) -> None:
        if when.tzinfo is None:
            when = when.replace(tzinfo=timezone.utc)
        when = when.astimezone(timezone.utc)
        if kind is MediaType.MOVIE:
            self.movies = when
        else:
            self.shows = when


@dataclass
class Diff:
    to_add: List[MediaIdentity] = field(default_factory=list)
    to_remove: List[MediaIdentity] = field(default_factory=list)
    unchanged: int = 0

    @property
    def empty(self) -> bool:
        return not self.to_add and not self.to_remove


def current_identities(current: Sequence[ListItem]) -> List[MediaIdentity]:
    return [item.identity for item in current if item.identity is not None]


def compute_diff(
    current: Sequence[ListItem],
    target: Sequence[MediaIdentity],
    mode: SyncMode = SyncMode.INCREMENTAL,
) -> Diff:
    """Work out which ids to remove from and add to a list.

    ``unchanged`` counts distinct ids present on both sides, so duplicate
    entries already on the list are not counted twice. Duplicates are also
    removed only once.
    """

    existing = unique_identities(current_identities(current))
    wanted = unique_identities(target)

    if mode is SyncMode.FULL_REFRESH:
        return Diff(to_add=wanted, to_remove=existing, unchanged=0)

    existing_ids = {identity.trakt for identity in existing}
    wanted_ids = {identity.trakt for identity in wanted}

    return Diff(
        to_add=[identity for identity in wanted if identity.trakt not in existing_ids],
        to_remove=[identity for identity in existing if identity.trakt not in wanted_ids],
        unchanged=len(existing_ids & wanted_ids),
    )


def should_full_refresh(last: Optional[datetime], days: int, now: datetime) -> bool:
    if last is None:
        return True
    if days <= 0:
        days = DEFAULT_FULL_REFRESH_DAYS
    if last.tzinfo is None:
        last = last.replace(tzinfo=timezone.utc)

    return now - last >= timedelta(days=days)


def decide_mode(state: FullRefreshState, kind: MediaType, days: int, now: datetime) -> SyncMode:
    if should_full_refresh(state.get(kind), days, now):
        return SyncMode.FULL_REFRESH
    return SyncMode.INCREMENTAL


def diff_summary(diff: Diff) -> Dict[str, int]:
    return {"to_add": len(diff.to_add), "to_remove": len(diff.to_remove), "unchanged": diff.unchanged}


__all__ = [
    "DEFAULT_FULL_REFRESH_DAYS",
    "Diff",
    "FullRefreshState",
    "SyncMode",
    "compute_diff",
    "current_identities",
    "decide_mode",
    "diff_summary",
    "should_full_refresh",
    "unique_identities",
]
