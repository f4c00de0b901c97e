from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

from trakt_list_sync.backend.common.logging import get_logger
from trakt_list_sync.backend.information_handlers.models import ManagedList, MediaType, RankingCategory

log = get_logger(__name__)

MOVIES_LIST_SLUG = "trakt-sync-filme"
SHOWS_LIST_SLUG = "trakt-sync-serien"
KNOWN_SLUGS = (MOVIES_LIST_SLUG, SHOWS_LIST_SLUG)


@dataclass(frozen=True)
class ListDefinition:
    """A managed list together with the charts that feed it."""

    managed: ManagedList
    enabled: bool = True
    sources: Tuple[RankingCategory, ...] = field(
        default=(RankingCategory.TRENDING, RankingCategory.MOST_WATCHED)
    )

    @property
    def slug(self) -> str:
        return self.managed.slug

    @property
    def kind(self) -> MediaType:
        return self.managed.kind


def default_list_definitions(
    *,
    movies_enabled: bool = True,
    shows_enabled: bool = True,
    privacy: str = "private",
    limit: int = 30,
) -> List[ListDefinition]:
    return [
        ListDefinition(
            managed=ManagedList(
                slug=MOVIES_LIST_SLUG,
                name="Trakt Sync Filme",
                description=f"Top {limit} trending and top {limit} most watched movies",
                privacy=privacy,
                kind=MediaType.MOVIE,
            ),
            enabled=movies_enabled,
        ),
        ListDefinition(
            managed=ManagedList(
                slug=SHOWS_LIST_SLUG,
                name="Trakt Sync Serien",
                description=f"Top {limit} trending and top {limit} most watched shows",
                privacy=privacy,
                kind=MediaType.SHOW,
            ),
            enabled=shows_enabled,
        ),
    ]


def filter_definitions(
    definitions: Sequence[ListDefinition],
    requested: Optional[Sequence[str]],
) -> List[ListDefinition]:
    """Enable exactly the requested slugs; ``None`` keeps the configured toggles."""

    if requested is None:
        return list(definitions)

    wanted = {slug.strip() for slug in requested if slug and slug.strip()}
    known = {definition.slug for definition in definitions}
    for slug in sorted(wanted - known):
        log.warning("Unknown list slug %s", slug, extra={"list": slug})

    return [
        ListDefinition(managed=d.managed, enabled=d.slug in wanted, sources=d.sources)
        for d in definitions
    ]
