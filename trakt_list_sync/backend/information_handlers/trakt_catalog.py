"""Ranked Trakt charts (trending / popular / most watched) reduced to identities."""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Sequence

from pydantic import ValidationError

from trakt_list_sync.backend.common.logging import get_logger
from trakt_list_sync.backend.information_handlers.models import (
    MediaIdentity,
    MediaSummary,
    MediaType,
    RankedEntry,
    RankingCategory,
    unique_identities,
)
from trakt_list_sync.backend.network_handlers.session import HttpSession, parse_json

log = get_logger(__name__)

MOST_WATCHED_PERIOD = "weekly"
DEFAULT_SOURCES = (RankingCategory.TRENDING, RankingCategory.MOST_WATCHED)


class TraktCatalog:
    def __init__(self, session: HttpSession) -> None:
        self._session = session

    def fetch_ranked(
        self,
        category: RankingCategory,
        kind: MediaType,
        limit: int,
        min_rating: int = 0,
    ) -> List[MediaIdentity]:
        """Return chart entries in server rank order, without their metrics."""

        if limit <= 0:
            raise ValueError("limit must be greater than 0")
        if not 0 <= min_rating <= 100:
            raise ValueError("min_rating must be between 0 and 100")

        params: Dict[str, Any] = {"limit": limit}
        if min_rating > 0:
            params["ratings"] = f"{min_rating}-100"

        response = self._session.get(self._chart_endpoint(category, kind), params=params)
        payload = parse_json(response)
        if not isinstance(payload, list):
            return []

        identities = list(self._identities(payload, category, kind))
        log.debug(
            "Fetched %s %s",
            category.value,
            kind.plural,
            extra={"count": len(identities), "limit": limit, "min_rating": min_rating},
        )

        return identities

    def fetch_combined(
        self,
        kind: MediaType,
        limit: int,
        min_rating: int = 0,
        sources: Sequence[RankingCategory] = DEFAULT_SOURCES,
    ) -> List[MediaIdentity]:
        """Concatenate several charts in ``sources`` order and drop repeated ids."""

        combined: List[MediaIdentity] = []
        for category in sources:
            combined.extend(self.fetch_ranked(category, kind, limit, min_rating))

        return unique_identities(combined)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _chart_endpoint(self, category: RankingCategory, kind: MediaType) -> str:
        if category is RankingCategory.MOST_WATCHED:
            return self._session.urlm.endpoint(kind.plural, category.value, period=MOST_WATCHED_PERIOD)

        return self._session.urlm.endpoint(kind.plural, category.value)

    def _identities(
        self,
        payload: Iterable[Any],
        category: RankingCategory,
        kind: MediaType,
    ) -> Iterable[MediaIdentity]:
        for entry in payload:
            if not isinstance(entry, dict):
                continue
            try:
                if category is RankingCategory.POPULAR:
                    summary = MediaSummary.model_validate(entry)
                else:
                    summary = RankedEntry.model_validate(entry).summary(kind)
            except ValidationError:
                log.debug("Skipping malformed %s entry", category.value)
                continue
            if summary is not None:
                yield summary.ids
