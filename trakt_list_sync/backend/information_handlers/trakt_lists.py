"""CRUD over a user's custom Trakt lists."""

from __future__ import annotations

from typing import Iterable, List, Optional

from trakt_list_sync.backend.common.errors import NotFound
from trakt_list_sync.backend.common.logging import get_logger
from trakt_list_sync.backend.information_handlers.models import (
    ListItem,
    ManagedList,
    MediaIdentity,
    MediaType,
    TraktList,
    parse_list_item,
)
from trakt_list_sync.backend.network_handlers.session import HttpSession, parse_json, parse_model
from trakt_list_sync.config.settings.providers import get_list_page_limit

log = get_logger(__name__)

PAGE_COUNT_HEADER = "X-Pagination-Page-Count"


class TraktListManager:
    """Reads and edits lists owned by ``owner`` (a Trakt username)."""

    def __init__(self, session: HttpSession, *, page_limit: Optional[int] = None) -> None:
        self._session = session
        self._page_limit = page_limit if page_limit and page_limit > 0 else get_list_page_limit()

    def get_list(self, owner: str, slug: str) -> Optional[TraktList]:
        path = self._session.urlm.endpoint("lists", "detail", username=owner, list_id=slug)
        try:
            response = self._session.get(path)
        except NotFound:
            return None

        return parse_model(response, TraktList)

    def create_list(self, owner: str, managed: ManagedList) -> TraktList:
        body = {
            "name": managed.name,
            "description": managed.description,
            "privacy": (managed.privacy or "").strip() or "private",
            "display_numbers": True,
            "allow_comments": False,
        }
        response = self._session.post(
            self._session.urlm.endpoint("lists", "create", username=owner),
            json_body=body,
        )
        created = parse_model(response, TraktList)
        log.info("Created Trakt list %s", managed.slug, extra={"list": managed.slug, "privacy": body["privacy"]})

        return created

    def ensure_exists(self, owner: str, managed: ManagedList) -> TraktList:
        existing = self.get_list(owner, managed.slug)
        if existing is not None:
            return existing

        return self.create_list(owner, managed)

    def get_all_items(self, owner: str, slug: str) -> List[ListItem]:
        """Collect every page of a list, skipping entries that are not movies or shows."""

        path = self._session.urlm.endpoint("lists", "items", username=owner, list_id=slug)
        items: List[ListItem] = []
        skipped = 0
        page = 1

        while True:
            response = self._session.get(path, params={"page": page, "limit": self._page_limit})
            payload = parse_json(response) or []
            for raw in payload if isinstance(payload, list) else []:
                item = parse_list_item(raw) if isinstance(raw, dict) else None
                if item is None:
                    skipped += 1
                    continue
                items.append(item)

            page_count = _page_count(response.headers.get(PAGE_COUNT_HEADER))
            if page_count == 0 or page >= page_count:
                break
            page += 1

        if skipped:
            log.debug("Ignored %d unsupported entries in list %s", skipped, slug)

        return items

    def add_items(self, owner: str, slug: str, identities: Iterable[MediaIdentity], kind: MediaType) -> int:
        return self._modify(owner, slug, identities, kind, remove=False)

    def remove_items(self, owner: str, slug: str, identities: Iterable[MediaIdentity], kind: MediaType) -> int:
        return self._modify(owner, slug, identities, kind, remove=True)

    def _modify(
        self,
        owner: str,
        slug: str,
        identities: Iterable[MediaIdentity],
        kind: MediaType,
        *,
        remove: bool,
    ) -> int:
        batch = [identity.as_payload() for identity in identities]
        if not batch:
            return 0

        key = "remove_items" if remove else "items"
        path = self._session.urlm.endpoint("lists", key, username=owner, list_id=slug)
        self._session.post(path, json_body={kind.plural: batch})

        return len(batch)


def _page_count(value: Optional[str]) -> int:
    if value is None:
        return 0
    try:
        return max(0, int(str(value).strip()))
    except ValueError:
        return 0
