"""Per-list and aggregate sync passes.

Lists are synced one after another on the calling thread; they share the
session's rate-limit budget. A failure aborts only the list it happened in.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Callable, List, Optional, Sequence

from trakt_list_sync.backend.common.errors import TraktSyncError
from trakt_list_sync.backend.common.logging import get_logger
from trakt_list_sync.backend.common.types import SyncOutcome
from trakt_list_sync.backend.information_handlers.trakt_catalog import TraktCatalog
from trakt_list_sync.backend.information_handlers.trakt_lists import TraktListManager
from trakt_list_sync.backend.network_handlers.session import utcnow
from trakt_list_sync.backend.sync.definitions import ListDefinition
from trakt_list_sync.backend.sync.reconcile import SyncMode, compute_diff, decide_mode, diff_summary

if TYPE_CHECKING:
    from trakt_list_sync.config.settings.core import SyncSettings

log = get_logger(__name__)


@dataclass
class ListSyncResult:
    slug: str
    added: int = 0
    removed: int = 0
    unchanged: int = 0
    full_refresh: bool = False
    duration: float = 0.0
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class SyncResult:
    successful: int = 0
    failed: int = 0
    total: int = 0
    duration: float = 0.0
    lists: List[ListSyncResult] = field(default_factory=list)

    @property
    def outcome(self) -> SyncOutcome:
        if self.total == 0:
            return SyncOutcome.NOOP
        if self.failed == 0:
            return SyncOutcome.SUCCESS
        if self.successful == 0:
            return SyncOutcome.TOTAL_FAILURE
        return SyncOutcome.PARTIAL_FAILURE

    def record(self, result: ListSyncResult) -> None:
        self.lists.append(result)
        self.total += 1
        if result.ok:
            self.successful += 1
        else:
            self.failed += 1


class Syncer:
    """Reconciles managed lists owned by ``owner`` against the Trakt charts.

    Full-refresh timestamps are read from and stamped into
    ``settings.last_full_refresh``; :attr:`state_dirty` tells the caller that
    they changed and should be saved.
    """

    def __init__(
        self,
        catalog: TraktCatalog,
        lists: TraktListManager,
        *,
        owner: str,
        settings: "SyncSettings",
        clock: Callable[[], datetime] = utcnow,
        timer: Callable[[], float] = time.monotonic,
    ) -> None:
        self._catalog = catalog
        self._lists = lists
        self._owner = owner
        self._settings = settings
        self._clock = clock
        self._timer = timer
        self.state_dirty = False

    def sync_all(self, definitions: Sequence[ListDefinition]) -> SyncResult:
        started = self._timer()
        result = SyncResult()
        log.info("Starting sync")

        for definition in definitions:
            if not definition.enabled:
                log.debug("List disabled, skipping", extra={"list": definition.slug})
                continue
            result.record(self.sync_list(definition))

        result.duration = self._timer() - started

        if result.total == 0:
            log.warning("No lists enabled for sync")
            return result

        log.info(
            "Sync complete",
            extra={
                "successful": result.successful,
                "failed": result.failed,
                "total": result.total,
                "duration": round(result.duration, 3),
            },
        )

        return result

    def sync_list(self, definition: ListDefinition) -> ListSyncResult:
        """Sync one list, returning its result instead of raising on API failures."""

        started = self._timer()
        outcome = ListSyncResult(slug=definition.slug)
        log.info("Starting list sync", extra={"list": definition.slug})

        try:
            self._reconcile(definition, outcome)
        except TraktSyncError as exc:
            outcome.error = exc
            outcome.duration = self._timer() - started
            log.error("Failed to sync list: %s", exc, extra={"list": definition.slug})
            return outcome

        outcome.duration = self._timer() - started
        log.info(
            "List sync complete",
            extra={
                "list": definition.slug,
                "added": outcome.added,
                "removed": outcome.removed,
                "unchanged": outcome.unchanged,
                "full_refresh": outcome.full_refresh,
                "duration": round(outcome.duration, 3),
            },
        )

        return outcome

    def _reconcile(self, definition: ListDefinition, outcome: ListSyncResult) -> None:
        kind = definition.kind
        slug = definition.slug

        self._lists.ensure_exists(self._owner, definition.managed)

        target = self._catalog.fetch_combined(
            kind,
            self._settings.limit,
            self._settings.min_rating,
            sources=definition.sources,
        )
        log.info("Fetched items from API", extra={"list": slug, "count": len(target)})

        current = self._lists.get_all_items(self._owner, slug)

        state = self._settings.last_full_refresh
        mode = decide_mode(state, kind, self._settings.full_refresh_days, self._clock())
        diff = compute_diff(current, target, mode)
        log.debug("Computed diff", extra={"list": slug, "mode": mode.value, **diff_summary(diff)})

        if diff.to_remove:
            self._lists.remove_items(self._owner, slug, diff.to_remove, kind)
        if diff.to_add:
            self._lists.add_items(self._owner, slug, diff.to_add, kind)

        if mode is SyncMode.FULL_REFRESH:
            state.mark(kind, self._clock())
            self.state_dirty = True

        outcome.added = len(diff.to_add)
        outcome.removed = len(diff.to_remove)
        outcome.unchanged = diff.unchanged
        outcome.full_refresh = mode is SyncMode.FULL_REFRESH
