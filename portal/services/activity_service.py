"""Activity feed: issue updates and synced comments for one board.

A poll derives items from the most recently updated issues, merges them
into the feed by id and keeps the newest ``limit`` entries. Update items
are keyed by (issue id, updatedAt) so an unchanged issue yields the same
id on every poll and merging is idempotent.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Iterable

from portal.core.errors import PortalError, ValidationError
from portal.core.structured_logging import build_log_context
from portal.db.enums import ActivityType
from portal.services import comment_sync
from portal.services.linear_gateway import ActivityIssue, IssueFilter, IssueGateway
from portal.services.seen_state_service import SeenState, SeenStateStore
from portal.utils.datetime_parsing import parse_iso_datetime

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 20
MAX_LIMIT = 100
MIN_ISSUES_PER_POLL = 30

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


@dataclass(frozen=True)
class ActivityItem:
    id: str
    type: ActivityType
    issue_id: str
    issue_title: str
    issue_identifier: str
    created_at: str
    body: str | None = None


def clamp_limit(limit: int | None) -> int:
    if not limit:
        return DEFAULT_LIMIT
    return max(1, min(limit, MAX_LIMIT))


def update_item_id(issue_id: str, updated_at: str) -> str:
    return f"{issue_id}-update-{updated_at}"


def _is_newer(timestamp: str | None, since: datetime | None) -> bool:
    value = parse_iso_datetime(timestamp)
    if value is None:
        return False
    return since is None or value > since


def build_activity_items(issues: Iterable[ActivityIssue], since: str | None) -> list[ActivityItem]:
    """Emit update and synced-comment items newer than ``since``."""
    since_dt = parse_iso_datetime(since)
    items: list[ActivityItem] = []
    for issue in issues:
        if issue.updated_at and _is_newer(issue.updated_at, since_dt):
            items.append(
                ActivityItem(
                    id=update_item_id(issue.id, issue.updated_at),
                    type=ActivityType.UPDATE,
                    issue_id=issue.id,
                    issue_title=issue.title,
                    issue_identifier=issue.identifier,
                    created_at=issue.updated_at,
                )
            )
        for comment in comment_sync.filter_and_unwrap(issue.comments):
            if _is_newer(comment.created_at, since_dt):
                items.append(
                    ActivityItem(
                        id=comment.id,
                        type=ActivityType.COMMENT,
                        issue_id=issue.id,
                        issue_title=issue.title,
                        issue_identifier=issue.identifier,
                        created_at=comment.created_at,
                        body=comment.body,
                    )
                )
    return items


def _sort_key(item: ActivityItem) -> tuple[datetime, str]:
    return (parse_iso_datetime(item.created_at) or _EPOCH, item.id)


def merge_activity(
    existing: Iterable[ActivityItem],
    incoming: Iterable[ActivityItem],
    limit: int,
) -> list[ActivityItem]:
    """Merge by id (incoming wins), newest first, ties by id, truncated to limit."""
    by_id = {item.id: item for item in existing}
    for item in incoming:
        by_id[item.id] = item
    ordered = sorted(by_id.values(), key=_sort_key, reverse=True)
    return ordered[:limit]


async def fetch_activity(
    gateway: IssueGateway,
    issue_filter: IssueFilter,
    *,
    since: str | None,
    limit: int,
) -> list[ActivityItem]:
    """One stateless poll. Gateway errors propagate."""
    if since and parse_iso_datetime(since) is None:
        raise ValidationError("Invalid since timestamp")
    page = await gateway.list_activity_issues(
        issue_filter, first=max(limit, MIN_ISSUES_PER_POLL)
    )
    return merge_activity([], build_activity_items(page.nodes, since), limit)


def newest_timestamp(items: Iterable[ActivityItem]) -> str | None:
    newest: ActivityItem | None = None
    for item in items:
        if parse_iso_datetime(item.created_at) is None:
            continue
        if newest is None or _sort_key(item) > _sort_key(newest):
            newest = item
    return newest.created_at if newest else None


class ActivityAggregator:
    """In-memory feed for one board plus its persisted seen state."""

    def __init__(
        self,
        gateway: IssueGateway,
        store: SeenStateStore,
        board_id: str,
        issue_filter: IssueFilter,
        *,
        limit: int = DEFAULT_LIMIT,
    ):
        self._gateway = gateway
        self._store = store
        self.board_id = board_id
        self._filter = issue_filter
        self.limit = clamp_limit(limit)
        self._items: list[ActivityItem] = []

    @property
    def items(self) -> list[ActivityItem]:
        return list(self._items)

    def seen_state(self) -> SeenState:
        return self._store.get(self.board_id)

    async def poll(self, since: str | None = None) -> bool:
        """Fetch and merge. Returns False when the gateway call failed.

        Any gateway error (upstream, configuration, not found) is logged and
        dropped here; the feed and the watermark stay as they were.
        """
        watermark = since if since is not None else self.seen_state().last_seen_timestamp
        try:
            fetched = await fetch_activity(
                self._gateway, self._filter, since=watermark, limit=self.limit
            )
        except PortalError as exc:
            logger.warning(
                "Activity poll failed for board %s: %s",
                self.board_id,
                exc.message,
                extra=build_log_context(board_id=self.board_id),
            )
            return False
        self._items = merge_activity(self._items, fetched, self.limit)
        return True

    def unread_ids(self) -> set[str]:
        seen = self.seen_state().seen_ids
        return {item.id for item in self._items if item.id not in seen}

    def mark_seen(self, item_ids: Iterable[str]) -> SeenState:
        return self._store.mark_seen(self.board_id, item_ids)

    def read_all(self) -> SeenState:
        """Mark every visible item seen and move the watermark to the newest of them."""
        state = self._store.mark_seen(self.board_id, [item.id for item in self._items])
        newest = newest_timestamp(self._items)
        if newest is not None:
            state = self._store.advance_watermark(self.board_id, newest)
        return state

    def dismiss(self, item_id: str) -> SeenState:
        self._items = [item for item in self._items if item.id != item_id]
        return self._store.mark_seen(self.board_id, [item_id])

    def clear(self) -> SeenState:
        state = self.read_all()
        self._items = []
        return state


class ActivityPoller:
    """Drives an aggregator: Idle -> Polling -> Idle.

    Timer polls run every ``interval`` seconds while ``is_visible()`` is
    true. ``trigger()`` forces a poll at once whatever the timer phase.
    A poll that has started always runs to completion.
    """

    def __init__(
        self,
        aggregator: ActivityAggregator,
        *,
        interval: float,
        is_visible: Callable[[], bool] = lambda: True,
        on_update: Callable[[list[ActivityItem]], None] | None = None,
    ):
        self.aggregator = aggregator
        self.interval = interval
        self._is_visible = is_visible
        self._on_update = on_update
        self._wake = asyncio.Event()
        self._forced = False
        self._stopping = False
        self.state = "idle"

    def trigger(self) -> None:
        self._forced = True
        self._wake.set()

    def stop(self) -> None:
        self._stopping = True
        self._wake.set()

    async def poll_once(self) -> bool:
        self.state = "polling"
        try:
            ok = await self.aggregator.poll()
        finally:
            self.state = "idle"
        if ok and self._on_update is not None:
            self._on_update(self.aggregator.items)
        return ok

    async def run(self) -> None:
        while not self._stopping:
            forced, self._forced = self._forced, False
            if forced or self._is_visible():
                await self.poll_once()
            if self._stopping:
                break
            self._wake.clear()
            if self._forced:
                continue
            try:
                await asyncio.wait_for(self._wake.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                pass
