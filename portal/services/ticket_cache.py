"""Per-board TTL cache of ticket list snapshots."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable

from portal.services.linear_gateway import (
    IssueFilter,
    IssueGateway,
    IssueSnapshot,
    PageInfo,
    WorkflowState,
)
from portal.services.workflow_state_cache import WorkflowStateCache

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 30.0
DEFAULT_PAGE_SIZE = 100
MAX_PAGE_SIZE = 250


@dataclass(frozen=True)
class BoardScope:
    """Cache key plus the Linear filter a board resolves to."""

    board_id: str
    team_id: str
    project_id: str | None = None

    @property
    def issue_filter(self) -> IssueFilter:
        return IssueFilter(team_id=self.team_id, project_id=self.project_id)


@dataclass(frozen=True)
class TicketListSnapshot:
    tickets: tuple[IssueSnapshot, ...]
    states: tuple[WorkflowState, ...]
    page_info: PageInfo
    fetched_at: datetime


@dataclass(frozen=True)
class _Entry:
    snapshot: TicketListSnapshot
    expires_at: float
    generation: int


def clamp_page_size(first: int | None) -> int:
    if not first:
        return DEFAULT_PAGE_SIZE
    return max(1, min(first, MAX_PAGE_SIZE))


class TicketListCache:
    """Whole-list snapshots (tickets, states, page info) keyed by board id.

    An entry is replaced in a single assignment after both fetches succeed,
    so readers never observe a half-built list. Fetches are numbered per
    board and a slower, older fetch never overwrites a newer one.
    """

    def __init__(
        self,
        gateway: IssueGateway,
        state_cache: WorkflowStateCache,
        *,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._gateway = gateway
        self._state_cache = state_cache
        self._ttl = ttl_seconds
        self._clock = clock
        self._entries: dict[str, _Entry] = {}
        self._generations: dict[str, int] = {}

    async def get(
        self,
        scope: BoardScope,
        *,
        force: bool = False,
        first: int | None = None,
    ) -> TicketListSnapshot:
        entry = self._entries.get(scope.board_id)
        if not force and entry is not None and self._clock() < entry.expires_at:
            return entry.snapshot

        generation = self._generations.get(scope.board_id, 0) + 1
        self._generations[scope.board_id] = generation

        page, states = await asyncio.gather(
            self._gateway.list_issues(scope.issue_filter, first=clamp_page_size(first)),
            self._state_cache.get(scope.team_id),
        )
        snapshot = TicketListSnapshot(
            tickets=tuple(page.nodes),
            states=tuple(states),
            page_info=page.page_info,
            fetched_at=datetime.now(timezone.utc),
        )

        current = self._entries.get(scope.board_id)
        if current is None or current.generation < generation:
            self._entries[scope.board_id] = _Entry(
                snapshot=snapshot,
                expires_at=self._clock() + self._ttl,
                generation=generation,
            )
        logger.debug(
            "Fetched %d tickets for board %s (force=%s)",
            len(snapshot.tickets),
            scope.board_id,
            force,
        )
        return snapshot

    def invalidate(self, board_id: str) -> None:
        self._entries.pop(board_id, None)
