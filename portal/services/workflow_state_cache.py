"""Per-team TTL cache of Linear workflow states."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable

from portal.services.linear_gateway import IssueGateway, WorkflowState

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 60.0


@dataclass(frozen=True)
class _Entry:
    states: tuple[WorkflowState, ...]
    expires_at: float


class WorkflowStateCache:
    """Lazy, pull-based cache keyed by Linear team id.

    Expired entries are never served: a failed refetch raises instead of
    falling back to the stale list.
    """

    def __init__(
        self,
        gateway: IssueGateway,
        *,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._gateway = gateway
        self._ttl = ttl_seconds
        self._clock = clock
        self._entries: dict[str, _Entry] = {}

    async def get(self, team_id: str) -> tuple[WorkflowState, ...]:
        entry = self._entries.get(team_id)
        if entry is not None and self._clock() < entry.expires_at:
            return entry.states

        states = tuple(await self._gateway.list_workflow_states(team_id))
        self._entries[team_id] = _Entry(states=states, expires_at=self._clock() + self._ttl)
        logger.debug("Cached %d workflow states for team %s", len(states), team_id)
        return states

    def invalidate(self, team_id: str | None = None) -> None:
        if team_id is None:
            self._entries.clear()
        else:
            self._entries.pop(team_id, None)
