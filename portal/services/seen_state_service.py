"""Per-board seen/read state for the activity feed.

Two stores share one interface: a key-value store for client-local state
(the CLI backs it with ``shelve``) and a database store keyed by
(user, board) for the HTTP API. Losing this state only makes old items
show as unread again.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Iterable, MutableMapping, Protocol
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from portal.db.models import ActivitySeenItem, ActivityWatermark
from portal.utils.datetime_parsing import parse_iso_datetime, to_iso

logger = logging.getLogger(__name__)

SEEN_IDS_KEY = "seen-ids:{board_id}"
WATERMARK_KEY = "seen-watermark:{board_id}"


@dataclass(frozen=True)
class SeenState:
    seen_ids: frozenset[str] = field(default_factory=frozenset)
    last_seen_timestamp: str | None = None


class SeenStateStore(Protocol):
    def get(self, board_id: str) -> SeenState: ...

    def mark_seen(self, board_id: str, item_ids: Iterable[str]) -> SeenState: ...

    def advance_watermark(self, board_id: str, timestamp: str) -> SeenState: ...


def is_later(candidate: str | None, current: str | None) -> bool:
    """True when candidate parses and is strictly after current (or current is unset)."""
    candidate_dt = parse_iso_datetime(candidate)
    if candidate_dt is None:
        return False
    current_dt = parse_iso_datetime(current)
    return current_dt is None or candidate_dt > current_dt


class KeyValueSeenStateStore:
    """SeenStateStore over any string mapping (dict, shelve, ...)."""

    def __init__(self, storage: MutableMapping[str, str]):
        self._storage = storage

    def _load_ids(self, board_id: str) -> set[str]:
        raw = self._storage.get(SEEN_IDS_KEY.format(board_id=board_id))
        if not raw:
            return set()
        try:
            value = json.loads(raw)
        except (TypeError, ValueError):
            logger.warning("Discarding unreadable seen ids for board %s", board_id)
            return set()
        if not isinstance(value, list):
            return set()
        return {str(v) for v in value}

    def get(self, board_id: str) -> SeenState:
        watermark = self._storage.get(WATERMARK_KEY.format(board_id=board_id)) or None
        if watermark is not None and parse_iso_datetime(watermark) is None:
            watermark = None
        return SeenState(
            seen_ids=frozenset(self._load_ids(board_id)),
            last_seen_timestamp=watermark,
        )

    def mark_seen(self, board_id: str, item_ids: Iterable[str]) -> SeenState:
        ids = self._load_ids(board_id)
        before = len(ids)
        ids.update(i for i in item_ids if i)
        if len(ids) != before:
            self._storage[SEEN_IDS_KEY.format(board_id=board_id)] = json.dumps(sorted(ids))
        return self.get(board_id)

    def advance_watermark(self, board_id: str, timestamp: str) -> SeenState:
        current = self.get(board_id).last_seen_timestamp
        if is_later(timestamp, current):
            self._storage[WATERMARK_KEY.format(board_id=board_id)] = timestamp
        return self.get(board_id)


class DatabaseSeenStateStore:
    """SeenStateStore persisted per (user, board)."""

    def __init__(self, db: Session, user_id: UUID):
        self.db = db
        self.user_id = user_id

    def get(self, board_id: str) -> SeenState:
        board_uuid = UUID(str(board_id))
        ids = self.db.scalars(
            select(ActivitySeenItem.item_id).where(
                ActivitySeenItem.user_id == self.user_id,
                ActivitySeenItem.board_id == board_uuid,
            )
        ).all()
        watermark = self.db.get(ActivityWatermark, (self.user_id, board_uuid))
        return SeenState(
            seen_ids=frozenset(ids),
            last_seen_timestamp=to_iso(watermark.last_seen_at) if watermark else None,
        )

    def mark_seen(self, board_id: str, item_ids: Iterable[str]) -> SeenState:
        board_uuid = UUID(str(board_id))
        existing = self.get(board_id).seen_ids
        new_ids = {i for i in item_ids if i} - existing
        for item_id in sorted(new_ids):
            self.db.add(
                ActivitySeenItem(user_id=self.user_id, board_id=board_uuid, item_id=item_id)
            )
        if new_ids:
            try:
                self.db.commit()
            except IntegrityError:
                # A concurrent request stored some of these ids first.
                self.db.rollback()
                self._insert_missing(board_uuid, new_ids - self.get(board_id).seen_ids)
        return self.get(board_id)

    def _insert_missing(self, board_uuid: UUID, item_ids: set[str]) -> None:
        for item_id in sorted(item_ids):
            self.db.add(
                ActivitySeenItem(user_id=self.user_id, board_id=board_uuid, item_id=item_id)
            )
            try:
                self.db.commit()
            except IntegrityError:
                self.db.rollback()

    def advance_watermark(self, board_id: str, timestamp: str) -> SeenState:
        board_uuid = UUID(str(board_id))
        candidate = parse_iso_datetime(timestamp)
        if candidate is not None:
            watermark = self.db.get(ActivityWatermark, (self.user_id, board_uuid))
            if watermark is None:
                self.db.add(
                    ActivityWatermark(
                        user_id=self.user_id, board_id=board_uuid, last_seen_at=candidate
                    )
                )
                try:
                    self.db.commit()
                except IntegrityError:
                    # Another request created the row; apply the monotonic update to it.
                    self.db.rollback()
                    watermark = self.db.get(ActivityWatermark, (self.user_id, board_uuid))
                    if watermark is not None and candidate > watermark.last_seen_at:
                        watermark.last_seen_at = candidate
                        self.db.commit()
            elif candidate > watermark.last_seen_at:
                watermark.last_seen_at = candidate
                self.db.commit()
        return self.get(board_id)
