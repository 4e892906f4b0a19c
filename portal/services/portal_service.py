"""Board, ticket, activity and issue operations behind the portal API."""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from portal.core.errors import Forbidden, NotFound, UpstreamError, ValidationError
from portal.db.enums import BoardType, BoardView, SortDirection, SortField
from portal.db.models import Board, BoardPreference
from portal.schemas.auth import UserSession
from portal.services import comment_sync
from portal.services.activity_service import ActivityItem, clamp_limit, fetch_activity
from portal.services.linear_gateway import Comment, IssueDetails, IssueGateway
from portal.services.seen_state_service import SeenStateStore
from portal.services.ticket_cache import BoardScope, TicketListCache, TicketListSnapshot
from portal.utils.datetime_parsing import parse_iso_datetime
from portal.utils.presentation import order_workflow_states

logger = logging.getLogger(__name__)

READ_ONLY_BOARD_MESSAGE = (
    "This board is read-only. New tickets can only be created in support boards."
)


@dataclass(frozen=True)
class ActivityFeed:
    items: list[ActivityItem]
    since: str | None
    seen_ids: frozenset[str]

    def is_unread(self, item: ActivityItem) -> bool:
        return item.id not in self.seen_ids


# =============================================================================
# Boards
# =============================================================================


def can_access_board(session: UserSession, board: Board) -> bool:
    if session.is_admin:
        return True
    return session.account_id is not None and board.account_id == session.account_id


def list_boards(db: Session, session: UserSession) -> list[Board]:
    query = select(Board).order_by(Board.name.asc())
    if not session.is_admin:
        query = query.where(Board.account_id == session.account_id)
    return list(db.scalars(query).all())


def get_board(db: Session, session: UserSession, board_id: UUID) -> Board:
    board = db.get(Board, board_id)
    if board is None:
        raise NotFound("Board not found.")
    if not can_access_board(session, board):
        raise Forbidden("You do not have access to this board.")
    return board


def board_scope(board: Board) -> BoardScope:
    return BoardScope(
        board_id=str(board.id),
        team_id=board.team_id,
        project_id=board.project_id,
    )


async def get_board_tickets(
    cache: TicketListCache,
    board: Board,
    *,
    force: bool = False,
) -> TicketListSnapshot:
    snapshot = await cache.get(board_scope(board), force=force)
    return dataclasses.replace(
        snapshot, states=tuple(order_workflow_states(snapshot.states))
    )


async def create_ticket(
    gateway: IssueGateway,
    cache: TicketListCache,
    board: Board,
    *,
    title: str,
    description: str,
    priority: int | None = None,
    due_date: str | None = None,
) -> str:
    """Create an issue on a SUPPORT board and refresh that board's list."""
    if board.type == BoardType.PROJECT.value:
        raise ValidationError(READ_ONLY_BOARD_MESSAGE)
    cleaned_title = (title or "").strip()
    if not cleaned_title:
        raise ValidationError("Title is required.")

    issue_id = await gateway.create_issue(
        team_id=board.team_id,
        title=cleaned_title,
        description=description or "",
        priority=priority,
        due_date=due_date,
        project_id=board.project_id,
    )
    logger.info("Created issue %s on board %s", issue_id, board.id)

    scope = board_scope(board)
    try:
        await cache.get(scope, force=True)
    except UpstreamError as exc:
        # The issue exists; the next read refetches.
        logger.warning("Ticket list refresh failed for board %s: %s", board.id, exc.message)
        cache.invalidate(scope.board_id)
    return issue_id


# =============================================================================
# Activity
# =============================================================================


async def get_recent_activity(
    gateway: IssueGateway,
    store: SeenStateStore,
    board: Board,
    *,
    limit: int | None = None,
    since: str | None = None,
) -> ActivityFeed:
    """Stateless feed build. ``since`` defaults to the persisted watermark."""
    board_id = str(board.id)
    state = store.get(board_id)
    watermark = since if since else state.last_seen_timestamp
    items = await fetch_activity(
        gateway,
        board_scope(board).issue_filter,
        since=watermark,
        limit=clamp_limit(limit),
    )
    return ActivityFeed(items=items, since=watermark, seen_ids=state.seen_ids)


def mark_activity_seen(store: SeenStateStore, board: Board, item_ids: list[str]):
    return store.mark_seen(str(board.id), item_ids)


def read_all_activity(store: SeenStateStore, board: Board, items: list[tuple[str, str]]):
    """Mark (id, created_at) pairs seen and advance the watermark to the newest."""
    board_id = str(board.id)
    state = store.mark_seen(board_id, [item_id for item_id, _ in items])
    newest = None
    for _, created_at in items:
        candidate = parse_iso_datetime(created_at)
        if candidate and (newest is None or candidate > newest[0]):
            newest = (candidate, created_at)
    if newest is not None:
        state = store.advance_watermark(board_id, newest[1])
    return state


# =============================================================================
# Issues
# =============================================================================


def _issue_visible_to(db: Session, session: UserSession, details: IssueDetails) -> bool:
    if session.is_admin:
        return True
    issue = details.issue
    boards = db.scalars(
        select(Board).where(
            Board.account_id == session.account_id,
            Board.team_id == issue.team_id,
        )
    ).all()
    return any(not b.project_id or b.project_id == issue.project_id for b in boards)


async def get_issue_details(
    db: Session,
    gateway: IssueGateway,
    session: UserSession,
    issue_id: str,
) -> IssueDetails:
    """Issue with only the portal-synced comments, marker removed."""
    details = await gateway.get_issue(issue_id)
    if details is None or not _issue_visible_to(db, session, details):
        raise NotFound("Issue not found.")
    return dataclasses.replace(details, comments=comment_sync.filter_and_unwrap(details.comments))


async def create_issue_comment(gateway: IssueGateway, issue_id: str, body: str) -> Comment:
    return await comment_sync.post_comment(gateway, issue_id, body)


# =============================================================================
# Preferences
# =============================================================================


def normalize_sort_rules(raw: Any) -> list[dict[str, str]]:
    """Keep well-formed rules with known fields, first rule per field wins."""
    if not isinstance(raw, list):
        return []
    rules: list[dict[str, str]] = []
    seen_fields: set[str] = set()
    for rule in raw:
        if not isinstance(rule, dict):
            continue
        field, direction = rule.get("field"), rule.get("direction")
        if not isinstance(field, str) or not isinstance(direction, str):
            continue
        if field not in SortField._value2member_map_:
            continue
        if direction not in SortDirection._value2member_map_:
            continue
        if field in seen_fields:
            continue
        seen_fields.add(field)
        rules.append({"field": field, "direction": direction})
    return rules


def get_board_preferences(db: Session, *, user_id: UUID, board_id: UUID) -> dict[str, Any]:
    pref = db.scalars(
        select(BoardPreference).where(
            BoardPreference.user_id == user_id,
            BoardPreference.board_id == board_id,
        )
    ).first()
    if pref is None:
        return {"view": BoardView.KANBAN.value, "sort_rules": []}
    return {"view": pref.view, "sort_rules": normalize_sort_rules(pref.sort_rules)}


def update_board_preferences(
    db: Session,
    *,
    user_id: UUID,
    board_id: UUID,
    view: str | None = None,
    sort_rules: Any = None,
) -> dict[str, Any]:
    if view is not None and view not in BoardView._value2member_map_:
        raise ValidationError("View must be 'table' or 'kanban'.")

    pref = db.scalars(
        select(BoardPreference).where(
            BoardPreference.user_id == user_id,
            BoardPreference.board_id == board_id,
        )
    ).first()
    if pref is None:
        pref = BoardPreference(user_id=user_id, board_id=board_id, sort_rules=[])
        db.add(pref)
    if view is not None:
        pref.view = view
    if sort_rules is not None:
        pref.sort_rules = normalize_sort_rules(sort_rules)
    db.commit()
    return get_board_preferences(db, user_id=user_id, board_id=board_id)
