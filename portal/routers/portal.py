"""Portal API: boards, tickets, activity feed and issue comments."""

from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from portal.core.deps import (
    get_current_session,
    get_db,
    get_issue_gateway,
    get_ticket_cache,
    require_admin,
    require_csrf_header,
)
from portal.schemas.auth import UserSession
from portal.schemas.portal import (
    ActivityFeedResponse,
    ActivityItemRead,
    AttachmentRead,
    BoardPreferencesRead,
    BoardPreferencesUpdate,
    BoardRead,
    BoardTicketsResponse,
    CommentCreate,
    CommentRead,
    IssueDetailsResponse,
    MarkSeenRequest,
    PageInfoRead,
    ReadAllRequest,
    SeenStateRead,
    TicketCreate,
    TicketCreateResponse,
    TicketRead,
    WorkflowStateRead,
)
from portal.services import comment_sync, portal_service
from portal.services.seen_state_service import DatabaseSeenStateStore, SeenState

router = APIRouter()


def _seen_state_read(state: SeenState) -> SeenStateRead:
    return SeenStateRead(
        seen_ids=sorted(state.seen_ids),
        last_seen_timestamp=state.last_seen_timestamp,
    )


# =============================================================================
# Boards & tickets
# =============================================================================


@router.get("/boards", response_model=list[BoardRead])
def list_boards(
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """Boards visible to the caller."""
    return [BoardRead.model_validate(b) for b in portal_service.list_boards(db, session)]


@router.get("/boards/{board_id}/tickets", response_model=BoardTicketsResponse)
async def get_board_tickets(
    board_id: UUID,
    force: bool = Query(False, description="Bypass the ticket list cache"),
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
    cache=Depends(get_ticket_cache),
):
    board = portal_service.get_board(db, session, board_id)
    snapshot = await portal_service.get_board_tickets(cache, board, force=force)
    return BoardTicketsResponse(
        board=BoardRead.model_validate(board),
        tickets=[TicketRead.model_validate(t) for t in snapshot.tickets],
        states=[WorkflowStateRead.model_validate(s) for s in snapshot.states],
        page_info=PageInfoRead.model_validate(snapshot.page_info),
        fetched_at=snapshot.fetched_at,
    )


@router.post(
    "/boards/{board_id}/tickets",
    response_model=TicketCreateResponse,
    status_code=201,
    dependencies=[Depends(require_csrf_header)],
)
async def create_ticket(
    board_id: UUID,
    data: TicketCreate,
    session: UserSession = Depends(require_admin),
    db: Session = Depends(get_db),
    gateway=Depends(get_issue_gateway),
    cache=Depends(get_ticket_cache),
):
    """Create a Linear issue on a support board (admin only)."""
    board = portal_service.get_board(db, session, board_id)
    issue_id = await portal_service.create_ticket(
        gateway,
        cache,
        board,
        title=data.title,
        description=data.description,
        priority=data.priority,
        due_date=data.due_date,
    )
    return TicketCreateResponse(id=issue_id)


# =============================================================================
# Activity
# =============================================================================


@router.get("/boards/{board_id}/activity", response_model=ActivityFeedResponse)
async def get_board_activity(
    board_id: UUID,
    limit: int = Query(20, ge=1, le=100),
    since: str | None = Query(None, description="ISO timestamp; defaults to last read-all"),
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
    gateway=Depends(get_issue_gateway),
):
    board = portal_service.get_board(db, session, board_id)
    store = DatabaseSeenStateStore(db, session.user_id)
    feed = await portal_service.get_recent_activity(
        gateway, store, board, limit=limit, since=since
    )
    items = [
        ActivityItemRead(
            id=item.id,
            type=item.type,
            issue_id=item.issue_id,
            issue_title=item.issue_title,
            issue_identifier=item.issue_identifier,
            created_at=item.created_at,
            body=item.body,
            unread=feed.is_unread(item),
        )
        for item in feed.items
    ]
    return ActivityFeedResponse(
        items=items,
        since=feed.since,
        unread_count=sum(1 for item in items if item.unread),
    )


@router.get("/boards/{board_id}/activity/seen", response_model=SeenStateRead)
def get_seen_state(
    board_id: UUID,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    board = portal_service.get_board(db, session, board_id)
    store = DatabaseSeenStateStore(db, session.user_id)
    return _seen_state_read(store.get(str(board.id)))


@router.post(
    "/boards/{board_id}/activity/seen",
    response_model=SeenStateRead,
    dependencies=[Depends(require_csrf_header)],
)
def mark_activity_seen(
    board_id: UUID,
    data: MarkSeenRequest,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    board = portal_service.get_board(db, session, board_id)
    store = DatabaseSeenStateStore(db, session.user_id)
    return _seen_state_read(portal_service.mark_activity_seen(store, board, data.item_ids))


@router.post(
    "/boards/{board_id}/activity/read-all",
    response_model=SeenStateRead,
    dependencies=[Depends(require_csrf_header)],
)
def read_all_activity(
    board_id: UUID,
    data: ReadAllRequest,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    board = portal_service.get_board(db, session, board_id)
    store = DatabaseSeenStateStore(db, session.user_id)
    state = portal_service.read_all_activity(
        store, board, [(item.id, item.created_at) for item in data.items]
    )
    return _seen_state_read(state)


# =============================================================================
# Preferences
# =============================================================================


@router.get("/boards/{board_id}/preferences", response_model=BoardPreferencesRead)
def get_board_preferences(
    board_id: UUID,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    board = portal_service.get_board(db, session, board_id)
    return portal_service.get_board_preferences(db, user_id=session.user_id, board_id=board.id)


@router.put(
    "/boards/{board_id}/preferences",
    response_model=BoardPreferencesRead,
    dependencies=[Depends(require_csrf_header)],
)
def update_board_preferences(
    board_id: UUID,
    data: BoardPreferencesUpdate,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    board = portal_service.get_board(db, session, board_id)
    return portal_service.update_board_preferences(
        db,
        user_id=session.user_id,
        board_id=board.id,
        view=data.view,
        sort_rules=data.sort_rules,
    )


# =============================================================================
# Issues
# =============================================================================


@router.get("/issues/{issue_id}", response_model=IssueDetailsResponse)
async def get_issue(
    issue_id: str,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
    gateway=Depends(get_issue_gateway),
):
    """Issue details with portal-synced comments only."""
    details = await portal_service.get_issue_details(db, gateway, session, issue_id)
    state_type = details.issue.state.type if details.issue.state else None
    return IssueDetailsResponse(
        issue=TicketRead.model_validate(details.issue),
        comments=[CommentRead.model_validate(c) for c in details.comments],
        attachments=[AttachmentRead.model_validate(a) for a in details.attachments],
        comments_allowed=not comment_sync.is_terminal_state(state_type),
    )


@router.post(
    "/issues/{issue_id}/comments",
    response_model=CommentRead,
    status_code=201,
    dependencies=[Depends(require_csrf_header)],
)
async def create_issue_comment(
    issue_id: str,
    data: CommentCreate,
    session: UserSession = Depends(require_admin),
    gateway=Depends(get_issue_gateway),
):
    """Post a synced comment (admin only). Closed or canceled issues reject it."""
    comment = await portal_service.create_issue_comment(gateway, issue_id, data.body)
    return CommentRead.model_validate(comment)
