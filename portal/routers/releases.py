"""Release notes API."""

from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from portal.core.deps import (
    get_current_session,
    get_db,
    get_issue_gateway,
    require_admin,
    require_csrf_header,
)
from portal.db.enums import ReleaseStatusFilter
from portal.db.models import Release
from portal.schemas.auth import UserSession
from portal.schemas.release import (
    AttachItemsRequest,
    AttachItemsResponse,
    CandidateTicketRead,
    ReleaseAccountRead,
    ReleaseCreate,
    ReleaseItemRead,
    ReleasePublish,
    ReleaseRead,
    ReleaseTagCreate,
    ReleaseTagRead,
    ReleaseTimelineItem,
    ReleaseTimelineResponse,
    ReleaseUpdate,
)
from portal.services import release_service

router = APIRouter()


def _timeline_item(release: Release) -> dict:
    return {
        "id": release.id,
        "title": release.title,
        "description": release.description,
        "status": release.status,
        "published_at": release.published_at,
        "created_at": release.created_at,
        "updated_at": release.updated_at,
        "accounts": [
            ReleaseAccountRead(id=scope.account_id, name=scope.account.name)
            for scope in release.accounts
        ],
        "tags": [ReleaseTagRead.model_validate(a.tag) for a in release.tag_assignments],
        "item_count": len(release.items),
    }


def _release_read(release: Release) -> ReleaseRead:
    return ReleaseRead(
        **_timeline_item(release),
        items=[ReleaseItemRead.model_validate(item) for item in release.items],
    )


# =============================================================================
# Timeline
# =============================================================================


@router.get("", response_model=ReleaseTimelineResponse)
def get_release_timeline(
    account_id: UUID | None = Query(None, description="Defaults to the caller's account"),
    status: ReleaseStatusFilter = Query(ReleaseStatusFilter.ALL),
    cursor: str | None = Query(None, description="ISO timestamp from next_cursor"),
    limit: int = Query(12, ge=1, le=50),
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    page = release_service.list_release_timeline(
        db,
        session=session,
        account_id=account_id or session.account_id,
        status=status,
        cursor=cursor,
        limit=limit,
    )
    return ReleaseTimelineResponse(
        items=[ReleaseTimelineItem(**_timeline_item(r)) for r in page.items],
        next_cursor=page.next_cursor,
    )


# =============================================================================
# Tags
# =============================================================================


@router.get("/tags", response_model=list[ReleaseTagRead])
def list_release_tags(
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    return [ReleaseTagRead.model_validate(t) for t in release_service.list_release_tags(db)]


@router.post(
    "/tags",
    response_model=ReleaseTagRead,
    dependencies=[Depends(require_csrf_header)],
)
def upsert_release_tag(
    data: ReleaseTagCreate,
    session: UserSession = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Create a tag, or rename the existing tag with the same slug."""
    return ReleaseTagRead.model_validate(release_service.upsert_release_tag(db, data.name))


@router.delete(
    "/tags/{tag_id}",
    status_code=204,
    dependencies=[Depends(require_csrf_header)],
)
def delete_release_tag(
    tag_id: UUID,
    session: UserSession = Depends(require_admin),
    db: Session = Depends(get_db),
):
    release_service.delete_release_tag(db, tag_id)


# =============================================================================
# Candidate tickets
# =============================================================================


@router.get("/candidates", response_model=list[CandidateTicketRead])
async def get_release_candidates(
    account_id: UUID = Query(...),
    session: UserSession = Depends(require_admin),
    db: Session = Depends(get_db),
    gateway=Depends(get_issue_gateway),
):
    candidates = await release_service.get_release_candidate_tickets(
        db, gateway, account_id=account_id
    )
    return [CandidateTicketRead(**c.__dict__) for c in candidates]


# =============================================================================
# Releases
# =============================================================================


@router.post(
    "",
    response_model=ReleaseRead,
    status_code=201,
    dependencies=[Depends(require_csrf_header)],
)
def create_release_draft(
    data: ReleaseCreate,
    session: UserSession = Depends(require_admin),
    db: Session = Depends(get_db),
):
    release = release_service.create_release_draft(
        db,
        created_by_user_id=session.user_id,
        title=data.title,
        description=data.description,
        account_ids=data.account_ids,
        tag_ids=data.tag_ids,
    )
    return _release_read(release)


@router.get("/{release_id}", response_model=ReleaseRead)
def get_release_details(
    release_id: UUID,
    account_id: UUID | None = Query(None),
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    release = release_service.get_release_details(
        db,
        session=session,
        release_id=release_id,
        account_id=account_id or session.account_id,
    )
    return _release_read(release)


@router.patch(
    "/{release_id}",
    response_model=ReleaseRead,
    dependencies=[Depends(require_csrf_header)],
)
def update_release(
    release_id: UUID,
    data: ReleaseUpdate,
    session: UserSession = Depends(require_admin),
    db: Session = Depends(get_db),
):
    release = release_service.update_release(
        db,
        release_id=release_id,
        title=data.title,
        description=data.description,
        account_ids=data.account_ids,
        tag_ids=data.tag_ids,
    )
    return _release_read(release)


@router.post(
    "/{release_id}/publish",
    response_model=ReleaseRead,
    dependencies=[Depends(require_csrf_header)],
)
def publish_release(
    release_id: UUID,
    data: ReleasePublish | None = None,
    session: UserSession = Depends(require_admin),
    db: Session = Depends(get_db),
):
    release = release_service.publish_release(
        db,
        release_id=release_id,
        published_at=data.published_at if data else None,
    )
    return _release_read(release)


@router.delete(
    "/{release_id}/draft",
    status_code=204,
    dependencies=[Depends(require_csrf_header)],
)
def delete_release_draft(
    release_id: UUID,
    session: UserSession = Depends(require_admin),
    db: Session = Depends(get_db),
):
    release_service.delete_release_draft(db, release_id)


@router.delete(
    "/{release_id}",
    status_code=204,
    dependencies=[Depends(require_csrf_header)],
)
def delete_release(
    release_id: UUID,
    session: UserSession = Depends(require_admin),
    db: Session = Depends(get_db),
):
    release_service.delete_release(db, release_id)


@router.post(
    "/{release_id}/items",
    response_model=AttachItemsResponse,
    dependencies=[Depends(require_csrf_header)],
)
async def attach_release_items(
    release_id: UUID,
    data: AttachItemsRequest,
    session: UserSession = Depends(require_admin),
    db: Session = Depends(get_db),
    gateway=Depends(get_issue_gateway),
):
    """Snapshot issues onto the release; already attached issues are skipped."""
    attached, skipped = await release_service.attach_release_items(
        db,
        gateway,
        release_id=release_id,
        issue_ids=data.issue_ids,
        account_ids=data.account_ids,
    )
    return AttachItemsResponse(attached=attached, skipped=skipped)


@router.delete(
    "/{release_id}/items/{issue_id}",
    status_code=204,
    dependencies=[Depends(require_csrf_header)],
)
def detach_release_item(
    release_id: UUID,
    issue_id: str,
    session: UserSession = Depends(require_admin),
    db: Session = Depends(get_db),
):
    release_service.detach_release_item(db, release_id=release_id, issue_id=issue_id)
