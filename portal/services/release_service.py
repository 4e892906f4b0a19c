"""Release notes: timeline pagination, visibility and draft management.

Timeline order is publish date descending, with drafts placed by their
creation date. The cursor is the ISO timestamp of the last returned row
and the next page is every row whose publish date (or creation date, when
unpublished) is strictly earlier.
"""

from __future__ import annotations

import asyncio
import logging
import re
import unicodedata
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from sqlalchemy import and_, exists, func, or_, select
from sqlalchemy.orm import Session, selectinload

from portal.core.errors import Forbidden, NotFound, ValidationError
from portal.db.enums import ReleaseStatus, ReleaseStatusFilter
from portal.db.models import (
    Account,
    Board,
    Release,
    ReleaseAccount,
    ReleaseItem,
    ReleaseTag,
    ReleaseTagAssignment,
)
from portal.db.types import utc_now
from portal.schemas.auth import UserSession
from portal.services.linear_gateway import IssueFilter, IssueGateway, IssueSnapshot
from portal.utils.datetime_parsing import parse_iso_datetime

logger = logging.getLogger(__name__)

DEFAULT_TIMELINE_LIMIT = 12
MAX_TIMELINE_LIMIT = 50
CANDIDATE_ISSUES_PER_BOARD = 200

_NON_ALNUM_RE = re.compile(r"[^a-z0-9]+")


@dataclass(frozen=True)
class ReleaseTimelinePage:
    items: list[Release]
    next_cursor: str | None


@dataclass(frozen=True)
class CandidateTicket:
    issue_id: str
    identifier: str
    title: str
    state_name: str
    state_type: str | None
    priority: int | None
    board_type: str
    account_id: UUID


# =============================================================================
# Visibility
# =============================================================================


def can_view_release(
    *,
    is_admin: bool,
    status: str,
    account_ids: list[UUID],
    selected_account_id: UUID | None,
) -> bool:
    if is_admin:
        return True
    if status != ReleaseStatus.PUBLISHED.value:
        return False
    if not selected_account_id:
        return False
    return selected_account_id in account_ids


def _resolve_account_scope(session: UserSession, account_id: UUID | None) -> UUID | None:
    """Viewers may only ask for their own account."""
    if session.is_admin or account_id is None:
        return account_id
    if account_id != session.account_id:
        raise Forbidden("Forbidden.")
    return account_id


def slugify_tag_name(name: str) -> str:
    decomposed = unicodedata.normalize("NFD", name.strip().lower())
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return _NON_ALNUM_RE.sub("-", stripped).strip("-")


# =============================================================================
# Timeline
# =============================================================================


def _release_query():
    return select(Release).options(
        selectinload(Release.accounts).selectinload(ReleaseAccount.account),
        selectinload(Release.tag_assignments).selectinload(ReleaseTagAssignment.tag),
        selectinload(Release.items),
    )


def _parse_cursor(cursor: str) -> datetime:
    value = parse_iso_datetime(cursor)
    if value is None:
        raise ValidationError("Invalid cursor")
    return value


def clamp_timeline_limit(limit: int | None) -> int:
    if not limit:
        return DEFAULT_TIMELINE_LIMIT
    return max(1, min(limit, MAX_TIMELINE_LIMIT))


def list_release_timeline(
    db: Session,
    *,
    session: UserSession,
    account_id: UUID | None,
    status: ReleaseStatusFilter = ReleaseStatusFilter.ALL,
    cursor: str | None = None,
    limit: int | None = None,
) -> ReleaseTimelinePage:
    """One timeline page. Fetches limit + 1 rows to decide whether more exist."""
    account_id = _resolve_account_scope(session, account_id)
    if account_id is None:
        return ReleaseTimelinePage(items=[], next_cursor=None)

    page_limit = clamp_timeline_limit(limit)
    sort_ts = func.coalesce(Release.published_at, Release.created_at)
    query = _release_query().order_by(sort_ts.desc(), Release.id.desc()).limit(page_limit + 1)

    if not session.is_admin:
        query = query.where(
            Release.status == ReleaseStatus.PUBLISHED.value,
            exists().where(
                ReleaseAccount.release_id == Release.id,
                ReleaseAccount.account_id == account_id,
            ),
        )
    elif status != ReleaseStatusFilter.ALL:
        query = query.where(Release.status == status.value)

    if cursor:
        cursor_ts = _parse_cursor(cursor)
        query = query.where(
            or_(
                Release.published_at < cursor_ts,
                and_(Release.published_at.is_(None), Release.created_at < cursor_ts),
            )
        )

    rows = list(db.scalars(query).all())
    has_more = len(rows) > page_limit
    page_rows = rows[:page_limit]

    items = [
        release
        for release in page_rows
        if can_view_release(
            is_admin=session.is_admin,
            status=release.status,
            account_ids=[scope.account_id for scope in release.accounts],
            selected_account_id=account_id,
        )
    ]

    next_cursor = None
    if has_more and page_rows:
        last = page_rows[-1]
        next_cursor = (last.published_at or last.created_at).isoformat().replace("+00:00", "Z")

    return ReleaseTimelinePage(items=items, next_cursor=next_cursor)


def get_release(db: Session, release_id: UUID) -> Release:
    release = db.scalars(_release_query().where(Release.id == release_id)).first()
    if release is None:
        raise NotFound("Release not found.")
    return release


def get_release_details(
    db: Session,
    *,
    session: UserSession,
    release_id: UUID,
    account_id: UUID | None,
) -> Release:
    account_id = _resolve_account_scope(session, account_id)
    if account_id is None and not session.is_admin:
        raise ValidationError("Account is required.")
    release = get_release(db, release_id)
    if not can_view_release(
        is_admin=session.is_admin,
        status=release.status,
        account_ids=[scope.account_id for scope in release.accounts],
        selected_account_id=account_id,
    ):
        raise Forbidden("Forbidden.")
    return release


# =============================================================================
# Drafts and publishing
# =============================================================================


def _ensure_accounts_exist(db: Session, account_ids: list[UUID]) -> list[UUID]:
    unique_ids = list(dict.fromkeys(account_ids))
    if not unique_ids:
        raise ValidationError("At least one account must be selected.")
    found = set(db.scalars(select(Account.id).where(Account.id.in_(unique_ids))).all())
    if len(found) != len(unique_ids):
        raise ValidationError("One or more accounts do not exist.")
    return unique_ids


def _ensure_tags_exist(db: Session, tag_ids: list[UUID]) -> list[UUID]:
    unique_ids = list(dict.fromkeys(tag_ids))
    if not unique_ids:
        return []
    found = set(db.scalars(select(ReleaseTag.id).where(ReleaseTag.id.in_(unique_ids))).all())
    if len(found) != len(unique_ids):
        raise ValidationError("One or more tags do not exist.")
    return unique_ids


def _require_title(title: str) -> str:
    cleaned = (title or "").strip()
    if not cleaned:
        raise ValidationError("Title is required.")
    return cleaned


def create_release_draft(
    db: Session,
    *,
    created_by_user_id: UUID | None,
    title: str,
    description: str = "",
    account_ids: list[UUID],
    tag_ids: list[UUID] | None = None,
) -> Release:
    cleaned_title = _require_title(title)
    accounts = _ensure_accounts_exist(db, account_ids)
    tags = _ensure_tags_exist(db, tag_ids or [])

    release = Release(
        title=cleaned_title,
        description=(description or "").strip(),
        status=ReleaseStatus.DRAFT.value,
        created_by_user_id=created_by_user_id,
    )
    release.accounts = [ReleaseAccount(account_id=account_id) for account_id in accounts]
    release.tag_assignments = [ReleaseTagAssignment(tag_id=tag_id) for tag_id in tags]
    db.add(release)
    db.commit()
    logger.info("Created release draft %s", release.id)
    return get_release(db, release.id)


def update_release(
    db: Session,
    *,
    release_id: UUID,
    title: str,
    description: str = "",
    account_ids: list[UUID],
    tag_ids: list[UUID] | None = None,
) -> Release:
    """Replace title, description, accounts and tags."""
    cleaned_title = _require_title(title)
    release = get_release(db, release_id)
    accounts = _ensure_accounts_exist(db, account_ids)
    tags = _ensure_tags_exist(db, tag_ids or [])

    release.title = cleaned_title
    release.description = (description or "").strip()
    release.accounts.clear()
    release.tag_assignments.clear()
    db.flush()
    release.accounts.extend(ReleaseAccount(account_id=account_id) for account_id in accounts)
    release.tag_assignments.extend(ReleaseTagAssignment(tag_id=tag_id) for tag_id in tags)
    db.commit()
    return get_release(db, release.id)


def publish_release(
    db: Session,
    *,
    release_id: UUID,
    published_at: datetime | None = None,
) -> Release:
    """DRAFT -> PUBLISHED. An already published release keeps its original date."""
    release = get_release(db, release_id)
    if release.published_at is None:
        release.published_at = published_at or utc_now()
    release.status = ReleaseStatus.PUBLISHED.value
    db.commit()
    logger.info("Published release %s", release.id)
    return get_release(db, release.id)


def delete_release_draft(db: Session, release_id: UUID) -> None:
    release = get_release(db, release_id)
    if release.status != ReleaseStatus.DRAFT.value:
        raise ValidationError("Only draft releases can be deleted.")
    db.delete(release)
    db.commit()


def delete_release(db: Session, release_id: UUID) -> None:
    release = get_release(db, release_id)
    db.delete(release)
    db.commit()
    logger.info("Deleted release %s", release_id)


# =============================================================================
# Tags
# =============================================================================


def list_release_tags(db: Session) -> list[ReleaseTag]:
    return list(db.scalars(select(ReleaseTag).order_by(ReleaseTag.name.asc())).all())


def upsert_release_tag(db: Session, name: str) -> ReleaseTag:
    cleaned = (name or "").strip()
    if not cleaned:
        raise ValidationError("Tag name is required.")
    slug = slugify_tag_name(cleaned)
    if not slug:
        raise ValidationError("Invalid tag name.")

    tag = db.scalars(select(ReleaseTag).where(ReleaseTag.slug == slug)).first()
    if tag is None:
        tag = ReleaseTag(name=cleaned, slug=slug)
        db.add(tag)
    else:
        tag.name = cleaned
    db.commit()
    db.refresh(tag)
    return tag


def delete_release_tag(db: Session, tag_id: UUID) -> None:
    tag = db.get(ReleaseTag, tag_id)
    if tag is None:
        raise NotFound("Tag not found.")
    in_use = db.scalar(
        select(func.count()).select_from(ReleaseTagAssignment).where(
            ReleaseTagAssignment.tag_id == tag_id
        )
    )
    if in_use:
        raise ValidationError("Tag is in use by one or more releases.")
    db.delete(tag)
    db.commit()


# =============================================================================
# Items
# =============================================================================


async def _snapshot_boards(
    gateway: IssueGateway, boards: list[Board]
) -> list[tuple[Board, list[IssueSnapshot]]]:
    pages = await asyncio.gather(
        *(
            gateway.list_issues(
                IssueFilter(team_id=board.team_id, project_id=board.project_id),
                first=CANDIDATE_ISSUES_PER_BOARD,
            )
            for board in boards
        )
    )
    return [(board, page.nodes) for board, page in zip(boards, pages)]


def _candidate(board: Board, issue: IssueSnapshot) -> CandidateTicket:
    return CandidateTicket(
        issue_id=issue.id,
        identifier=issue.identifier,
        title=issue.title,
        state_name=issue.state.name if issue.state else "Unknown",
        state_type=issue.state.type if issue.state else None,
        priority=issue.priority,
        board_type=board.type,
        account_id=board.account_id,
    )


async def _collect_candidates(
    db: Session, gateway: IssueGateway, account_ids: list[UUID]
) -> dict[str, CandidateTicket]:
    boards = list(
        db.scalars(
            select(Board).where(Board.account_id.in_(account_ids)).order_by(Board.created_at)
        ).all()
    )
    candidates: dict[str, CandidateTicket] = {}
    for board, issues in await _snapshot_boards(gateway, boards):
        for issue in issues:
            candidates.setdefault(issue.id, _candidate(board, issue))
    return candidates


async def get_release_candidate_tickets(
    db: Session, gateway: IssueGateway, *, account_id: UUID | None
) -> list[CandidateTicket]:
    """Issues across every board of the account, deduplicated, by identifier."""
    if not account_id:
        raise ValidationError("Account is required.")
    candidates = await _collect_candidates(db, gateway, [account_id])
    return sorted(candidates.values(), key=lambda c: c.identifier)


async def attach_release_items(
    db: Session,
    gateway: IssueGateway,
    *,
    release_id: UUID,
    issue_ids: list[str],
    account_ids: list[UUID],
) -> tuple[int, int]:
    """Snapshot the selected issues onto the release.

    Returns (attached, skipped); issues already on the release are skipped.
    """
    release = get_release(db, release_id)
    wanted = list(dict.fromkeys(i for i in issue_ids if i))
    accounts = _ensure_accounts_exist(db, account_ids)
    if not wanted:
        raise ValidationError("At least one issue must be selected.")

    candidates = await _collect_candidates(db, gateway, accounts)
    rows = [candidates[issue_id] for issue_id in wanted if issue_id in candidates]
    if not rows:
        raise ValidationError("No matching issues found for selected accounts.")

    existing = {item.issue_id for item in release.items}
    attached = 0
    for row in rows:
        if row.issue_id in existing:
            continue
        db.add(
            ReleaseItem(
                release_id=release.id,
                issue_id=row.issue_id,
                issue_identifier=row.identifier,
                title=row.title,
                state_name=row.state_name,
                state_type=row.state_type,
                priority=row.priority,
                board_type=row.board_type,
                account_id=row.account_id,
            )
        )
        attached += 1
    db.commit()
    logger.info("Attached %d items to release %s", attached, release.id)
    return attached, len(rows) - attached


def detach_release_item(db: Session, *, release_id: UUID, issue_id: str) -> None:
    item = db.scalars(
        select(ReleaseItem).where(
            ReleaseItem.release_id == release_id,
            ReleaseItem.issue_id == issue_id,
        )
    ).first()
    if item is None:
        raise NotFound("Release item not found.")
    db.delete(item)
    db.commit()
