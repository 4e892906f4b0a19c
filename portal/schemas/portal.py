"""Pydantic schemas for boards, tickets, activity and issue comments."""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, computed_field

from portal.db.enums import ActivityType, BoardView
from portal.utils.presentation import priority_label


class BoardRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    type: str
    account_id: UUID
    team_id: str
    project_id: str | None = None


class WorkflowStateRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    type: str
    color: str


class TicketRead(BaseModel):
    """Ticket snapshot as mirrored from Linear."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    identifier: str
    title: str
    description: str | None = None
    due_date: str | None = None
    url: str | None = None
    priority: int | None = None
    created_at: str | None = None
    updated_at: str | None = None
    state: WorkflowStateRead | None = None
    assignee_name: str | None = None
    project_name: str | None = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def priority_label(self) -> str:
        return priority_label(self.priority)


class PageInfoRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    has_next_page: bool
    end_cursor: str | None = None


class BoardTicketsResponse(BaseModel):
    board: BoardRead
    tickets: list[TicketRead]
    states: list[WorkflowStateRead]
    page_info: PageInfoRead
    fetched_at: datetime


class TicketCreate(BaseModel):
    title: str = Field(..., max_length=500)
    description: str = ""
    priority: int | None = Field(default=None, ge=0, le=4)
    due_date: str | None = None


class TicketCreateResponse(BaseModel):
    id: str


# =============================================================================
# Activity
# =============================================================================


class ActivityItemRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    type: ActivityType
    issue_id: str
    issue_title: str
    issue_identifier: str
    created_at: str
    body: str | None = None
    unread: bool = True


class ActivityFeedResponse(BaseModel):
    items: list[ActivityItemRead]
    since: str | None = None
    unread_count: int


class SeenStateRead(BaseModel):
    seen_ids: list[str]
    last_seen_timestamp: str | None = None


class MarkSeenRequest(BaseModel):
    item_ids: list[str] = Field(default_factory=list)


class SeenItemRef(BaseModel):
    id: str
    created_at: str


class ReadAllRequest(BaseModel):
    """Items currently visible in the feed."""
    items: list[SeenItemRef] = Field(default_factory=list)


# =============================================================================
# Issue details
# =============================================================================


class CommentRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    body: str
    created_at: str
    user_name: str | None = None


class AttachmentRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    url: str
    created_at: str
    title: str | None = None


class IssueDetailsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    issue: TicketRead
    comments: list[CommentRead]
    attachments: list[AttachmentRead]
    comments_allowed: bool


class CommentCreate(BaseModel):
    body: str = Field(..., max_length=10000)


# =============================================================================
# Preferences
# =============================================================================


class SortRuleRead(BaseModel):
    field: str
    direction: str


class BoardPreferencesRead(BaseModel):
    view: BoardView
    sort_rules: list[SortRuleRead]


class BoardPreferencesUpdate(BaseModel):
    """Raw preference payload; unknown sort fields are dropped server-side."""
    view: str | None = None
    sort_rules: list[dict[str, Any]] | None = None
