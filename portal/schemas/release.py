"""Pydantic schemas for release notes."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from portal.db.enums import ReleaseStatus


class ReleaseTagRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    slug: str


class ReleaseTagCreate(BaseModel):
    name: str = Field(..., max_length=100)


class ReleaseItemRead(BaseModel):
    """Ticket snapshot taken when the item was attached."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    issue_id: str
    issue_identifier: str
    title: str
    state_name: str
    state_type: str | None = None
    priority: int | None = None
    board_type: str
    account_id: UUID
    created_at: datetime


class ReleaseAccountRead(BaseModel):
    id: UUID
    name: str


class ReleaseTimelineItem(BaseModel):
    id: UUID
    title: str
    description: str
    status: ReleaseStatus
    published_at: datetime | None = None
    created_at: datetime
    updated_at: datetime
    accounts: list[ReleaseAccountRead]
    tags: list[ReleaseTagRead]
    item_count: int


class ReleaseTimelineResponse(BaseModel):
    items: list[ReleaseTimelineItem]
    next_cursor: str | None = None


class ReleaseRead(ReleaseTimelineItem):
    items: list[ReleaseItemRead]


class ReleaseCreate(BaseModel):
    title: str = Field(..., max_length=255)
    description: str = ""
    account_ids: list[UUID] = Field(default_factory=list)
    tag_ids: list[UUID] = Field(default_factory=list)


class ReleaseUpdate(BaseModel):
    title: str = Field(..., max_length=255)
    description: str = ""
    account_ids: list[UUID] = Field(default_factory=list)
    tag_ids: list[UUID] = Field(default_factory=list)


class ReleasePublish(BaseModel):
    # The timeline cursor is a bare timestamp: releases sharing the exact
    # published_at of a page boundary are skipped on the next page.
    published_at: datetime | None = Field(
        default=None,
        description=(
            "Used on first publish only; defaults to now. Give each release a distinct timestamp; releases "
            "sharing one at a timeline page boundary are skipped by the cursor."
        ),
    )


class CandidateTicketRead(BaseModel):
    issue_id: str
    identifier: str
    title: str
    state_name: str
    state_type: str | None = None
    priority: int | None = None
    board_type: str
    account_id: UUID


class AttachItemsRequest(BaseModel):
    issue_ids: list[str] = Field(default_factory=list)
    account_ids: list[UUID] = Field(default_factory=list)


class AttachItemsResponse(BaseModel):
    attached: int
    skipped: int
