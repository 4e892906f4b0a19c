"""SQLAlchemy ORM models for accounts, boards, activity state and releases."""

import uuid
from datetime import datetime

from sqlalchemy import (
    JSON, Boolean, ForeignKey, Index, Integer, String, Text, UniqueConstraint, Uuid
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from portal.db.base import Base
from portal.db.enums import BoardView, ReleaseStatus, Role
from portal.db.types import utc_now


# =============================================================================
# Accounts, Users & Boards
# =============================================================================

class Account(Base):
    """A customer company. Boards and releases are scoped to accounts."""
    __tablename__ = "accounts"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(default=utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=utc_now, onupdate=utc_now, nullable=False
    )

    boards: Mapped[list["Board"]] = relationship(back_populates="account")
    users: Mapped[list["User"]] = relationship(back_populates="account")


class User(Base):
    """
    Portal user.

    Viewers belong to exactly one account; admins may have none.
    token_version is bumped to revoke every outstanding session.
    """
    __tablename__ = "users"
    __table_args__ = (
        Index("idx_users_account_id", "account_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(String(50), default=Role.VIEWER.value, nullable=False)
    account_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("accounts.id", ondelete="SET NULL"), nullable=True
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    token_version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    created_at: Mapped[datetime] = mapped_column(default=utc_now, nullable=False)

    account: Mapped["Account"] = relationship(back_populates="users")


class Board(Base):
    """
    Account-scoped view over one Linear team (and optionally one project).

    The team/project binding is edited by admins elsewhere; this service
    only reads it.
    """
    __tablename__ = "boards"
    __table_args__ = (
        Index("idx_boards_account_id", "account_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    account_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False
    )
    team_id: Mapped[str] = mapped_column(String(100), nullable=False)
    project_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=utc_now, onupdate=utc_now, nullable=False
    )

    account: Mapped["Account"] = relationship(back_populates="boards")


class BoardPreference(Base):
    """Per (user, board) view mode and sort rules."""
    __tablename__ = "board_preferences"
    __table_args__ = (
        UniqueConstraint("user_id", "board_id", name="uq_board_pref_user_board"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    board_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("boards.id", ondelete="CASCADE"), nullable=False
    )
    view: Mapped[str] = mapped_column(String(20), default=BoardView.KANBAN.value, nullable=False)
    sort_rules: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=utc_now, onupdate=utc_now, nullable=False
    )


# =============================================================================
# Activity seen state
# =============================================================================

class ActivitySeenItem(Base):
    """One activity item id a user has seen on a board. Rows are never removed."""
    __tablename__ = "activity_seen_items"
    __table_args__ = (
        UniqueConstraint("user_id", "board_id", "item_id", name="uq_activity_seen_item"),
        Index("idx_activity_seen_user_board", "user_id", "board_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    board_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("boards.id", ondelete="CASCADE"), nullable=False
    )
    item_id: Mapped[str] = mapped_column(String(255), nullable=False)
    seen_at: Mapped[datetime] = mapped_column(default=utc_now, nullable=False)


class ActivityWatermark(Base):
    """Latest createdAt a user explicitly marked seen on a board."""
    __tablename__ = "activity_watermarks"

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    board_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("boards.id", ondelete="CASCADE"), primary_key=True
    )
    last_seen_at: Mapped[datetime] = mapped_column(nullable=False)


# =============================================================================
# Releases
# =============================================================================

class Release(Base):
    """
    Release note.

    published_at is set once on DRAFT -> PUBLISHED and never cleared.
    """
    __tablename__ = "releases"
    __table_args__ = (
        Index("idx_releases_timeline", "published_at", "created_at"),
        Index("idx_releases_status", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, default="", nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default=ReleaseStatus.DRAFT.value, nullable=False
    )
    published_at: Mapped[datetime | None] = mapped_column(nullable=True)
    created_by_user_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(default=utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=utc_now, onupdate=utc_now, nullable=False
    )

    accounts: Mapped[list["ReleaseAccount"]] = relationship(
        back_populates="release", cascade="all, delete-orphan"
    )
    tag_assignments: Mapped[list["ReleaseTagAssignment"]] = relationship(
        back_populates="release", cascade="all, delete-orphan"
    )
    items: Mapped[list["ReleaseItem"]] = relationship(
        back_populates="release",
        cascade="all, delete-orphan",
        order_by="ReleaseItem.created_at.desc()",
    )


class ReleaseAccount(Base):
    """Account a release is visible to."""
    __tablename__ = "release_accounts"

    release_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("releases.id", ondelete="CASCADE"), primary_key=True
    )
    account_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("accounts.id", ondelete="CASCADE"), primary_key=True
    )

    release: Mapped["Release"] = relationship(back_populates="accounts")
    account: Mapped["Account"] = relationship()


class ReleaseTag(Base):
    __tablename__ = "release_tags"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    slug: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(default=utc_now, nullable=False)


class ReleaseTagAssignment(Base):
    __tablename__ = "release_tag_assignments"

    release_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("releases.id", ondelete="CASCADE"), primary_key=True
    )
    tag_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("release_tags.id", ondelete="CASCADE"), primary_key=True
    )

    release: Mapped["Release"] = relationship(back_populates="tag_assignments")
    tag: Mapped["ReleaseTag"] = relationship()


class ReleaseItem(Base):
    """
    Point-in-time snapshot of a Linear issue attached to a release.

    Not kept in sync with Linear after attachment.
    """
    __tablename__ = "release_items"
    __table_args__ = (
        UniqueConstraint("release_id", "issue_id", name="uq_release_item_issue"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    release_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("releases.id", ondelete="CASCADE"), nullable=False
    )
    issue_id: Mapped[str] = mapped_column(String(100), nullable=False)
    issue_identifier: Mapped[str] = mapped_column(String(50), nullable=False)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    state_name: Mapped[str] = mapped_column(String(100), nullable=False)
    state_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    priority: Mapped[int | None] = mapped_column(Integer, nullable=True)
    board_type: Mapped[str] = mapped_column(String(20), nullable=False)
    account_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(default=utc_now, nullable=False)

    release: Mapped["Release"] = relationship(back_populates="items")
