"""Enum definitions for application constants."""

from enum import Enum


class Role(str, Enum):
    """
    Portal roles.

    - VIEWER: customer user, scoped to the boards and releases of one account
    - ADMIN: support staff, sees every account, drafts and writes to Linear
    """

    VIEWER = "viewer"
    ADMIN = "admin"

    @classmethod
    def has_value(cls, value: str) -> bool:
        """Check if value is a valid role."""
        return value in cls._value2member_map_


class BoardType(str, Enum):
    """Board flavour. PROJECT boards are read-only mirrors."""

    SUPPORT = "SUPPORT"
    PROJECT = "PROJECT"


class BoardView(str, Enum):
    TABLE = "table"
    KANBAN = "kanban"


class SortField(str, Enum):
    CREATED_AT = "createdAt"
    UPDATED_AT = "updatedAt"
    PRIORITY = "priority"
    TITLE = "title"
    OWNER = "owner"
    STATE = "state"


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"


class ReleaseStatus(str, Enum):
    """Release lifecycle. DRAFT -> PUBLISHED is one-way."""

    DRAFT = "DRAFT"
    PUBLISHED = "PUBLISHED"


class ReleaseStatusFilter(str, Enum):
    ALL = "ALL"
    DRAFT = "DRAFT"
    PUBLISHED = "PUBLISHED"


class ActivityType(str, Enum):
    UPDATE = "update"
    COMMENT = "comment"


class WorkflowStateType(str, Enum):
    """Linear workflow state classification."""

    TRIAGE = "triage"
    BACKLOG = "backlog"
    UNSTARTED = "unstarted"
    STARTED = "started"
    COMPLETED = "completed"
    CANCELED = "canceled"


# States that no longer accept portal comments
TERMINAL_STATE_TYPES = frozenset(
    {WorkflowStateType.COMPLETED.value, WorkflowStateType.CANCELED.value}
)
