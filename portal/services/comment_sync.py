"""Portal-visible comment convention.

Comments posted through the portal carry a literal marker so they can be
told apart from comments written natively in Linear. The marker is the
join condition between the two threads; a human typing it by hand will
surface that comment in the portal too.
"""

from __future__ import annotations

import logging
import re
from typing import Iterable

from portal.core.errors import ValidationError
from portal.db.enums import TERMINAL_STATE_TYPES
from portal.services.linear_gateway import Comment, IssueGateway

logger = logging.getLogger(__name__)

SYNC_MARKER = "#sync"
_MARKER_RE = re.compile(r"#sync\s*", re.IGNORECASE)

CLOSED_TICKET_MESSAGE = "Comments are disabled for closed or canceled tickets."


def wrap(body: str) -> str:
    """Prefix the marker on its own line."""
    return f"{SYNC_MARKER}\n{body}"


def has_marker(body: str | None) -> bool:
    return bool(body) and SYNC_MARKER in body


def unwrap(body: str) -> str:
    return _MARKER_RE.sub("", body).strip()


def filter_and_unwrap(comments: Iterable[Comment]) -> list[Comment]:
    """Keep only marked comments, with the marker removed from the body."""
    return [
        Comment(
            id=c.id,
            body=unwrap(c.body),
            created_at=c.created_at,
            user_name=c.user_name,
        )
        for c in comments
        if has_marker(c.body)
    ]


def is_terminal_state(state_type: str | None) -> bool:
    return (state_type or "").strip().lower() in TERMINAL_STATE_TYPES


def ensure_comments_allowed(state_type: str | None) -> None:
    if is_terminal_state(state_type):
        raise ValidationError(CLOSED_TICKET_MESSAGE)


async def post_comment(gateway: IssueGateway, issue_id: str, body: str) -> Comment:
    """Post a marked comment after re-reading the issue's current state.

    The state is fetched here, at submit time, so a ticket closed after the
    page was rendered still rejects the comment.
    """
    text = (body or "").strip()
    if not text:
        raise ValidationError("Comment body is required.")

    state = await gateway.get_issue_state(issue_id)
    ensure_comments_allowed(state.type if state else None)

    created = await gateway.create_comment(issue_id, wrap(text))
    logger.info("Posted synced comment %s on issue %s", created.id, issue_id)
    return Comment(
        id=created.id,
        body=unwrap(created.body),
        created_at=created.created_at,
        user_name=created.user_name,
    )
