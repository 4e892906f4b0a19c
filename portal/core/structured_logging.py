"""Structured logging helpers (secret-safe)."""

from typing import Any


def build_log_context(
    *,
    user_id: str | None = None,
    board_id: str | None = None,
    account_id: str | None = None,
    request_id: str | None = None,
    route: str | None = None,
    method: str | None = None,
) -> dict[str, Any]:
    """Return a log context dict that never carries credentials or bodies."""
    context: dict[str, Any] = {}
    if user_id:
        context["user_id"] = user_id
    if board_id:
        context["board_id"] = board_id
    if account_id:
        context["account_id"] = account_id
    if request_id:
        context["request_id"] = request_id
    if route:
        context["route"] = route
    if method:
        context["method"] = method
    return context
