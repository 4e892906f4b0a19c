"""Presentation helpers for workflow states and Linear priorities.

Workflow state names come from the support team's Linear workspace and are
mixed Spanish/English, so ordering matches on accent- and case-insensitive
names rather than on Linear's own position field.
"""

from __future__ import annotations

import unicodedata
from typing import Iterable, TypeVar

UNKNOWN_PHASE = 999

PHASE_ORDER: dict[str, int] = {
    "nuevo": 0,
    "planned": 1,
    "planeado": 1,
    "en progreso": 2,
    "in progress": 2,
    "escalado": 3,
    "resuelto": 4,
    "cerrado": 5,
    "cancelado": 6,
}

PRIORITY_LABELS: dict[int, str] = {
    0: "No priority",
    1: "Urgent",
    2: "High",
    3: "Medium",
    4: "Low",
}

T = TypeVar("T")


def normalize_state_name(name: str | None) -> str:
    """Lowercase, strip accents and collapse whitespace."""
    if not name:
        return ""
    decomposed = unicodedata.normalize("NFD", name)
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return " ".join(stripped.lower().split())


def phase_rank(name: str | None) -> int:
    return PHASE_ORDER.get(normalize_state_name(name), UNKNOWN_PHASE)


def order_workflow_states(states: Iterable[T]) -> list[T]:
    """Sort states by support phase; unknown names go last, ordered by name.

    Accepts any objects exposing a ``name`` attribute.
    """
    return sorted(
        states,
        key=lambda s: (phase_rank(s.name), normalize_state_name(s.name)),
    )


def priority_label(priority: int | None) -> str:
    if not priority:
        return PRIORITY_LABELS[0]
    return PRIORITY_LABELS.get(priority, PRIORITY_LABELS[4])


def compare_priority(a: int | None, b: int | None, direction: str = "asc") -> int:
    """Three-way compare of Linear priorities.

    Ascending puts Urgent (1) first and keeps "No priority" (0) last.
    Descending is the plain numeric reverse.
    """
    pa = a or 0
    pb = b or 0
    if direction == "desc":
        return pb - pa
    if pa == 0 and pb == 0:
        return 0
    if pa == 0:
        return 1
    if pb == 0:
        return -1
    return pa - pb
