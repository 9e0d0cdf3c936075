"""Comment text to claim/release intent."""

from __future__ import annotations

from enum import Enum

ASSIGN_KEYWORDS = (
    "/assign",
    "assign to me",
    "assign this to me",
    "assign it to me",
    "assign me this",
    "work on this",
    "i can try fixing this",
    "i am interested in doing this",
    "be assigned this",
    "i am interested in contributing",
)
UNASSIGN_PREFIXES = ("/unassign",)
HUMAN_USER_TYPES = {"User", "Mannequin"}


class Intent(str, Enum):
    CLAIM = "claim"
    RELEASE = "release"
    NOOP = "noop"


def classify(text: str) -> Intent:
    body = (text or "").strip().lower()
    if body.startswith(UNASSIGN_PREFIXES):
        return Intent.RELEASE
    if any(keyword in body for keyword in ASSIGN_KEYWORDS):
        return Intent.CLAIM
    return Intent.NOOP


def is_human(user_type: str) -> bool:
    """Users and Mannequins (imported accounts) count as people; bots do not."""
    return user_type in HUMAN_USER_TYPES
