"""Claim staleness evaluation anchored on the assignment event."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any

from claim_bot.shared.clock import parse_timestamp


def is_stale(reference_time: datetime, threshold: timedelta, now: datetime) -> bool:
    """True once strictly more than ``threshold`` has passed since ``reference_time``."""
    return now - reference_time > threshold


def claimed_at(timeline: list[dict[str, Any]], login: str) -> datetime | None:
    """Timestamp of the latest ``assigned`` event for ``login``.

    Never falls back to the item's ``updated_at``.
    """
    latest: datetime | None = None
    for event in timeline:
        if event.get("event") != "assigned":
            continue
        assignee = event.get("assignee") or {}
        if str(assignee.get("login", "")) != login:
            continue
        created = parse_timestamp(event.get("created_at"))
        if created is not None and (latest is None or created > latest):
            latest = created
    return latest
