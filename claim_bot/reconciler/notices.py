"""Notice comments posted on work items and the hidden markers they carry.

Every bot comment embeds ``<!-- claim-bot:notice kind=<kind> login=<login> -->``
so later runs can recognise their own output. The grace-period warning also
embeds the grace token naming the claimant being warned.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any

NOTICE_MARKER_RE = re.compile(
    r"<!-- claim-bot:notice kind=(?P<kind>[a-z_]+) login=(?P<login>[^\s>]*) -->"
)
GRACE_TOKEN = "<!-- claim-bot:grace-pending"
GRACE_MARKER_RE = re.compile(
    r"<!-- claim-bot:grace-pending claimant=(?P<login>[A-Za-z0-9\[\]_.-]+) -->"
)


@dataclass(frozen=True)
class Notice:
    kind: str
    login: str = ""
    context: dict[str, Any] = field(default_factory=dict, compare=False)


def _hours(value: Any) -> str:
    if isinstance(value, timedelta):
        return f"{value.total_seconds() / 3600:g}"
    return str(value)


def _days(value: Any) -> str:
    if isinstance(value, timedelta):
        return f"{value.total_seconds() / 86400:g}"
    return str(value)


def _issue_list(numbers: Any) -> str:
    return ", ".join(f"#{number}" for number in numbers)


def render_notice(notice: Notice) -> str:
    ctx = notice.context
    login = notice.login
    if notice.kind == "assigned":
        text = (
            f"Hello @{login}! You've been assigned to this issue. "
            f"You have {_hours(ctx.get('ttl', 24))} hours to open a pull request."
        )
    elif notice.kind == "already_assigned":
        text = f"@{login}, you are already assigned to this issue."
    elif notice.kind == "claimed_by_other":
        text = (
            f"@{login}, this issue is already assigned to @{ctx.get('claimant', '')}. "
            "You can ask for it once it is released."
        )
    elif notice.kind == "too_many_claims":
        text = (
            f"@{login}, you cannot be assigned to this issue because you are already "
            f"assigned to the following issues without an open pull request: "
            f"{_issue_list(ctx.get('blocking', []))}. Please submit a pull request for "
            "these issues before getting assigned to a new one."
        )
    elif notice.kind == "released":
        text = (
            f"@{login}, you have been unassigned from this issue. It's now open for "
            "others. You can reassign it anytime by typing /assign."
        )
    elif notice.kind == "stale_released":
        text = (
            f"⏰ This issue has been automatically unassigned from @{login} after "
            f"{_hours(ctx.get('ttl', 24))} hours without a pull request. The issue is "
            "now available for anyone to work on again."
        )
    elif notice.kind == "not_claimant":
        text = (
            f"@{login}, only the current assignee (@{ctx.get('claimant', '')}) can "
            "release this issue."
        )
    elif notice.kind == "grace_warning":
        text = (
            f"@{login}, your pull request #{ctx.get('pr', '')} was closed without being "
            f"merged. Open a new pull request for this issue within "
            f"{_hours(ctx.get('grace', 12))} hours to keep the assignment.\n\n"
            f"{GRACE_TOKEN} claimant={login} -->"
        )
    elif notice.kind == "grace_cancelled":
        text = (
            f"@{login}, a new pull request #{ctx.get('pr', '')} references this issue. "
            "The pending unassignment has been cancelled."
        )
    elif notice.kind == "grace_expired":
        if ctx.get("unassigned", True):
            text = (
                f"@{login} has been unassigned: no new pull request was opened within "
                f"{_hours(ctx.get('grace', 12))} hours. The issue is open for others."
            )
        else:
            text = (
                "The pending unassignment expired; "
                f"@{login} was no longer assigned, so nothing else changed."
            )
    elif notice.kind == "takeover":
        text = (
            f"@{login} has taken over this issue from "
            f"{', '.join('@' + name for name in ctx.get('previous', []))}: every linked pull "
            f"request had been inactive for more than {_days(ctx.get('threshold', 60))} days."
        )
    elif notice.kind == "takeover_failed":
        text = (
            f"@{login}, the takeover of this issue failed partway and was rolled back. "
            f"{', '.join('@' + name for name in ctx.get('previous', []))} remains assigned."
        )
    elif notice.kind == "manual_intervention":
        text = (
            "⚠️ Manual intervention required: an assignment change on this issue failed "
            f"and could not be rolled back ({ctx.get('detail', 'unknown error')}). "
            f"Intended assignee: @{login}; previous: "
            f"{', '.join('@' + name for name in ctx.get('previous', [])) or 'none'}."
        )
    elif notice.kind == "needs_review":
        text = (
            "⚠️ This issue's assignment state is inconsistent and was left untouched "
            f"for a maintainer to review ({ctx.get('detail', '')})."
        )
    else:
        raise ValueError(f"unknown notice kind: {notice.kind}")
    return f"{text}\n\n<!-- claim-bot:notice kind={notice.kind} login={login} -->"


def notice_marker(body: str) -> tuple[str, str] | None:
    match = NOTICE_MARKER_RE.search(body or "")
    if match is None:
        return None
    return match.group("kind"), match.group("login")


def grace_claimant(body: str) -> str | None:
    match = GRACE_MARKER_RE.search(body or "")
    return match.group("login") if match else None


def is_bot_comment(comment: dict[str, Any], bot_login: str = "") -> bool:
    """Whether ``comment`` was written by the bot account.

    With a known ``bot_login`` only that account counts; otherwise any
    ``Bot``-typed user does.
    """
    user = comment.get("user")
    if not isinstance(user, dict):
        return False
    if bot_login:
        return str(user.get("login", "")).lower() == bot_login.lower()
    return str(user.get("type", "")) == "Bot"


def newest_first(comments: list[dict[str, Any]]) -> list[dict[str, Any]]:
    return sorted(
        comments,
        key=lambda comment: (str(comment.get("created_at", "")), int(comment.get("id", 0) or 0)),
        reverse=True,
    )


def find_grace_marker(
    comments: list[dict[str, Any]], bot_login: str = ""
) -> dict[str, Any] | None:
    """Newest bot comment carrying the grace token, or None."""
    for comment in newest_first(comments):
        if is_bot_comment(comment, bot_login) and GRACE_TOKEN in str(comment.get("body", "")):
            return comment
    return None


def latest_notice(comments: list[dict[str, Any]], bot_login: str = "") -> tuple[str, str] | None:
    for comment in newest_first(comments):
        if not is_bot_comment(comment, bot_login):
            continue
        marker = notice_marker(str(comment.get("body", "")))
        if marker is not None:
            return marker
    return None
