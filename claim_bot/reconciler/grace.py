"""Grace period after a claimant's linked pull request closes unmerged.

Durable state is the pending label plus a marker comment that names the
claimant. The window is measured from the marker comment's creation time, so
sweeps may run at any cadence.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from claim_bot.reconciler.context import ReconcileContext
from claim_bot.reconciler.errors import InvariantViolation
from claim_bot.reconciler.mutations import apply_transition
from claim_bot.reconciler.notices import find_grace_marker, grace_claimant
from claim_bot.reconciler.projection import (
    ClaimState,
    GraceExpired,
    ItemSnapshot,
    LinkedChangeClosed,
    LinkedChangeOpened,
    project_state,
    transition,
)
from claim_bot.shared.clock import parse_timestamp

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GraceOutcome:
    number: int
    action: str
    reason_code: str = ""
    actions: tuple[str, ...] = ()


class GracePeriodReconciler:
    def __init__(self, ctx: ReconcileContext) -> None:
        self.ctx = ctx

    def open(
        self, snapshot: ItemSnapshot, pr_number: int, author: str, merged: bool
    ) -> GraceOutcome:
        state = project_state(snapshot, self.ctx.scheme)
        change = transition(
            state,
            snapshot,
            LinkedChangeClosed(author=author, pr_number=pr_number, merged=merged),
            self.ctx.scheme,
            context=self.ctx.notice_context,
        )
        if change.delegate != "grace":
            return GraceOutcome(snapshot.number, "noop", reason_code=f"state_{state.value}")
        actions = apply_transition(self.ctx.writer(snapshot.number), change)
        logger.info(
            "grace window opened on %s#%d for %s after PR #%d closed",
            self.ctx.repo,
            snapshot.number,
            author,
            pr_number,
        )
        return GraceOutcome(snapshot.number, "grace_opened", actions=tuple(actions))

    def cancel(self, snapshot: ItemSnapshot, pr_number: int, author: str) -> GraceOutcome:
        state = project_state(snapshot, self.ctx.scheme)
        change = transition(
            state,
            snapshot,
            LinkedChangeOpened(author=author, pr_number=pr_number),
            self.ctx.scheme,
            context=self.ctx.notice_context,
        )
        if not change.mutates:
            return GraceOutcome(snapshot.number, "noop", reason_code=f"state_{state.value}")
        actions = apply_transition(self.ctx.writer(snapshot.number), change)
        return GraceOutcome(snapshot.number, "grace_cancelled", actions=tuple(actions))

    def sweep_item(self, issue: dict[str, Any]) -> GraceOutcome:
        snapshot = ItemSnapshot.from_issue(issue)
        number = snapshot.number
        state = project_state(snapshot, self.ctx.scheme)
        if state is not ClaimState.PENDING_RELEASE:
            return GraceOutcome(number, "noop", reason_code=f"state_{state.value}")

        writer = self.ctx.writer(number)
        marker = find_grace_marker(writer.list_comments(), writer.bot_login)
        if marker is None:
            logger.warning(
                "%s#%d has %s but no marker comment; removing label",
                self.ctx.repo,
                number,
                self.ctx.scheme.pending,
            )
            writer.remove_label(self.ctx.scheme.pending)
            return GraceOutcome(number, "marker_missing", reason_code="grace_marker_missing")

        started = parse_timestamp(marker.get("created_at"))
        if started is None:
            raise InvariantViolation(
                "grace marker comment has no creation time",
                reason_code="grace_marker_unparseable",
                number=number,
            )
        elapsed = self.ctx.clock() - started
        if elapsed < self.ctx.settings.grace_window:
            return GraceOutcome(number, "waiting")

        links = self.ctx.resolver().resolve(number)
        if links.error:
            return GraceOutcome(number, "deferred", reason_code="links_incomplete")

        claimant = grace_claimant(str(marker.get("body", "")))
        if links.open:
            event = GraceExpired(
                claimant=claimant or snapshot.claimant, open_pr=links.open[0].number
            )
            action = "grace_cancelled"
        elif not claimant:
            raise InvariantViolation(
                "grace marker comment does not name the original claimant",
                reason_code="grace_claimant_missing",
                number=number,
            )
        else:
            event = GraceExpired(claimant=claimant)
            action = "grace_expired"

        change = transition(
            state, snapshot, event, self.ctx.scheme, context=self.ctx.notice_context
        )
        actions = apply_transition(writer, change)
        logger.info("%s on %s#%d after %s", action, self.ctx.repo, number, elapsed)
        return GraceOutcome(number, action, actions=tuple(actions))
