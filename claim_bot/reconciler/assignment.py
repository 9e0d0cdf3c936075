"""Assignment state machine: claim and release commands, PR events, stale claims."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from claim_bot.collaborators.intents import Intent
from claim_bot.github.github_connector import is_pull_request
from claim_bot.github.references import parse_issue_mentions
from claim_bot.models.triggers import ChangeRequest
from claim_bot.reconciler.context import ReconcileContext
from claim_bot.reconciler.grace import GracePeriodReconciler
from claim_bot.reconciler.mutations import apply_transition
from claim_bot.reconciler.projection import (
    ClaimRequested,
    ClaimState,
    ItemSnapshot,
    ReleaseRequested,
    heal,
    project_state,
    transition,
)
from claim_bot.reconciler.staleness import claimed_at, is_stale
from claim_bot.reconciler.takeover import TakeoverTransaction, links_stale

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AssignmentOutcome:
    number: int
    action: str
    reason_code: str = ""
    actions: tuple[str, ...] = ()


class AssignmentStateMachine:
    def __init__(self, ctx: ReconcileContext) -> None:
        self.ctx = ctx
        self.grace = GracePeriodReconciler(ctx)

    def _snapshot(self, number: int) -> ItemSnapshot | None:
        issue = self.ctx.connector.fetch_issue(self.ctx.repo, number)
        if is_pull_request(issue):
            return None
        return ItemSnapshot.from_issue(issue)

    def handle_command(self, number: int, actor: str, intent: Intent) -> AssignmentOutcome:
        if intent is Intent.NOOP:
            return AssignmentOutcome(number, "noop", reason_code="no_command")
        snapshot = self._snapshot(number)
        if snapshot is None:
            return AssignmentOutcome(number, "noop", reason_code="not_an_issue")
        if not snapshot.is_open:
            return AssignmentOutcome(number, "noop", reason_code="item_closed")
        healed: list[str] = []
        snapshot = self._heal(snapshot, healed)
        state = project_state(snapshot, self.ctx.scheme)

        if intent is Intent.CLAIM:
            event = self._claim_event(snapshot, state, actor)
        else:
            event = ReleaseRequested(actor=actor)
        change = transition(
            state, snapshot, event, self.ctx.scheme, context=self.ctx.notice_context
        )

        if change.delegate == "takeover":
            result = TakeoverTransaction(self.ctx).run(snapshot, actor)
            return AssignmentOutcome(
                number,
                f"takeover_{result.status}",
                reason_code=result.reason_code,
                actions=tuple(healed),
            )

        actions = healed + apply_transition(self.ctx.writer(number), change)
        if change.state is state and not change.mutates:
            kinds = ",".join(notice.kind for notice in change.notices)
            action = "unchanged" if kinds else ("healed" if healed else "noop")
            return AssignmentOutcome(number, action, kinds, tuple(actions))
        return AssignmentOutcome(number, change.state.value, actions=tuple(actions))

    def _heal(self, snapshot: ItemSnapshot, actions: list[str]) -> ItemSnapshot:
        """Repair label drift and return the snapshot as it now stands."""
        repair = heal(snapshot, self.ctx.scheme)
        if not repair.mutates:
            return snapshot
        logger.warning("healing state labels on %s#%d", self.ctx.repo, snapshot.number)
        actions.extend(apply_transition(self.ctx.writer(snapshot.number), repair))
        return ItemSnapshot(
            number=snapshot.number,
            is_open=snapshot.is_open,
            labels=(snapshot.labels - set(repair.remove_labels)) | set(repair.add_labels),
            assignees=snapshot.assignees,
        )

    def _claim_event(
        self, snapshot: ItemSnapshot, state: ClaimState, actor: str
    ) -> ClaimRequested:
        if state is ClaimState.UNCLAIMED:
            eligibility = self.ctx.policy().evaluate(actor, snapshot.number)
            return ClaimRequested(actor=actor, blocking=eligibility.blocking)
        if state is ClaimState.CLAIMED and actor not in snapshot.assignees:
            links = self.ctx.resolver().resolve(snapshot.number)
            stale = links_stale(links, self.ctx.settings.takeover_threshold)
            return ClaimRequested(actor=actor, claimant_links_stale=stale)
        return ClaimRequested(actor=actor)

    def referenced_items(self, change_request: ChangeRequest) -> list[int]:
        numbers = parse_issue_mentions(change_request.body, self.ctx.repo)
        numbers.discard(change_request.number)
        return sorted(numbers)

    def handle_change_request(
        self, number: int, action: str, change_request: ChangeRequest
    ) -> AssignmentOutcome:
        snapshot = self._snapshot(number)
        if snapshot is None:
            return AssignmentOutcome(number, "noop", reason_code="not_an_issue")
        if action == "closed":
            outcome = self.grace.open(
                snapshot,
                pr_number=change_request.number,
                author=change_request.author,
                merged=change_request.merged,
            )
        else:
            outcome = self.grace.cancel(
                snapshot, pr_number=change_request.number, author=change_request.author
            )
        return AssignmentOutcome(number, outcome.action, outcome.reason_code, outcome.actions)

    def sweep_item(self, issue: dict[str, Any]) -> AssignmentOutcome:
        """Heal label drift and release a claim that went stale without an open PR."""
        snapshot = ItemSnapshot.from_issue(issue)
        number = snapshot.number
        actions: list[str] = []

        snapshot = self._heal(snapshot, actions)
        state = project_state(snapshot, self.ctx.scheme)
        if state is not ClaimState.CLAIMED or not snapshot.assignees:
            action = "healed" if actions else "noop"
            return AssignmentOutcome(number, action, actions=tuple(actions))

        claimant = snapshot.claimant
        timeline = self.ctx.connector.list_timeline(self.ctx.repo, number)
        started = claimed_at(timeline, claimant)
        if started is None:
            logger.info("no assignment event for %s on %s#%d", claimant, self.ctx.repo, number)
            return AssignmentOutcome(number, "noop", "claim_time_unknown", tuple(actions))
        if not is_stale(started, self.ctx.settings.claim_ttl, self.ctx.clock()):
            return AssignmentOutcome(number, "fresh", actions=tuple(actions))

        links = self.ctx.resolver().resolve(number)
        if links.error:
            return AssignmentOutcome(number, "deferred", "links_incomplete", tuple(actions))
        if links.open:
            return AssignmentOutcome(number, "has_open_pr", actions=tuple(actions))

        change = transition(
            state,
            snapshot,
            ReleaseRequested(actor=claimant, timed_out=True),
            self.ctx.scheme,
            context=self.ctx.notice_context,
        )
        actions.extend(apply_transition(self.ctx.writer(number), change))
        logger.info("released stale claim of %s on %s#%d", claimant, self.ctx.repo, number)
        return AssignmentOutcome(number, "stale_released", actions=tuple(actions))
