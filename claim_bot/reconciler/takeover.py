"""Takeover of a claim whose linked pull requests have all gone stale.

The swap runs as a short saga. Each step has an inverse; when a step fails,
the inverses of that step and every completed step run once each, newest
first. Inverses are idempotent tracker writes, so undoing a step that only
half-applied is safe.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Callable

from claim_bot.reconciler.context import ReconcileContext
from claim_bot.reconciler.notices import Notice, render_notice
from claim_bot.reconciler.projection import ItemSnapshot
from claim_bot.reconciler.resolver import ResolvedLinks

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SagaStep:
    name: str
    action: Callable[[], object]
    compensate: Callable[[], object]


@dataclass(frozen=True)
class TakeoverResult:
    status: str
    reason_code: str = ""
    previous: tuple[str, ...] = ()
    failed_step: str = ""


def links_stale(links: ResolvedLinks, threshold: timedelta) -> bool:
    """True when the item has linked PRs and every one is older than ``threshold``."""
    if links.error or not links.all:
        return False
    return all(pr.age > threshold for pr in links.all)


class TakeoverTransaction:
    def __init__(self, ctx: ReconcileContext) -> None:
        self.ctx = ctx

    def run(self, snapshot: ItemSnapshot, new_claimant: str) -> TakeoverResult:
        number = snapshot.number
        writer = self.ctx.writer(number)
        previous = tuple(snapshot.assignees)

        eligibility = self.ctx.policy().evaluate(new_claimant, number)
        if not eligibility.eligible:
            writer.post_notice(
                Notice("too_many_claims", new_claimant, {"blocking": list(eligibility.blocking)})
            )
            return TakeoverResult(status="ineligible", reason_code="too_many_claims")

        label = self.ctx.scheme.claimed
        notice = Notice(
            "takeover",
            new_claimant,
            {"previous": list(previous), "threshold": self.ctx.settings.takeover_threshold},
        )
        steps = [
            SagaStep(
                "remove_assignees",
                lambda: writer.remove_assignees(previous),
                lambda: writer.add_assignees(previous),
            ),
            SagaStep(
                "remove_label",
                lambda: writer.remove_label(label),
                lambda: writer.add_labels((label,)),
            ),
            SagaStep(
                "add_assignee",
                lambda: writer.add_assignees((new_claimant,)),
                lambda: writer.remove_assignees((new_claimant,)),
            ),
            SagaStep(
                "add_label",
                lambda: writer.add_labels((label,)),
                lambda: writer.remove_label(label),
            ),
            SagaStep(
                "notice",
                lambda: writer.create_comment(render_notice(notice)),
                lambda: None,
            ),
        ]

        completed: list[SagaStep] = []
        for step in steps:
            try:
                step.action()
            except Exception as exc:
                logger.exception(
                    "takeover of %s#%d failed at %s", self.ctx.repo, number, step.name
                )
                return self._roll_back(
                    number, new_claimant, previous, failed=step, completed=completed, error=exc
                )
            completed.append(step)

        logger.info(
            "takeover of %s#%d: %s -> %s", self.ctx.repo, number, ",".join(previous), new_claimant
        )
        return TakeoverResult(status="completed", previous=previous)

    def _roll_back(
        self,
        number: int,
        new_claimant: str,
        previous: tuple[str, ...],
        *,
        failed: SagaStep,
        completed: list[SagaStep],
        error: Exception,
    ) -> TakeoverResult:
        compensation_errors: list[str] = []
        for step in [failed] + list(reversed(completed)):
            try:
                step.compensate()
            except Exception as exc:
                logger.exception(
                    "compensation %s for %s#%d failed", step.name, self.ctx.repo, number
                )
                compensation_errors.append(f"{step.name}: {exc}")

        if not compensation_errors:
            self._post(
                number,
                Notice("takeover_failed", new_claimant, {"previous": list(previous)}),
            )
            return TakeoverResult(
                status="rolled_back",
                reason_code=getattr(error, "reason_code", "takeover_step_failed"),
                previous=previous,
                failed_step=failed.name,
            )

        detail = f"takeover failed at {failed.name}; undo failed at " + "; ".join(
            compensation_errors
        )
        self._post(
            number,
            Notice(
                "manual_intervention",
                new_claimant,
                {"previous": list(previous), "detail": detail},
            ),
        )
        self.ctx.notifier.notify(
            f"Manual intervention required on {self.ctx.repo}#{number}: {detail}"
        )
        return TakeoverResult(
            status="manual_intervention",
            reason_code="compensation_failed",
            previous=previous,
            failed_step=failed.name,
        )

    def _post(self, number: int, notice: Notice) -> None:
        try:
            self.ctx.writer(number).create_comment(render_notice(notice))
        except Exception:
            logger.exception(
                "could not post %s notice on %s#%d", notice.kind, self.ctx.repo, number
            )
