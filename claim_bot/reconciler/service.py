"""Entry point: route one trigger to the assignment, grace and bounty handlers."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict, dataclass, field, replace
from typing import Any, Callable

from claim_bot.collaborators.bounty import BountyLedger, parse_bounty
from claim_bot.collaborators.intents import Intent, classify, is_human
from claim_bot.collaborators.notifier import ChatNotifier, NullNotifier
from claim_bot.github.github_connector import (
    GitHubConnector,
    GitHubNotFoundError,
    GitHubRequestError,
    RetryableGitHubError,
    is_pull_request,
    label_names,
)
from claim_bot.models.triggers import (
    ChangeRequestEvent,
    CommentEvent,
    ScheduledSweep,
    parse_trigger,
)
from claim_bot.reconciler.assignment import AssignmentStateMachine
from claim_bot.reconciler.context import ReconcileContext
from claim_bot.reconciler.errors import InvariantViolation
from claim_bot.reconciler.grace import GracePeriodReconciler
from claim_bot.reconciler.notices import Notice
from claim_bot.shared.clock import Clock, utc_now
from claim_bot.shared.settings import ReconcilerSettings

logger = logging.getLogger(__name__)

TriggerInput = CommentEvent | ChangeRequestEvent | ScheduledSweep | dict[str, Any]


@dataclass(frozen=True)
class ItemOutcome:
    number: int
    action: str
    reason_code: str = ""
    actions: tuple[str, ...] = ()


@dataclass
class ReconcileReport:
    trigger: str
    repo: str
    items: list[ItemOutcome] = field(default_factory=list)

    def add(self, outcome: ItemOutcome) -> None:
        self.items.append(outcome)

    @property
    def deferred(self) -> list[int]:
        return [item.number for item in self.items if item.action == "deferred"]

    @property
    def failed(self) -> list[int]:
        return [item.number for item in self.items if item.action in {"error", "needs_review"}]

    def to_dict(self) -> dict[str, Any]:
        return {
            "trigger": self.trigger,
            "repo": self.repo,
            "items": [
                {**asdict(item), "actions": list(item.actions)} for item in self.items
            ],
            "deferred": self.deferred,
            "failed": self.failed,
        }


class ReconcilerService:
    def __init__(
        self,
        connector: GitHubConnector,
        settings: ReconcilerSettings,
        *,
        clock: Clock = utc_now,
        notifier: ChatNotifier | None = None,
    ) -> None:
        if not settings.bot_login and connector.bot_login:
            settings = replace(settings, bot_login=connector.bot_login)
        self.ctx = ReconcileContext(
            connector=connector,
            settings=settings,
            clock=clock,
            notifier=notifier if notifier is not None else NullNotifier(),
        )
        self.assignments = AssignmentStateMachine(self.ctx)
        self.grace = GracePeriodReconciler(self.ctx)

    def reconcile(self, trigger: TriggerInput) -> ReconcileReport:
        """Process one trigger. Raises ``TriggerValidationError`` for a malformed payload."""
        if isinstance(trigger, dict):
            trigger = parse_trigger(trigger)
        report = ReconcileReport(trigger=trigger.kind, repo=self.ctx.repo)
        if isinstance(trigger, CommentEvent):
            self._on_comment(trigger, report)
        elif isinstance(trigger, ChangeRequestEvent):
            self._on_change_request(trigger, report)
        else:
            self.sweep(report)
        logger.info(
            "%s trigger on %s: %d item(s), %d deferred, %d failed",
            report.trigger,
            report.repo,
            len(report.items),
            len(report.deferred),
            len(report.failed),
        )
        return report

    def _on_comment(self, event: CommentEvent, report: ReconcileReport) -> None:
        bot_login = self.ctx.settings.bot_login
        if not is_human(event.actor_type) or (bot_login and event.actor == bot_login):
            report.add(ItemOutcome(event.item, "ignored", reason_code="non_human_actor"))
            return

        if parse_bounty(event.text) is not None:
            ledger = BountyLedger(
                connector=self.ctx.connector,
                repo=self.ctx.repo,
                notifier=self.ctx.notifier,
                prefix=self.ctx.settings.bounty_label_prefix,
            )
            report.add(self._guarded(event.item, lambda: self._bounty(ledger, event)))

        intent = classify(event.text)
        if intent is Intent.NOOP:
            if not report.items:
                report.add(ItemOutcome(event.item, "noop", reason_code="no_command"))
            return
        report.add(
            self._guarded(
                event.item,
                lambda: self._from_assignment(
                    self.assignments.handle_command(event.item, event.actor, intent)
                ),
            )
        )

    @staticmethod
    def _bounty(ledger: BountyLedger, event: CommentEvent) -> ItemOutcome:
        result = ledger.apply(event.item, event.actor, event.text)
        if result is None:
            return ItemOutcome(event.item, "noop", reason_code="no_bounty")
        return ItemOutcome(
            event.item,
            "bounty_added",
            reason_code=f"total={result.total}",
            actions=(f"label:{result.label}", f"comment:{result.comment_action}"),
        )

    def _on_change_request(self, event: ChangeRequestEvent, report: ReconcileReport) -> None:
        numbers = self.assignments.referenced_items(event.change_request)
        if not numbers:
            logger.info(
                "PR #%d on %s references no items", event.change_request.number, self.ctx.repo
            )
        for number in numbers:
            report.add(
                self._guarded(
                    number,
                    lambda number=number: self._from_assignment(
                        self.assignments.handle_change_request(
                            number, event.action, event.change_request
                        )
                    ),
                )
            )

    def sweep(self, report: ReconcileReport | None = None) -> ReconcileReport:
        """Check every open item; items run concurrently and fail independently."""
        report = report or ReconcileReport(trigger="sweep", repo=self.ctx.repo)
        issues = [
            issue
            for issue in self.ctx.connector.list_issues(self.ctx.repo, state="open")
            if not is_pull_request(issue)
        ]
        issues.sort(key=lambda issue: int(issue.get("number", 0) or 0))
        workers = max(1, min(self.ctx.settings.sweep_workers, len(issues) or 1))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            outcomes = list(pool.map(self._sweep_one, issues))
        for outcome in outcomes:
            report.add(outcome)
        return report

    def _sweep_one(self, issue: dict[str, Any]) -> ItemOutcome:
        number = int(issue.get("number", 0) or 0)
        if self.ctx.scheme.pending in label_names(issue):
            return self._guarded(
                number, lambda: self._from_assignment(self.grace.sweep_item(issue))
            )
        return self._guarded(
            number, lambda: self._from_assignment(self.assignments.sweep_item(issue))
        )

    @staticmethod
    def _from_assignment(outcome: Any) -> ItemOutcome:
        return ItemOutcome(
            number=outcome.number,
            action=outcome.action,
            reason_code=outcome.reason_code,
            actions=tuple(outcome.actions),
        )

    def _guarded(self, number: int, handler: Callable[[], ItemOutcome]) -> ItemOutcome:
        try:
            return handler()
        except RetryableGitHubError as exc:
            logger.warning("%s#%d deferred: %s", self.ctx.repo, number, exc)
            return ItemOutcome(number, "deferred", reason_code=exc.reason_code)
        except GitHubNotFoundError as exc:
            logger.info("%s#%d skipped: %s", self.ctx.repo, number, exc)
            return ItemOutcome(number, "skipped", reason_code=exc.reason_code)
        except InvariantViolation as exc:
            logger.error("%s#%d needs review: %s", self.ctx.repo, number, exc)
            self._flag_for_review(number, exc)
            return ItemOutcome(number, "needs_review", reason_code=exc.reason_code)
        except GitHubRequestError as exc:
            logger.error("%s#%d rejected by GitHub: %s", self.ctx.repo, number, exc)
            return ItemOutcome(number, "error", reason_code=exc.reason_code)
        except Exception as exc:
            logger.exception("unexpected failure on %s#%d", self.ctx.repo, number)
            return ItemOutcome(number, "error", reason_code=type(exc).__name__)

    def _flag_for_review(self, number: int, exc: InvariantViolation) -> None:
        try:
            self.ctx.writer(number).post_notice(
                Notice("needs_review", "", {"detail": exc.reason_code})
            )
        except (RetryableGitHubError, GitHubRequestError, GitHubNotFoundError) as post_error:
            logger.error(
                "could not post review notice on %s#%d: %s", self.ctx.repo, number, post_error
            )


def reconcile(
    trigger: TriggerInput,
    *,
    connector: GitHubConnector,
    settings: ReconcilerSettings,
    clock: Clock = utc_now,
    notifier: ChatNotifier | None = None,
) -> ReconcileReport:
    return ReconcilerService(connector, settings, clock=clock, notifier=notifier).reconcile(trigger)
