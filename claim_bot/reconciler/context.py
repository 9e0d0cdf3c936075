"""Per-invocation wiring shared by the reconciler components."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from claim_bot.collaborators.notifier import ChatNotifier, NullNotifier
from claim_bot.github.github_connector import GitHubConnector
from claim_bot.reconciler.eligibility import ClaimPolicy
from claim_bot.reconciler.mutations import ItemWriter
from claim_bot.reconciler.projection import LabelScheme
from claim_bot.reconciler.resolver import LinkedChangeResolver
from claim_bot.shared.clock import Clock, utc_now
from claim_bot.shared.settings import ReconcilerSettings


@dataclass(frozen=True)
class ReconcileContext:
    connector: GitHubConnector
    settings: ReconcilerSettings
    clock: Clock = utc_now
    notifier: ChatNotifier = field(default_factory=NullNotifier)

    @property
    def repo(self) -> str:
        return self.settings.repo

    @property
    def scheme(self) -> LabelScheme:
        return LabelScheme(claimed=self.settings.claimed_label, pending=self.settings.pending_label)

    @property
    def notice_context(self) -> dict[str, Any]:
        return {"ttl": self.settings.claim_ttl, "grace": self.settings.grace_window}

    def writer(self, number: int) -> ItemWriter:
        return ItemWriter(
            connector=self.connector,
            repo=self.repo,
            number=number,
            bot_login=self.settings.bot_login,
        )

    def resolver(self) -> LinkedChangeResolver:
        return LinkedChangeResolver(connector=self.connector, repo=self.repo, clock=self.clock)

    def policy(self) -> ClaimPolicy:
        return ClaimPolicy(
            connector=self.connector,
            repo=self.repo,
            resolver=self.resolver(),
            limit_without_pr=self.settings.claim_limit_without_pr,
        )
