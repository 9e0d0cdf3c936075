"""Cross-item claim policy: how many claims without an open PR a contributor may hold."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from claim_bot.github.github_connector import GitHubConnector, is_pull_request
from claim_bot.reconciler.resolver import LinkedChangeResolver

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Eligibility:
    eligible: bool
    blocking: tuple[int, ...] = ()


class ClaimPolicy:
    def __init__(
        self,
        *,
        connector: GitHubConnector,
        repo: str,
        resolver: LinkedChangeResolver,
        limit_without_pr: int = 1,
    ) -> None:
        self.connector = connector
        self.repo = repo
        self.resolver = resolver
        self.limit_without_pr = max(1, int(limit_without_pr))

    def evaluate(self, actor: str, number: int) -> Eligibility:
        """Check ``actor``'s other open claims in the repository.

        An item whose links cannot be resolved counts as lacking a PR.
        """
        blocking: list[int] = []
        for issue in self.connector.list_issues(self.repo, state="open", assignee=actor):
            other = int(issue.get("number", 0) or 0)
            if other <= 0 or other == number or is_pull_request(issue):
                continue
            links = self.resolver.resolve(other)
            if links.error:
                logger.warning("links for %s#%d incomplete; counting as unlinked", self.repo, other)
            if links.error or not links.open:
                blocking.append(other)
        blocking.sort()
        eligible = len(blocking) < self.limit_without_pr
        return Eligibility(eligible=eligible, blocking=tuple(blocking) if not eligible else ())
