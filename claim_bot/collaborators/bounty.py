"""``/bounty $N`` comments: running bounty total kept in a ``$<total>`` label."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any

from claim_bot.collaborators.notifier import ChatNotifier
from claim_bot.github.github_connector import (
    GitHubConnector,
    GitHubNotFoundError,
    GitHubRequestError,
    RetryableGitHubError,
    WriteRequest,
    issue_ref,
    label_names,
    user_login,
)

logger = logging.getLogger(__name__)

BOUNTY_COMMAND_RE = re.compile(r"/bounty\s+\$(\d+)")
BOUNTY_COMMENT_TOKEN = "💰 A bounty has been added!"


def parse_bounty(text: str) -> int | None:
    match = BOUNTY_COMMAND_RE.search(text or "")
    return int(match.group(1)) if match else None


def current_bounty(labels: list[str], prefix: str = "$") -> tuple[str | None, int]:
    """First label shaped like ``<prefix><digits>`` and its amount."""
    for name in labels:
        amount = name[len(prefix) :]
        if name.startswith(prefix) and amount.isdigit():
            return name, int(amount)
    return None, 0


@dataclass(frozen=True)
class BountyResult:
    amount: int
    total: int
    label: str
    comment_action: str
    alerted: bool


class BountyLedger:
    def __init__(
        self,
        *,
        connector: GitHubConnector,
        repo: str,
        notifier: ChatNotifier,
        prefix: str = "$",
    ) -> None:
        self.connector = connector
        self.repo = repo
        self.notifier = notifier
        self.prefix = prefix

    def _write(self, operation: str, number: int, payload: dict[str, Any]) -> dict[str, Any]:
        return self.connector.execute_write(
            WriteRequest(
                operation=operation, repo=self.repo, target_ref=issue_ref(number), payload=payload
            )
        )

    def apply(self, number: int, sponsor: str, text: str) -> BountyResult | None:
        amount = parse_bounty(text)
        if amount is None:
            return None

        issue = self.connector.fetch_issue(self.repo, number)
        existing, previous = current_bounty(label_names(issue), self.prefix)
        total = previous + amount
        label = f"{self.prefix}{total}"
        try:
            if existing is not None:
                self._write("rename_label", number, {"name": existing, "new_name": label})
            else:
                self._write("add_labels", number, {"labels": [label]})
        except (RetryableGitHubError, GitHubRequestError, GitHubNotFoundError) as exc:
            logger.error("bounty label update on %s#%d failed: %s", self.repo, number, exc)

        comments = self.connector.list_comments(self.repo, number)
        sponsored = sum(
            1
            for comment in comments
            if user_login(comment) == sponsor and parse_bounty(str(comment.get("body", "")))
        )
        body = (
            f"{BOUNTY_COMMENT_TOKEN}\n\n"
            f"This issue now has a total bounty of **{self.prefix}{total}** thanks to @{sponsor}.\n"
            f"They have added **{max(1, sponsored)}** bounties to this issue so far!\n\n"
            "Want to contribute? Solve this issue and claim the reward."
        )
        bounty_comment = next(
            (c for c in comments if BOUNTY_COMMENT_TOKEN in str(c.get("body", ""))), None
        )
        comment_action = "updated" if bounty_comment is not None else "created"
        try:
            if bounty_comment is not None:
                self._write(
                    "update_comment", number, {"comment_id": bounty_comment["id"], "body": body}
                )
            else:
                self._write("create_comment", number, {"body": body})
        except (RetryableGitHubError, GitHubRequestError, GitHubNotFoundError) as exc:
            logger.error("bounty comment on %s#%d failed: %s", self.repo, number, exc)
            comment_action = "failed"

        alerted = self.notifier.notify(
            f"🚀 *Bounty Alert!*\n@{sponsor} has added a *{self.prefix}{amount}* bounty to "
            f"<https://github.com/{self.repo}/issues/{number}|#{number}>.\n"
            f"The total bounty for this issue is now *{self.prefix}{total}*.\n"
            "Contribute now and earn rewards!"
        )
        logger.info(
            "bounty on %s#%d: +%d by %s (total %d)", self.repo, number, amount, sponsor, total
        )
        return BountyResult(
            amount=amount,
            total=total,
            label=label,
            comment_action=comment_action,
            alerted=alerted,
        )
