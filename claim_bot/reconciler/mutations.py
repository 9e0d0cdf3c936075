"""Apply projected transitions to a work item through the connector."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from claim_bot.github.github_connector import GitHubConnector, WriteRequest, issue_ref
from claim_bot.reconciler.notices import (
    Notice,
    find_grace_marker,
    latest_notice,
    render_notice,
)
from claim_bot.reconciler.projection import Transition

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ItemWriter:
    """Write operations scoped to one work item."""

    connector: GitHubConnector
    repo: str
    number: int
    bot_login: str = ""

    def _write(
        self, operation: str, payload: dict[str, Any], target_ref: str = ""
    ) -> dict[str, Any]:
        result = self.connector.execute_write(
            WriteRequest(
                operation=operation,
                repo=self.repo,
                target_ref=target_ref or issue_ref(self.number),
                payload=payload,
            )
        )
        logger.info(
            "%s on %s#%d: %s", operation, self.repo, self.number, result.get("status", "applied")
        )
        return result

    def add_assignees(self, logins: tuple[str, ...] | list[str]) -> None:
        if logins:
            self._write("add_assignees", {"assignees": list(logins)})

    def remove_assignees(self, logins: tuple[str, ...] | list[str]) -> None:
        if logins:
            self._write("remove_assignees", {"assignees": list(logins)})

    def add_labels(self, labels: tuple[str, ...] | list[str]) -> None:
        if labels:
            self._write("add_labels", {"labels": list(labels)})

    def remove_label(self, name: str) -> None:
        self._write("remove_label", {"name": name})

    def create_comment(self, body: str) -> dict[str, Any]:
        result = self._write("create_comment", {"body": body})
        return result.get("comment") or {}

    def update_comment(self, comment_id: int, body: str) -> None:
        self._write("update_comment", {"comment_id": comment_id, "body": body})

    def delete_comment(self, comment_id: int) -> None:
        self._write("delete_comment", {"comment_id": comment_id})

    def list_comments(self) -> list[dict[str, Any]]:
        return self.connector.list_comments(self.repo, self.number)

    def post_notice(
        self,
        notice: Notice,
        comments: list[dict[str, Any]] | None = None,
    ) -> dict[str, Any] | None:
        """Post ``notice`` unless the latest bot notice on the item is the same one."""
        existing = self.list_comments() if comments is None else comments
        if latest_notice(existing, self.bot_login) == (notice.kind, notice.login):
            logger.info(
                "suppressing duplicate %s notice for %s on %s#%d",
                notice.kind,
                notice.login,
                self.repo,
                self.number,
            )
            return None
        return self.create_comment(render_notice(notice))


def apply_transition(writer: ItemWriter, change: Transition) -> list[str]:
    """Apply label/assignee edits, then the grace marker, then notices.

    Mutations always precede the comment that announces them.
    """
    actions: list[str] = []
    if change.remove_assignees:
        writer.remove_assignees(change.remove_assignees)
        actions.append("remove_assignees")
    for label in change.remove_labels:
        writer.remove_label(label)
        actions.append(f"remove_label:{label}")
    if change.add_assignees:
        writer.add_assignees(change.add_assignees)
        actions.append("add_assignees")
    if change.add_labels:
        writer.add_labels(change.add_labels)
        actions.extend(f"add_label:{label}" for label in change.add_labels)

    comments: list[dict[str, Any]] | None = None
    if change.clear_grace_marker or change.notices:
        comments = writer.list_comments()
    if change.clear_grace_marker and comments is not None:
        marker = find_grace_marker(comments, writer.bot_login)
        if marker is not None:
            writer.delete_comment(int(marker["id"]))
            comments = [comment for comment in comments if comment.get("id") != marker.get("id")]
            actions.append("delete_grace_marker")

    for notice in change.notices:
        posted = writer.post_notice(notice, comments=comments)
        if posted is not None:
            actions.append(f"notice:{notice.kind}")
            if comments is not None:
                comments = comments + [posted]
    return actions
