"""Linked pull request discovery for a work item.

Two sources are unioned:

* the item's timeline: ``cross-referenced`` and ``connected`` events whose
  source is a pull request in the same repository;
* a search for pull requests mentioning the item number, kept only when the
  body carries a closing reference to this item in this repository.

Each candidate is then fetched for its current state. Deleted pull requests
(404) are dropped; any other read failure marks the whole result as
incomplete so callers defer instead of acting on a partial view.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from claim_bot.github.github_connector import (
    GitHubConnector,
    GitHubNotFoundError,
    GitHubRequestError,
    RetryableGitHubError,
    user_login,
)
from claim_bot.github.references import parse_closing_references
from claim_bot.shared.clock import Clock, parse_timestamp, utc_now

logger = logging.getLogger(__name__)

LINK_EVENTS = {"cross-referenced", "connected"}
READ_FAILURES = (RetryableGitHubError, GitHubRequestError)


@dataclass(frozen=True)
class PRInfo:
    number: int
    state: str
    author: str
    created_at: datetime
    closed_at: datetime | None
    age: timedelta
    references: frozenset[int] = frozenset()

    @property
    def is_open(self) -> bool:
        return self.state == "open"


@dataclass(frozen=True)
class ResolvedLinks:
    open: list[PRInfo] = field(default_factory=list)
    closed: list[PRInfo] = field(default_factory=list)
    error: bool = False

    @property
    def all(self) -> list[PRInfo]:
        return sorted(self.open + self.closed, key=lambda pr: pr.number)


class LinkedChangeResolver:
    def __init__(
        self,
        *,
        connector: GitHubConnector,
        repo: str,
        clock: Clock | None = None,
    ) -> None:
        self.connector = connector
        self.repo = repo
        self.clock = clock or utc_now

    def resolve(self, number: int) -> ResolvedLinks:
        error = False
        candidates: set[int] = set()
        try:
            candidates |= self._timeline_candidates(number)
        except (RetryableGitHubError, GitHubRequestError, GitHubNotFoundError) as exc:
            logger.warning("timeline read failed for %s#%d: %s", self.repo, number, exc)
            error = True
        try:
            candidates |= self._search_candidates(number)
        except READ_FAILURES as exc:
            logger.warning("pull request search failed for %s#%d: %s", self.repo, number, exc)
            error = True

        now = self.clock()
        open_prs: list[PRInfo] = []
        closed_prs: list[PRInfo] = []
        for pr_number in sorted(candidates):
            try:
                pr = self.connector.fetch_pull_request(self.repo, pr_number)
            except GitHubNotFoundError:
                logger.info("linked pull request %s#%d is gone; ignoring", self.repo, pr_number)
                continue
            except READ_FAILURES as exc:
                logger.warning("pull request %s#%d unreadable: %s", self.repo, pr_number, exc)
                error = True
                continue
            info = _pr_info(pr, now=now, repo=self.repo)
            if info is None:
                error = True
                continue
            (open_prs if info.is_open else closed_prs).append(info)

        return ResolvedLinks(open=open_prs, closed=closed_prs, error=error)

    def _timeline_candidates(self, number: int) -> set[int]:
        found: set[int] = set()
        for event in self.connector.list_timeline(self.repo, number):
            if event.get("event") not in LINK_EVENTS:
                continue
            source = event.get("source") or {}
            issue = source.get("issue") if isinstance(source, dict) else None
            if not isinstance(issue, dict) or not issue.get("pull_request"):
                continue
            repository = issue.get("repository") or {}
            source_repo = str(repository.get("full_name", "") or self.repo)
            if source_repo.lower() != self.repo.lower():
                continue
            pr_number = _coerce_number(issue.get("number"))
            if pr_number is not None:
                found.add(pr_number)
        return found

    def _search_candidates(self, number: int) -> set[int]:
        query = f"repo:{self.repo} type:pr {number} in:body"
        found: set[int] = set()
        for row in self.connector.search_issues(query):
            pr_number = _coerce_number(row.get("number"))
            if pr_number is None:
                continue
            if number in parse_closing_references(str(row.get("body") or ""), self.repo):
                found.add(pr_number)
        return found


def _pr_info(pr: dict[str, Any], *, now: datetime, repo: str) -> PRInfo | None:
    number = _coerce_number(pr.get("number"))
    created_at = parse_timestamp(pr.get("created_at"))
    if number is None or created_at is None:
        return None
    merged = bool(pr.get("merged")) or bool(pr.get("merged_at"))
    if str(pr.get("state", "")) == "open":
        state = "open"
        closed_at = None
        age = now - created_at
    else:
        state = "merged" if merged else "closed"
        closed_at = parse_timestamp(pr.get("closed_at") or pr.get("merged_at")) or created_at
        age = now - closed_at
    return PRInfo(
        number=number,
        state=state,
        author=user_login(pr),
        created_at=created_at,
        closed_at=closed_at,
        age=age,
        references=frozenset(parse_closing_references(str(pr.get("body") or ""), repo)),
    )


def _coerce_number(value: Any) -> int | None:
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return None
    if parsed <= 0:
        return None
    return parsed
