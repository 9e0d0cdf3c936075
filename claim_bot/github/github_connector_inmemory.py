"""In-memory GitHub connector for deterministic tests."""

from __future__ import annotations

import copy
import re
import threading
from datetime import datetime
from typing import Any, Callable

from claim_bot.github.github_connector import (
    DENIED_OPERATIONS,
    GitHubNotFoundError,
    PolicyDecision,
    RetryableGitHubError,
    WriteRequest,
    assignee_logins,
    label_names,
)
from claim_bot.shared.clock import Clock, format_timestamp, utc_now

BOT_LOGIN = "claim-bot[bot]"


class InMemoryGitHubConnector:
    """In-memory connector that mimics GitHub REST payload shapes."""

    def __init__(
        self,
        allowed_repos: set[str] | None = None,
        clock: Clock | None = None,
        bot_login: str = BOT_LOGIN,
    ) -> None:
        self.allowed_repos = allowed_repos or set()
        self.clock = clock or utc_now
        self.bot_login = bot_login
        self.executed_writes: list[WriteRequest] = []
        self.issues: dict[tuple[str, int], dict[str, Any]] = {}
        self.pull_requests: dict[tuple[str, int], dict[str, Any]] = {}
        self.comments: dict[tuple[str, int], list[dict[str, Any]]] = {}
        self.timelines: dict[tuple[str, int], list[dict[str, Any]]] = {}
        self.read_errors: dict[tuple[str, int], Exception] = {}
        self._write_failures: list[tuple[str, Callable[[WriteRequest], bool], Exception]] = []
        self._next_comment_id = 1000
        self._lock = threading.RLock()

    # -- seeding helpers -------------------------------------------------

    def add_issue(
        self,
        repo: str,
        number: int,
        *,
        title: str = "",
        labels: tuple[str, ...] | list[str] = (),
        assignees: tuple[str, ...] | list[str] = (),
        state: str = "open",
        author: str = "reporter",
        body: str = "",
        created_at: datetime | None = None,
        updated_at: datetime | None = None,
    ) -> dict[str, Any]:
        created = created_at or self.clock()
        issue = {
            "number": number,
            "title": title or f"Issue {number}",
            "state": state,
            "body": body,
            "user": {"login": author, "type": "User"},
            "labels": [{"name": name} for name in labels],
            "assignees": [{"login": login} for login in assignees],
            "created_at": format_timestamp(created),
            "updated_at": format_timestamp(updated_at or created),
            "html_url": f"https://github.com/{repo}/issues/{number}",
        }
        self.issues[(repo, number)] = issue
        return issue

    def add_pull_request(
        self,
        repo: str,
        number: int,
        *,
        author: str,
        state: str = "open",
        merged: bool = False,
        body: str = "",
        created_at: datetime | None = None,
        closed_at: datetime | None = None,
    ) -> dict[str, Any]:
        created = created_at or self.clock()
        closed = closed_at if state == "closed" else None
        if state == "closed" and closed is None:
            closed = self.clock()
        pr = {
            "number": number,
            "state": state,
            "merged": merged,
            "merged_at": format_timestamp(closed) if merged and closed else None,
            "closed_at": format_timestamp(closed) if closed else None,
            "created_at": format_timestamp(created),
            "user": {"login": author, "type": "User"},
            "body": body,
            "html_url": f"https://github.com/{repo}/pull/{number}",
        }
        self.pull_requests[(repo, number)] = pr
        self.issues[(repo, number)] = {
            "number": number,
            "title": f"PR {number}",
            "state": state,
            "body": body,
            "user": {"login": author, "type": "User"},
            "labels": [],
            "assignees": [],
            "created_at": pr["created_at"],
            "updated_at": pr["created_at"],
            "pull_request": {"url": f"https://api.github.com/repos/{repo}/pulls/{number}"},
        }
        return pr

    def delete_pull_request(self, repo: str, number: int) -> None:
        self.pull_requests.pop((repo, number), None)
        self.issues.pop((repo, number), None)

    def add_cross_reference(
        self,
        repo: str,
        number: int,
        pr_number: int,
        *,
        source_repo: str | None = None,
        created_at: datetime | None = None,
    ) -> None:
        self.timelines.setdefault((repo, number), []).append(
            {
                "event": "cross-referenced",
                "created_at": format_timestamp(created_at or self.clock()),
                "source": {
                    "type": "issue",
                    "issue": {
                        "number": pr_number,
                        "pull_request": {"url": f"https://api.github.com/pulls/{pr_number}"},
                        "repository": {"full_name": source_repo or repo},
                    },
                },
            }
        )

    def record_assignment(self, repo: str, number: int, login: str, at: datetime) -> None:
        issue = self.issues[(repo, number)]
        if login not in assignee_logins(issue):
            issue["assignees"].append({"login": login})
        self.timelines.setdefault((repo, number), []).append(
            {"event": "assigned", "created_at": format_timestamp(at), "assignee": {"login": login}}
        )

    def add_comment(
        self,
        repo: str,
        number: int,
        body: str,
        *,
        login: str | None = None,
        user_type: str = "Bot",
        created_at: datetime | None = None,
    ) -> dict[str, Any]:
        with self._lock:
            self._next_comment_id += 1
            comment_id = self._next_comment_id
        comment = {
            "id": comment_id,
            "body": body,
            "user": {"login": login or self.bot_login, "type": user_type},
            "created_at": format_timestamp(created_at or self.clock()),
        }
        self.comments.setdefault((repo, number), []).append(comment)
        return comment

    def fail_write(
        self,
        operation: str,
        error: Exception | None = None,
        when: Callable[[WriteRequest], bool] | None = None,
    ) -> None:
        """Fail the next matching write once."""
        self._write_failures.append(
            (
                operation,
                when or (lambda _request: True),
                error or RetryableGitHubError("Injected failure", reason_code="github_503"),
            )
        )

    # -- connector contract ----------------------------------------------

    def evaluate_write(self, repo: str, operation: str) -> PolicyDecision:
        if self.allowed_repos and repo not in self.allowed_repos:
            return PolicyDecision(allowed=False, reason_code="repo_not_allowlisted")
        if operation in DENIED_OPERATIONS:
            return PolicyDecision(allowed=False, reason_code="operation_denylisted")
        return PolicyDecision(allowed=True, reason_code="allowed")

    def execute_write(self, request: WriteRequest) -> dict[str, Any]:
        with self._lock:
            return self._execute_write(request)

    def _execute_write(self, request: WriteRequest) -> dict[str, Any]:
        decision = self.evaluate_write(repo=request.repo, operation=request.operation)
        if not decision.allowed:
            raise PermissionError(f"Write denied by guardrails: {decision.reason_code}")

        for index, (operation, when, error) in enumerate(self._write_failures):
            if operation == request.operation and when(request):
                del self._write_failures[index]
                raise error

        self.executed_writes.append(request)
        result: dict[str, Any] = {
            "repo": request.repo,
            "operation": request.operation,
            "target_ref": request.target_ref,
            "status": "applied",
        }
        payload = request.payload
        now = self.clock()

        if request.operation in {"create_comment", "update_comment", "delete_comment"}:
            result.update(self._write_comment(request, now))
            return result
        if request.operation == "rename_label":
            old, new = str(payload.get("name", "")), str(payload.get("new_name", ""))
            for (repo, _), issue in self.issues.items():
                if repo == request.repo:
                    issue["labels"] = [
                        {"name": new if name == old else name} for name in label_names(issue)
                    ]
            return result

        number = int(request.target_ref.lstrip("#"))
        issue = self.issues.get((request.repo, number))
        if issue is None:
            raise GitHubNotFoundError(f"Issue {request.repo}#{number} not found")
        timeline = self.timelines.setdefault((request.repo, number), [])

        if request.operation == "add_assignees":
            for login in payload.get("assignees", []):
                if login not in assignee_logins(issue):
                    issue["assignees"].append({"login": login})
                    timeline.append(
                        {
                            "event": "assigned",
                            "created_at": format_timestamp(now),
                            "assignee": {"login": login},
                        }
                    )
        elif request.operation == "remove_assignees":
            removing = set(payload.get("assignees", []))
            for login in assignee_logins(issue):
                if login in removing:
                    timeline.append(
                        {
                            "event": "unassigned",
                            "created_at": format_timestamp(now),
                            "assignee": {"login": login},
                        }
                    )
            issue["assignees"] = [
                {"login": login} for login in assignee_logins(issue) if login not in removing
            ]
        elif request.operation == "add_labels":
            names = label_names(issue)
            for name in payload.get("labels", []):
                if name not in names:
                    names.append(name)
            issue["labels"] = [{"name": name} for name in names]
        elif request.operation == "remove_label":
            name = str(payload.get("name", ""))
            names = label_names(issue)
            if name not in names:
                result["status"] = "already_absent"
            issue["labels"] = [{"name": other} for other in names if other != name]
        else:
            raise ValueError(f"Unsupported write operation: {request.operation}")

        issue["updated_at"] = format_timestamp(now)
        return result

    def _write_comment(self, request: WriteRequest, now: datetime) -> dict[str, Any]:
        payload = request.payload
        if request.operation == "create_comment":
            number = int(request.target_ref.lstrip("#"))
            if (request.repo, number) not in self.issues:
                raise GitHubNotFoundError(f"Issue {request.repo}#{number} not found")
            comment = self.add_comment(
                request.repo, number, str(payload.get("body", "")), created_at=now
            )
            self.issues[(request.repo, number)]["updated_at"] = format_timestamp(now)
            return {"comment": copy.deepcopy(comment)}

        comment_id = int(payload["comment_id"])
        for (repo, _), comments in self.comments.items():
            if repo != request.repo:
                continue
            for index, comment in enumerate(comments):
                if comment["id"] != comment_id:
                    continue
                if request.operation == "delete_comment":
                    del comments[index]
                    return {}
                comment["body"] = str(payload.get("body", ""))
                return {"comment": copy.deepcopy(comment)}
        if request.operation == "delete_comment":
            return {"status": "already_absent"}
        raise GitHubNotFoundError(f"Comment {comment_id} not found")

    def fetch_issue(self, repo: str, number: int) -> dict[str, Any]:
        self._raise_read_error(repo, number)
        issue = self.issues.get((repo, int(number)))
        if issue is None:
            raise GitHubNotFoundError(f"Issue {repo}#{number} not found")
        return copy.deepcopy(issue)

    def list_issues(self, repo: str, **filters: str) -> list[dict[str, Any]]:
        state = filters.get("state", "open")
        assignee = filters.get("assignee", "")
        wanted_labels = [name for name in filters.get("labels", "").split(",") if name]
        rows: list[dict[str, Any]] = []
        for (issue_repo, number), issue in sorted(self.issues.items(), key=lambda kv: kv[0][1]):
            if issue_repo != repo:
                continue
            if state != "all" and issue.get("state") != state:
                continue
            if assignee and assignee not in assignee_logins(issue):
                continue
            if any(name not in label_names(issue) for name in wanted_labels):
                continue
            rows.append(copy.deepcopy(issue))
        return rows

    def list_timeline(self, repo: str, number: int) -> list[dict[str, Any]]:
        self._raise_read_error(repo, number)
        return copy.deepcopy(self.timelines.get((repo, int(number)), []))

    def list_comments(self, repo: str, number: int) -> list[dict[str, Any]]:
        return copy.deepcopy(self.comments.get((repo, int(number)), []))

    def fetch_pull_request(self, repo: str, number: int) -> dict[str, Any]:
        self._raise_read_error(repo, number)
        pr = self.pull_requests.get((repo, int(number)))
        if pr is None:
            raise GitHubNotFoundError(f"Pull request {repo}#{number} not found")
        return copy.deepcopy(pr)

    def search_issues(self, query: str) -> list[dict[str, Any]]:
        repo = ""
        state = ""
        only_prs = False
        terms: list[str] = []
        for token in query.split():
            if token.startswith("repo:"):
                repo = token[len("repo:") :]
            elif token in {"type:pr", "is:pr"}:
                only_prs = True
            elif token.startswith(("state:", "is:")) and token.split(":", 1)[1] in {
                "open",
                "closed",
            }:
                state = token.split(":", 1)[1]
            elif token.startswith("in:"):
                continue
            else:
                terms.append(token)

        rows: list[dict[str, Any]] = []
        for (issue_repo, _), row in sorted(self.issues.items(), key=lambda kv: kv[0][1]):
            if repo and issue_repo != repo:
                continue
            if only_prs and "pull_request" not in row:
                continue
            if state and row.get("state") != state:
                continue
            body = str(row.get("body", ""))
            if all(re.search(rf"\b{re.escape(term)}\b", body) for term in terms):
                rows.append(copy.deepcopy(row))
        return rows

    def _raise_read_error(self, repo: str, number: int) -> None:
        error = self.read_errors.get((repo, int(number)))
        if error is not None:
            raise error
