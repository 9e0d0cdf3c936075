"""GitHub connector contracts, policy primitives, and factory helpers."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any, Protocol

from claim_bot.github.github_auth import GitHubAuth, load_github_auth_from_env


DENIED_OPERATIONS = {"delete_issue", "edit_workflow", "delete_label"}

WRITE_OPERATIONS = {
    "add_assignees",
    "remove_assignees",
    "add_labels",
    "remove_label",
    "rename_label",
    "create_comment",
    "update_comment",
    "delete_comment",
}


@dataclass(frozen=True)
class WriteRequest:
    operation: str
    repo: str
    target_ref: str
    payload: dict[str, Any]


@dataclass(frozen=True)
class PolicyDecision:
    allowed: bool
    reason_code: str


class RetryableGitHubError(RuntimeError):
    """Network failure, 5xx or rate limit; the caller defers the item to a later run."""

    def __init__(self, message: str, reason_code: str, retry_after_s: float | None = None) -> None:
        super().__init__(message)
        self.reason_code = reason_code
        self.retry_after_s = retry_after_s


class GitHubRequestError(RuntimeError):
    """GitHub rejected the request (401, 422, a non-rate-limit 403, ...)."""

    def __init__(self, message: str, status_code: int) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.reason_code = f"github_{status_code}"


class GitHubNotFoundError(LookupError):
    """The addressed issue, pull request, comment or label no longer exists."""

    def __init__(self, message: str, path: str = "") -> None:
        super().__init__(message)
        self.path = path
        self.reason_code = "github_404"


class GitHubConnector(Protocol):
    """Connector contract for all GitHub integration implementations."""

    allowed_repos: set[str]
    bot_login: str

    def evaluate_write(self, repo: str, operation: str) -> PolicyDecision: ...

    def execute_write(self, request: WriteRequest) -> dict[str, Any]: ...

    def fetch_issue(self, repo: str, number: int) -> dict[str, Any]: ...

    def list_issues(self, repo: str, **filters: str) -> list[dict[str, Any]]: ...

    def list_timeline(self, repo: str, number: int) -> list[dict[str, Any]]: ...

    def list_comments(self, repo: str, number: int) -> list[dict[str, Any]]: ...

    def fetch_pull_request(self, repo: str, number: int) -> dict[str, Any]: ...

    def search_issues(self, query: str) -> list[dict[str, Any]]: ...


def issue_ref(number: int) -> str:
    return f"#{int(number)}"


def label_names(row: dict[str, Any]) -> list[str]:
    names: list[str] = []
    for label in row.get("labels", []) or []:
        name = label.get("name", "") if isinstance(label, dict) else label
        if str(name).strip():
            names.append(str(name))
    return names


def assignee_logins(row: dict[str, Any]) -> list[str]:
    logins: list[str] = []
    for assignee in row.get("assignees", []) or []:
        login = assignee.get("login", "") if isinstance(assignee, dict) else assignee
        if str(login).strip() and str(login) not in logins:
            logins.append(str(login))
    return logins


def user_login(row: dict[str, Any]) -> str:
    user = row.get("user")
    if isinstance(user, dict):
        return str(user.get("login", "") or "")
    return ""


def is_pull_request(row: dict[str, Any]) -> bool:
    return "pull_request" in row and row.get("pull_request") is not None


def _parse_allowed_repos_from_env(env: dict[str, str]) -> set[str] | None:
    configured = (env.get("CLAIM_BOT_ALLOWED_REPOS") or "").strip()
    if not configured:
        return None
    return {repo.strip() for repo in configured.split(",") if repo.strip()}


def build_connector_from_env(
    env: dict[str, str] | None = None,
    allowed_repos: set[str] | None = None,
) -> GitHubConnector:
    env_map = os.environ if env is None else env
    connector_type = (env_map.get("CLAIM_BOT_GITHUB_CONNECTOR") or "api").strip().lower()
    env_allowed_repos = _parse_allowed_repos_from_env(env_map)
    repos = env_allowed_repos if allowed_repos is None else allowed_repos

    if connector_type == "in_memory":
        from claim_bot.github.github_connector_inmemory import InMemoryGitHubConnector

        return InMemoryGitHubConnector(allowed_repos=repos)

    from claim_bot.github.github_connector_api import GitHubAPIConnector

    auth = load_github_auth_from_env(env_map)
    return GitHubAPIConnector(allowed_repos=repos, auth=auth)


__all__ = [
    "DENIED_OPERATIONS",
    "GitHubAuth",
    "GitHubConnector",
    "GitHubNotFoundError",
    "GitHubRequestError",
    "PolicyDecision",
    "RetryableGitHubError",
    "WRITE_OPERATIONS",
    "WriteRequest",
    "assignee_logins",
    "build_connector_from_env",
    "is_pull_request",
    "issue_ref",
    "label_names",
    "user_login",
]
