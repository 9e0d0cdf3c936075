"""GitHub REST API connector implementation."""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote

import requests

from claim_bot.github.github_auth import GitHubAuth
from claim_bot.github.github_connector import (
    DENIED_OPERATIONS,
    GitHubNotFoundError,
    GitHubRequestError,
    PolicyDecision,
    RetryableGitHubError,
    WriteRequest,
)

logger = logging.getLogger(__name__)

PER_PAGE = 100
MAX_PAGES = 50


class GitHubAPIConnector:
    def __init__(
        self,
        allowed_repos: set[str] | None = None,
        auth: GitHubAuth | None = None,
        base_url: str = "https://api.github.com",
        session: requests.Session | None = None,
        timeout_s: float = 15,
    ) -> None:
        self.allowed_repos = allowed_repos or set()
        self.auth = auth or GitHubAuth()
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.timeout_s = timeout_s

    @property
    def bot_login(self) -> str:
        return self.auth.bot_login

    def evaluate_write(self, repo: str, operation: str) -> PolicyDecision:
        if self.allowed_repos and repo not in self.allowed_repos:
            return PolicyDecision(allowed=False, reason_code="repo_not_allowlisted")
        if operation in DENIED_OPERATIONS:
            return PolicyDecision(allowed=False, reason_code="operation_denylisted")
        if not self.auth.write_token:
            return PolicyDecision(allowed=False, reason_code="missing_write_token")
        return PolicyDecision(allowed=True, reason_code="allowed")

    def execute_write(self, request: WriteRequest) -> dict[str, Any]:
        decision = self.evaluate_write(repo=request.repo, operation=request.operation)
        if not decision.allowed:
            raise PermissionError(f"Write denied by guardrails: {decision.reason_code}")

        repo = request.repo
        payload = request.payload
        token = self.auth.write_token
        result: dict[str, Any] = {
            "repo": repo,
            "operation": request.operation,
            "target_ref": request.target_ref,
            "status": "applied",
        }

        if request.operation in {"add_assignees", "remove_assignees"}:
            number = _issue_number_from_ref(request.target_ref)
            method = "POST" if request.operation == "add_assignees" else "DELETE"
            result["issue"] = self._request(
                method,
                f"/repos/{repo}/issues/{number}/assignees",
                token=token,
                json={"assignees": list(payload.get("assignees", []))},
            )
            return result

        if request.operation == "add_labels":
            number = _issue_number_from_ref(request.target_ref)
            result["labels"] = self._request(
                "POST",
                f"/repos/{repo}/issues/{number}/labels",
                token=token,
                json={"labels": list(payload.get("labels", []))},
            )
            return result

        if request.operation == "remove_label":
            number = _issue_number_from_ref(request.target_ref)
            name = str(payload.get("name", ""))
            try:
                self._request(
                    "DELETE",
                    f"/repos/{repo}/issues/{number}/labels/{quote(name, safe='')}",
                    token=token,
                )
            except GitHubNotFoundError:
                result["status"] = "already_absent"
            return result

        if request.operation == "rename_label":
            name = str(payload.get("name", ""))
            result["label"] = self._request(
                "PATCH",
                f"/repos/{repo}/labels/{quote(name, safe='')}",
                token=token,
                json={"new_name": str(payload.get("new_name", ""))},
            )
            return result

        if request.operation == "create_comment":
            number = _issue_number_from_ref(request.target_ref)
            result["comment"] = self._request(
                "POST",
                f"/repos/{repo}/issues/{number}/comments",
                token=token,
                json={"body": str(payload.get("body", ""))},
            )
            return result

        if request.operation == "update_comment":
            comment_id = int(payload["comment_id"])
            result["comment"] = self._request(
                "PATCH",
                f"/repos/{repo}/issues/comments/{comment_id}",
                token=token,
                json={"body": str(payload.get("body", ""))},
            )
            return result

        if request.operation == "delete_comment":
            comment_id = int(payload["comment_id"])
            try:
                self._request("DELETE", f"/repos/{repo}/issues/comments/{comment_id}", token=token)
            except GitHubNotFoundError:
                result["status"] = "already_absent"
            return result

        raise ValueError(f"Unsupported write operation: {request.operation}")

    def fetch_issue(self, repo: str, number: int) -> dict[str, Any]:
        return self._request(
            "GET", f"/repos/{repo}/issues/{int(number)}", token=self.auth.read_token
        )

    def list_issues(self, repo: str, **filters: str) -> list[dict[str, Any]]:
        params = {key: value for key, value in filters.items() if value != ""}
        return self._paginate(f"/repos/{repo}/issues", params=params)

    def list_timeline(self, repo: str, number: int) -> list[dict[str, Any]]:
        return self._paginate(f"/repos/{repo}/issues/{int(number)}/timeline")

    def list_comments(self, repo: str, number: int) -> list[dict[str, Any]]:
        return self._paginate(f"/repos/{repo}/issues/{int(number)}/comments")

    def fetch_pull_request(self, repo: str, number: int) -> dict[str, Any]:
        return self._request(
            "GET", f"/repos/{repo}/pulls/{int(number)}", token=self.auth.read_token
        )

    def search_issues(self, query: str) -> list[dict[str, Any]]:
        response = self._request(
            "GET",
            "/search/issues",
            token=self.auth.read_token,
            params={"q": query, "per_page": str(PER_PAGE)},
        )
        items = response.get("items", []) if isinstance(response, dict) else []
        return [item for item in items if isinstance(item, dict)]

    def _paginate(self, path: str, params: dict[str, str] | None = None) -> list[dict[str, Any]]:
        rows: list[dict[str, Any]] = []
        for page in range(1, MAX_PAGES + 1):
            page_params = dict(params or {})
            page_params["per_page"] = str(PER_PAGE)
            page_params["page"] = str(page)
            chunk = self._request("GET", path, token=self.auth.read_token, params=page_params)
            if not isinstance(chunk, list) or not chunk:
                break
            rows.extend(row for row in chunk if isinstance(row, dict))
            if len(chunk) < PER_PAGE:
                break
        else:
            logger.warning("pagination stopped at %d pages for %s", MAX_PAGES, path)
        return rows

    def _request(
        self,
        method: str,
        path: str,
        token: str | None,
        json: dict[str, Any] | None = None,
        params: dict[str, str] | None = None,
    ) -> Any:
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if token:
            headers["Authorization"] = f"Bearer {token}"

        try:
            response = self.session.request(
                method=method,
                url=f"{self.base_url}{path}",
                headers=headers,
                json=json,
                params=params,
                timeout=self.timeout_s,
            )
        except (requests.ConnectionError, requests.Timeout) as exc:
            raise RetryableGitHubError(
                f"GitHub API unreachable: {exc}", reason_code="github_unreachable"
            ) from exc

        if response.status_code in {429, 403} and _looks_like_rate_limit(response):
            raise RetryableGitHubError(
                "GitHub API retryable failure",
                reason_code=_reason_code_for_status(response.status_code),
                retry_after_s=_parse_retry_after((response.headers or {}).get("Retry-After")),
            )
        if response.status_code in {500, 502, 503, 504}:
            raise RetryableGitHubError(
                "GitHub API 5xx response",
                reason_code=_reason_code_for_status(response.status_code),
            )
        if response.status_code in {404, 410}:
            raise GitHubNotFoundError(f"GitHub resource not found: {method} {path}", path=path)

        if response.status_code >= 400:
            raise GitHubRequestError(
                f"GitHub API {response.status_code} for {method} {path}",
                status_code=response.status_code,
            )
        if not response.content:
            return {}
        return response.json()


def _issue_number_from_ref(issue_ref: str) -> int:
    ref = issue_ref.strip()
    if ref.startswith("#"):
        ref = ref[1:]
    try:
        return int(ref)
    except ValueError as exc:
        raise ValueError(f"Unsupported issue ref: {issue_ref}") from exc


def _looks_like_rate_limit(response: requests.Response) -> bool:
    if response.status_code == 429:
        return True
    if response.status_code != 403:
        return False
    try:
        payload = response.json()
    except ValueError:
        return False
    message = str(payload.get("message", "")).lower()
    return "rate limit" in message


def _parse_retry_after(value: str | None) -> float | None:
    if not value:
        return None
    try:
        parsed = float(value)
    except ValueError:
        return None
    return parsed if parsed >= 0 else None


def _reason_code_for_status(status: int) -> str:
    if status in {429, 403}:
        return "github_rate_limited"
    return f"github_{status}"
