from __future__ import annotations

from datetime import datetime, timedelta, timezone

from claim_bot.github.github_connector import GitHubRequestError, RetryableGitHubError
from claim_bot.github.github_connector_inmemory import InMemoryGitHubConnector
from claim_bot.reconciler.resolver import LinkedChangeResolver

REPO = "acme/widgets"
NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


def _resolver(connector: InMemoryGitHubConnector) -> LinkedChangeResolver:
    return LinkedChangeResolver(connector=connector, repo=REPO, clock=lambda: NOW)


def test_resolver_keeps_same_repo_drops_cross_repo_and_deleted_prs() -> None:
    connector = InMemoryGitHubConnector(clock=lambda: NOW)
    connector.add_issue(REPO, 5)
    connector.add_pull_request(
        "other/fork", 20, author="mallory", created_at=NOW - timedelta(days=1)
    )
    connector.add_cross_reference(REPO, 5, 20, source_repo="other/fork")
    connector.add_pull_request(REPO, 30, author="bob")
    connector.add_cross_reference(REPO, 5, 30)
    connector.delete_pull_request(REPO, 30)
    connector.add_pull_request(REPO, 40, author="alice", created_at=NOW - timedelta(hours=3))
    connector.add_cross_reference(REPO, 5, 40)

    links = _resolver(connector).resolve(5)

    assert links.error is False
    assert [pr.number for pr in links.open] == [40]
    assert links.closed == []
    assert links.open[0].age == timedelta(hours=3)
    assert links.open[0].author == "alice"


def test_resolver_finds_closing_reference_by_search() -> None:
    connector = InMemoryGitHubConnector(clock=lambda: NOW)
    connector.add_issue(REPO, 5)
    connector.add_pull_request(
        REPO,
        41,
        author="alice",
        state="closed",
        body="This fixes #5",
        created_at=NOW - timedelta(days=3),
        closed_at=NOW - timedelta(days=2),
    )
    connector.add_pull_request(REPO, 42, author="bob", body="related to #5, not closing it")

    links = _resolver(connector).resolve(5)

    assert links.error is False
    assert links.open == []
    assert [(pr.number, pr.state) for pr in links.closed] == [(41, "closed")]
    assert links.closed[0].age == timedelta(days=2)
    assert 5 in links.closed[0].references


def test_resolver_dedups_timeline_and_search_candidates() -> None:
    connector = InMemoryGitHubConnector(clock=lambda: NOW)
    connector.add_issue(REPO, 5)
    connector.add_pull_request(
        REPO, 43, author="alice", merged=True, state="closed", body="Closes #5"
    )
    connector.add_cross_reference(REPO, 5, 43)

    links = _resolver(connector).resolve(5)

    assert [(pr.number, pr.state) for pr in links.all] == [(43, "merged")]


def test_resolver_flags_error_when_pull_request_unreadable() -> None:
    connector = InMemoryGitHubConnector(clock=lambda: NOW)
    connector.add_issue(REPO, 5)
    connector.add_pull_request(REPO, 44, author="alice")
    connector.add_cross_reference(REPO, 5, 44)
    connector.read_errors[(REPO, 44)] = RetryableGitHubError("boom", reason_code="github_502")

    links = _resolver(connector).resolve(5)

    assert links.error is True
    assert links.open == []


def test_resolver_flags_error_when_timeline_unreadable() -> None:
    connector = InMemoryGitHubConnector(clock=lambda: NOW)
    connector.add_issue(REPO, 5)
    connector.read_errors[(REPO, 5)] = RetryableGitHubError("boom", reason_code="github_502")

    assert _resolver(connector).resolve(5).error is True


def test_resolver_flags_error_when_pull_request_read_is_rejected() -> None:
    connector = InMemoryGitHubConnector(clock=lambda: NOW)
    connector.add_issue(REPO, 5)
    connector.add_pull_request(REPO, 45, author="alice", body="Fixes #5")
    connector.read_errors[(REPO, 45)] = GitHubRequestError("forbidden", status_code=403)

    links = _resolver(connector).resolve(5)

    assert links.error is True
    assert links.all == []
