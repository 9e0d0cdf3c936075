from __future__ import annotations

from datetime import timedelta

from claim_bot.collaborators.intents import Intent
from claim_bot.github.github_connector import assignee_logins, label_names
from claim_bot.github.github_connector_inmemory import InMemoryGitHubConnector
from claim_bot.models.triggers import ChangeRequest
from claim_bot.reconciler.assignment import AssignmentStateMachine
from claim_bot.reconciler.context import ReconcileContext
from claim_bot.reconciler.notices import notice_marker

REPO = "acme/widgets"


def _notice_kinds(connector: InMemoryGitHubConnector, number: int = 5) -> list[str]:
    kinds = []
    for comment in connector.list_comments(REPO, number):
        marker = notice_marker(comment["body"])
        if marker is not None:
            kinds.append(marker[0])
    return kinds


def test_claim_assigns_unclaimed_item(connector, ctx: ReconcileContext) -> None:
    connector.add_issue(REPO, 5)

    outcome = AssignmentStateMachine(ctx).handle_command(5, "alice", Intent.CLAIM)

    issue = connector.fetch_issue(REPO, 5)
    assert outcome.action == "claimed"
    assert assignee_logins(issue) == ["alice"]
    assert label_names(issue) == ["assigned"]
    assert _notice_kinds(connector) == ["assigned"]


def test_claim_release_claim_ends_with_single_assignment(connector, ctx) -> None:
    connector.add_issue(REPO, 5)
    machine = AssignmentStateMachine(ctx)

    machine.handle_command(5, "alice", Intent.CLAIM)
    machine.handle_command(5, "alice", Intent.RELEASE)
    machine.handle_command(5, "alice", Intent.CLAIM)

    issue = connector.fetch_issue(REPO, 5)
    assert assignee_logins(issue) == ["alice"]
    assert label_names(issue) == ["assigned"]
    assert _notice_kinds(connector) == ["assigned", "released", "assigned"]


def test_release_twice_posts_one_notice(connector, ctx) -> None:
    connector.add_issue(REPO, 5)
    machine = AssignmentStateMachine(ctx)
    machine.handle_command(5, "alice", Intent.CLAIM)

    first = machine.handle_command(5, "alice", Intent.RELEASE)
    second = machine.handle_command(5, "alice", Intent.RELEASE)

    assert first.action == "unclaimed"
    assert second.action == "noop"
    assert _notice_kinds(connector).count("released") == 1
    assert assignee_logins(connector.fetch_issue(REPO, 5)) == []


def test_repeated_claim_by_claimant_is_acknowledged_once(connector, ctx) -> None:
    connector.add_issue(REPO, 5)
    machine = AssignmentStateMachine(ctx)
    machine.handle_command(5, "alice", Intent.CLAIM)

    machine.handle_command(5, "alice", Intent.CLAIM)
    repeat = machine.handle_command(5, "alice", Intent.CLAIM)

    assert repeat.action == "unchanged"
    assert _notice_kinds(connector) == ["assigned", "already_assigned"]


def test_claim_denied_when_another_contributor_holds_item(connector, ctx) -> None:
    connector.add_issue(REPO, 5, labels=["assigned"])
    connector.record_assignment(REPO, 5, "alice", connector.clock())

    outcome = AssignmentStateMachine(ctx).handle_command(5, "bob", Intent.CLAIM)

    assert outcome.action == "unchanged"
    assert outcome.reason_code == "claimed_by_other"
    assert assignee_logins(connector.fetch_issue(REPO, 5)) == ["alice"]


def test_claim_on_orphaned_claimed_label_heals_and_assigns(connector, ctx) -> None:
    connector.add_issue(REPO, 5, labels=["assigned"])

    outcome = AssignmentStateMachine(ctx).handle_command(5, "bob", Intent.CLAIM)

    issue = connector.fetch_issue(REPO, 5)
    assert outcome.action == "claimed"
    assert outcome.actions[0] == "remove_label:assigned"
    assert assignee_logins(issue) == ["bob"]
    assert label_names(issue) == ["assigned"]
    assert _notice_kinds(connector) == ["assigned"]


def test_release_on_orphaned_claimed_label_only_heals(connector, ctx) -> None:
    connector.add_issue(REPO, 5, labels=["assigned"])

    outcome = AssignmentStateMachine(ctx).handle_command(5, "alice", Intent.RELEASE)

    assert outcome.action == "healed"
    assert label_names(connector.fetch_issue(REPO, 5)) == []
    assert _notice_kinds(connector) == []


def test_release_by_non_claimant_is_refused(connector, ctx) -> None:
    connector.add_issue(REPO, 5, labels=["assigned"], assignees=["alice"])

    outcome = AssignmentStateMachine(ctx).handle_command(5, "bob", Intent.RELEASE)

    assert outcome.reason_code == "not_claimant"
    assert assignee_logins(connector.fetch_issue(REPO, 5)) == ["alice"]


def test_claim_blocked_by_other_claims_without_pull_request(connector, ctx) -> None:
    connector.add_issue(REPO, 3, labels=["assigned"], assignees=["alice"])
    connector.add_issue(REPO, 5)

    outcome = AssignmentStateMachine(ctx).handle_command(5, "alice", Intent.CLAIM)

    assert outcome.reason_code == "too_many_claims"
    assert assignee_logins(connector.fetch_issue(REPO, 5)) == []
    assert "#3" in connector.list_comments(REPO, 5)[-1]["body"]


def test_claim_allowed_when_other_claim_has_open_pull_request(connector, ctx) -> None:
    connector.add_issue(REPO, 3, labels=["assigned"], assignees=["alice"])
    connector.add_pull_request(REPO, 30, author="alice", body="Fixes #3")
    connector.add_issue(REPO, 5)

    outcome = AssignmentStateMachine(ctx).handle_command(5, "alice", Intent.CLAIM)

    assert outcome.action == "claimed"


def test_commands_on_closed_items_and_pull_requests_are_ignored(connector, ctx) -> None:
    connector.add_issue(REPO, 5, state="closed")
    connector.add_pull_request(REPO, 6, author="bob")
    machine = AssignmentStateMachine(ctx)

    assert machine.handle_command(5, "alice", Intent.CLAIM).reason_code == "item_closed"
    assert machine.handle_command(6, "alice", Intent.CLAIM).reason_code == "not_an_issue"
    assert connector.executed_writes == []


def test_sweep_releases_claim_only_after_ttl_regardless_of_activity(
    connector, ctx, clock
) -> None:
    start = clock()
    connector.add_issue(REPO, 5, labels=["assigned"])
    connector.record_assignment(REPO, 5, "alice", start)
    machine = AssignmentStateMachine(ctx)

    clock.advance(hours=23, minutes=59)
    connector.issues[(REPO, 5)]["updated_at"] = "2020-01-01T00:00:00Z"
    fresh = machine.sweep_item(connector.fetch_issue(REPO, 5))
    assert fresh.action == "fresh"

    clock.advance(minutes=2)
    connector.add_comment(REPO, 5, "still on it!", login="alice", user_type="User")
    connector.issues[(REPO, 5)]["updated_at"] = "2026-03-02T12:00:00Z"
    stale = machine.sweep_item(connector.fetch_issue(REPO, 5))

    issue = connector.fetch_issue(REPO, 5)
    assert stale.action == "stale_released"
    assert assignee_logins(issue) == []
    assert label_names(issue) == []
    assert _notice_kinds(connector) == ["stale_released"]


def test_sweep_keeps_stale_claim_with_open_pull_request(connector, ctx, clock) -> None:
    connector.add_issue(REPO, 5, labels=["assigned"])
    connector.record_assignment(REPO, 5, "alice", clock() - timedelta(days=3))
    connector.add_pull_request(REPO, 9, author="alice")
    connector.add_cross_reference(REPO, 5, 9)

    outcome = AssignmentStateMachine(ctx).sweep_item(connector.fetch_issue(REPO, 5))

    assert outcome.action == "has_open_pr"
    assert assignee_logins(connector.fetch_issue(REPO, 5)) == ["alice"]


def test_sweep_without_assignment_event_takes_no_action(connector, ctx) -> None:
    connector.add_issue(REPO, 5, labels=["assigned"], assignees=["alice"])

    outcome = AssignmentStateMachine(ctx).sweep_item(connector.fetch_issue(REPO, 5))

    assert outcome.reason_code == "claim_time_unknown"
    assert connector.executed_writes == []


def test_sweep_heals_label_without_assignee(connector, ctx) -> None:
    connector.add_issue(REPO, 5, labels=["assigned", "bug"])

    outcome = AssignmentStateMachine(ctx).sweep_item(connector.fetch_issue(REPO, 5))

    assert outcome.action == "healed"
    assert label_names(connector.fetch_issue(REPO, 5)) == ["bug"]


def test_referenced_items_include_plain_mentions(ctx) -> None:
    change_request = ChangeRequest(
        number=9,
        author="alice",
        body="Fixes #5, closes acme/widgets#6, refs #7, fixes other/repo#8, fixes #9",
    )

    assert AssignmentStateMachine(ctx).referenced_items(change_request) == [5, 6, 7]
