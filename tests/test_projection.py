from __future__ import annotations

from claim_bot.reconciler.notices import (
    Notice,
    find_grace_marker,
    grace_claimant,
    is_bot_comment,
    latest_notice,
    render_notice,
)
from claim_bot.reconciler.projection import (
    ClaimRequested,
    ClaimState,
    GraceExpired,
    ItemSnapshot,
    LabelScheme,
    LinkedChangeClosed,
    LinkedChangeOpened,
    ReleaseRequested,
    heal,
    project_state,
    transition,
)

SCHEME = LabelScheme()
BOT = {"login": "claim-bot[bot]", "type": "Bot"}


def _snapshot(
    labels: tuple[str, ...] = (), assignees: tuple[str, ...] = (), is_open: bool = True
) -> ItemSnapshot:
    return ItemSnapshot(number=5, is_open=is_open, labels=frozenset(labels), assignees=assignees)


def test_project_state_reads_labels_and_assignees() -> None:
    assert project_state(_snapshot(), SCHEME) is ClaimState.UNCLAIMED
    assert project_state(_snapshot(("assigned",), ("alice",)), SCHEME) is ClaimState.CLAIMED
    assert project_state(_snapshot((), ("alice",)), SCHEME) is ClaimState.CLAIMED
    pending = _snapshot(("pending-unassignment",), ("alice",))
    assert project_state(pending, SCHEME) is ClaimState.PENDING_RELEASE
    assert project_state(_snapshot(is_open=False), SCHEME) is ClaimState.CLOSED


def test_claim_on_unclaimed_assigns_labels_and_notifies() -> None:
    change = transition(ClaimState.UNCLAIMED, _snapshot(), ClaimRequested("alice"), SCHEME)

    assert change.state is ClaimState.CLAIMED
    assert change.add_assignees == ("alice",)
    assert change.add_labels == ("assigned",)
    assert [notice.kind for notice in change.notices] == ["assigned"]


def test_claim_blocked_by_policy_only_notifies() -> None:
    change = transition(
        ClaimState.UNCLAIMED, _snapshot(), ClaimRequested("alice", blocking=(3, 4)), SCHEME
    )

    assert change.state is ClaimState.UNCLAIMED
    assert not change.mutates
    assert change.notices[0].kind == "too_many_claims"
    assert "#3, #4" in render_notice(change.notices[0])


def test_claim_on_claimed_item_denies_or_routes_to_takeover() -> None:
    snapshot = _snapshot(("assigned",), ("alice",))

    same = transition(ClaimState.CLAIMED, snapshot, ClaimRequested("alice"), SCHEME)
    other = transition(ClaimState.CLAIMED, snapshot, ClaimRequested("bob"), SCHEME)
    stale = transition(
        ClaimState.CLAIMED, snapshot, ClaimRequested("bob", claimant_links_stale=True), SCHEME
    )

    assert same.notices[0].kind == "already_assigned" and not same.mutates
    assert other.notices[0].kind == "claimed_by_other" and not other.mutates
    assert stale.state is ClaimState.PENDING_TAKEOVER
    assert stale.delegate == "takeover"


def test_release_by_claimant_non_claimant_and_on_unclaimed() -> None:
    snapshot = _snapshot(("assigned",), ("alice",))

    released = transition(ClaimState.CLAIMED, snapshot, ReleaseRequested("alice"), SCHEME)
    refused = transition(ClaimState.CLAIMED, snapshot, ReleaseRequested("bob"), SCHEME)
    idle = transition(ClaimState.UNCLAIMED, _snapshot(), ReleaseRequested("alice"), SCHEME)

    assert released.state is ClaimState.UNCLAIMED
    assert released.remove_assignees == ("alice",)
    assert released.remove_labels == ("assigned",)
    assert released.notices[0].kind == "released"
    assert refused.notices[0].kind == "not_claimant" and not refused.mutates
    assert idle == transition(ClaimState.UNCLAIMED, _snapshot(), ReleaseRequested("bob"), SCHEME)
    assert not idle.mutates and not idle.notices


def test_linked_change_closed_unmerged_by_claimant_opens_grace() -> None:
    snapshot = _snapshot(("assigned",), ("alice",))

    change = transition(
        ClaimState.CLAIMED, snapshot, LinkedChangeClosed("alice", 9), SCHEME, context={"grace": 12}
    )
    merged = transition(ClaimState.CLAIMED, snapshot, LinkedChangeClosed("alice", 9, True), SCHEME)
    stranger = transition(ClaimState.CLAIMED, snapshot, LinkedChangeClosed("bob", 9), SCHEME)

    assert change.state is ClaimState.PENDING_RELEASE
    assert change.add_labels == ("pending-unassignment",)
    assert change.remove_labels == ("assigned",)
    assert grace_claimant(render_notice(change.notices[0])) == "alice"
    assert not merged.mutates
    assert not stranger.mutates


def test_new_linked_change_cancels_grace() -> None:
    snapshot = _snapshot(("pending-unassignment",), ("alice",))

    change = transition(
        ClaimState.PENDING_RELEASE, snapshot, LinkedChangeOpened("alice", 11), SCHEME
    )

    assert change.state is ClaimState.CLAIMED
    assert change.remove_labels == ("pending-unassignment",)
    assert change.add_labels == ("assigned",)
    assert change.clear_grace_marker
    assert change.notices[0].kind == "grace_cancelled"


def test_grace_expired_unassigns_claimant_only_if_still_assigned() -> None:
    assigned = _snapshot(("pending-unassignment",), ("alice",))
    gone = _snapshot(("pending-unassignment",), ())

    expired = transition(ClaimState.PENDING_RELEASE, assigned, GraceExpired("alice"), SCHEME)
    already_gone = transition(ClaimState.PENDING_RELEASE, gone, GraceExpired("alice"), SCHEME)

    assert expired.state is ClaimState.UNCLAIMED
    assert expired.remove_assignees == ("alice",)
    assert expired.remove_labels == ("pending-unassignment",)
    assert expired.clear_grace_marker
    assert already_gone.remove_assignees == ()
    assert already_gone.notices[0].context["unassigned"] is False


def test_closed_item_is_absorbing() -> None:
    closed = _snapshot(("assigned",), ("alice",), is_open=False)
    for event in (ClaimRequested("bob"), ReleaseRequested("alice"), GraceExpired("alice")):
        change = transition(ClaimState.CLOSED, closed, event, SCHEME)
        assert change.state is ClaimState.CLOSED
        assert not change.mutates and not change.notices


def test_heal_repairs_label_drift() -> None:
    both = heal(_snapshot(("assigned", "pending-unassignment"), ("alice",)), SCHEME)
    missing = heal(_snapshot((), ("alice",)), SCHEME)
    orphan = heal(_snapshot(("assigned",), ()), SCHEME)
    clean = heal(_snapshot(("assigned",), ("alice",)), SCHEME)

    assert both.remove_labels == ("assigned",)
    assert missing.add_labels == ("assigned",)
    assert orphan.remove_labels == ("assigned",)
    assert not clean.mutates


def test_latest_notice_and_grace_marker_lookup_are_newest_first() -> None:
    comments = [
        {
            "id": 1,
            "created_at": "2026-03-01T00:00:00Z",
            "user": BOT,
            "body": render_notice(Notice("assigned", "alice")),
        },
        {
            "id": 2,
            "created_at": "2026-03-02T00:00:00Z",
            "user": BOT,
            "body": render_notice(Notice("grace_warning", "alice", {"pr": 9})),
        },
        {"id": 3, "created_at": "2026-03-03T00:00:00Z", "user": BOT, "body": "thanks!"},
    ]

    assert latest_notice(comments) == ("grace_warning", "alice")
    marker = find_grace_marker(comments)
    assert marker is not None and marker["id"] == 2
    assert find_grace_marker(comments[:1]) is None


def test_marker_lookups_only_trust_the_bot_account() -> None:
    genuine = {
        "id": 1,
        "created_at": "2026-03-01T00:00:00Z",
        "user": BOT,
        "body": render_notice(Notice("grace_warning", "alice", {"pr": 9})),
    }
    forged = {
        "id": 2,
        "created_at": "2026-03-02T00:00:00Z",
        "user": {"login": "mallory", "type": "User"},
        "body": render_notice(Notice("grace_warning", "mallory", {"pr": 9})),
    }
    other_bot = {**forged, "id": 3, "user": {"login": "helper[bot]", "type": "Bot"}}

    assert is_bot_comment(genuine) and not is_bot_comment(forged)
    assert latest_notice([genuine, forged]) == ("grace_warning", "alice")
    assert find_grace_marker([genuine, forged])["id"] == 1
    assert latest_notice([forged]) is None
    assert find_grace_marker([genuine, other_bot])["id"] == 3
    assert find_grace_marker([genuine, other_bot], bot_login="claim-bot[bot]")["id"] == 1
