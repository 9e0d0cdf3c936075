from __future__ import annotations

import pytest

from claim_bot.models.triggers import (
    ChangeRequestEvent,
    CommentEvent,
    ScheduledSweep,
    parse_trigger,
    trigger_from_github_event,
)
from claim_bot.reconciler.errors import TriggerValidationError


def test_parse_trigger_dispatches_on_kind() -> None:
    assert isinstance(parse_trigger({"kind": "sweep"}), ScheduledSweep)
    comment = parse_trigger({"kind": "comment", "item": 5, "actor": "alice", "text": "/assign"})
    assert isinstance(comment, CommentEvent)
    assert comment.actor_type == "User"


def test_parse_trigger_rejects_unknown_kind_and_bad_fields() -> None:
    with pytest.raises(TriggerValidationError):
        parse_trigger({"kind": "push"})
    with pytest.raises(TriggerValidationError):
        parse_trigger({"kind": "comment", "item": 5, "actor": ""})
    with pytest.raises(TriggerValidationError) as exc_info:
        parse_trigger(
            {
                "kind": "change_request",
                "action": "edited",
                "change_request": {"number": 9, "author": "alice"},
            }
        )
    assert exc_info.value.reason_code == "invalid_trigger"


def test_issue_comment_event_maps_to_comment_trigger() -> None:
    payload = {
        "action": "created",
        "issue": {"number": 5},
        "comment": {"id": 77, "body": "/assign", "user": {"login": "alice", "type": "User"}},
    }

    trigger = trigger_from_github_event("issue_comment", payload)

    assert trigger == CommentEvent(item=5, actor="alice", text="/assign", comment_id=77)


def test_pull_request_event_maps_to_change_request_trigger() -> None:
    payload = {
        "action": "closed",
        "pull_request": {
            "number": 9,
            "merged": False,
            "body": None,
            "user": {"login": "alice"},
        },
    }

    trigger = trigger_from_github_event("pull_request_target", payload)

    assert isinstance(trigger, ChangeRequestEvent)
    assert trigger.action == "closed"
    assert trigger.change_request.body == ""
    assert trigger.change_request.merged is False


def test_schedule_and_unsupported_events() -> None:
    assert isinstance(trigger_from_github_event("schedule", {}), ScheduledSweep)
    assert isinstance(trigger_from_github_event("workflow_dispatch", {}), ScheduledSweep)
    with pytest.raises(TriggerValidationError) as unsupported:
        trigger_from_github_event("push", {})
    assert unsupported.value.reason_code == "unsupported_event"
    with pytest.raises(TriggerValidationError) as edited:
        trigger_from_github_event("issue_comment", {"action": "edited"})
    assert edited.value.reason_code == "unsupported_action"
