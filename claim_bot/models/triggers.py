from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from claim_bot.reconciler.errors import TriggerValidationError


class CommentEvent(BaseModel):
    model_config = ConfigDict(extra="forbid")

    kind: Literal["comment"] = "comment"
    item: int = Field(ge=1)
    actor: str = Field(min_length=1)
    actor_type: str = "User"
    text: str = ""
    comment_id: int | None = None


class ChangeRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    number: int = Field(ge=1)
    author: str = Field(min_length=1)
    merged: bool = False
    body: str = ""


class ChangeRequestEvent(BaseModel):
    model_config = ConfigDict(extra="forbid")

    kind: Literal["change_request"] = "change_request"
    action: Literal["opened", "reopened", "closed"]
    change_request: ChangeRequest


class ScheduledSweep(BaseModel):
    model_config = ConfigDict(extra="forbid")

    kind: Literal["sweep"] = "sweep"


Trigger = Annotated[
    Union[CommentEvent, ChangeRequestEvent, ScheduledSweep], Field(discriminator="kind")
]

_TRIGGER_ADAPTER: TypeAdapter[Any] = TypeAdapter(Trigger)


def parse_trigger(payload: dict[str, Any]) -> CommentEvent | ChangeRequestEvent | ScheduledSweep:
    try:
        return _TRIGGER_ADAPTER.validate_python(payload)
    except ValidationError as exc:
        first = exc.errors()[0]
        where = ".".join(str(part) for part in first.get("loc", ()))
        raise TriggerValidationError(f"invalid trigger: {where}: {first.get('msg', '')}") from exc


def trigger_from_github_event(
    event_name: str, payload: dict[str, Any]
) -> CommentEvent | ChangeRequestEvent | ScheduledSweep:
    """Map a GitHub Actions event (``GITHUB_EVENT_NAME`` + event JSON) to a trigger."""
    if event_name in {"schedule", "workflow_dispatch"}:
        return ScheduledSweep()

    if event_name == "issue_comment":
        issue = payload.get("issue") or {}
        comment = payload.get("comment") or {}
        user = comment.get("user") or {}
        if payload.get("action", "created") != "created":
            raise TriggerValidationError(
                f"issue_comment action {payload.get('action')!r} is not handled",
                reason_code="unsupported_action",
            )
        return parse_trigger(
            {
                "kind": "comment",
                "item": issue.get("number", 0),
                "actor": user.get("login", ""),
                "actor_type": user.get("type", "User"),
                "text": comment.get("body") or "",
                "comment_id": comment.get("id"),
            }
        )

    if event_name in {"pull_request", "pull_request_target"}:
        pr = payload.get("pull_request") or {}
        user = pr.get("user") or {}
        return parse_trigger(
            {
                "kind": "change_request",
                "action": payload.get("action", ""),
                "change_request": {
                    "number": pr.get("number", 0),
                    "author": user.get("login", ""),
                    "merged": bool(pr.get("merged")),
                    "body": pr.get("body") or "",
                },
            }
        )

    raise TriggerValidationError(
        f"unsupported event: {event_name}", reason_code="unsupported_event"
    )
