"""Pure projection of labels/assignees onto claim states and the transition table.

Nothing here touches the network: ``project_state`` reads an item snapshot and
``transition`` returns the label/assignee edits and notices a trigger implies.
``claim_bot.reconciler.mutations`` applies the result through the connector.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Union

from claim_bot.github.github_connector import assignee_logins, label_names
from claim_bot.reconciler.notices import Notice


class ClaimState(str, Enum):
    UNCLAIMED = "unclaimed"
    CLAIMED = "claimed"
    PENDING_TAKEOVER = "pending_takeover"
    PENDING_RELEASE = "pending_release"
    CLOSED = "closed"


@dataclass(frozen=True)
class LabelScheme:
    claimed: str = "assigned"
    pending: str = "pending-unassignment"


@dataclass(frozen=True)
class ItemSnapshot:
    number: int
    is_open: bool
    labels: frozenset[str]
    assignees: tuple[str, ...]

    @classmethod
    def from_issue(cls, issue: dict[str, Any]) -> "ItemSnapshot":
        return cls(
            number=int(issue.get("number", 0) or 0),
            is_open=str(issue.get("state", "open")) == "open",
            labels=frozenset(label_names(issue)),
            assignees=tuple(assignee_logins(issue)),
        )

    @property
    def claimant(self) -> str:
        return self.assignees[0] if self.assignees else ""


@dataclass(frozen=True)
class ClaimRequested:
    actor: str
    blocking: tuple[int, ...] = ()
    claimant_links_stale: bool = False


@dataclass(frozen=True)
class ReleaseRequested:
    actor: str
    timed_out: bool = False


@dataclass(frozen=True)
class LinkedChangeClosed:
    author: str
    pr_number: int
    merged: bool = False


@dataclass(frozen=True)
class LinkedChangeOpened:
    author: str
    pr_number: int


@dataclass(frozen=True)
class GraceExpired:
    claimant: str
    open_pr: int | None = None


ClaimEvent = Union[
    ClaimRequested, ReleaseRequested, LinkedChangeClosed, LinkedChangeOpened, GraceExpired
]


@dataclass(frozen=True)
class Transition:
    state: ClaimState
    add_labels: tuple[str, ...] = ()
    remove_labels: tuple[str, ...] = ()
    add_assignees: tuple[str, ...] = ()
    remove_assignees: tuple[str, ...] = ()
    notices: tuple[Notice, ...] = ()
    delegate: str = ""
    clear_grace_marker: bool = False
    open_grace_marker: bool = False

    @property
    def mutates(self) -> bool:
        return bool(
            self.add_labels
            or self.remove_labels
            or self.add_assignees
            or self.remove_assignees
            or self.clear_grace_marker
            or self.open_grace_marker
        )


def project_state(snapshot: ItemSnapshot, scheme: LabelScheme) -> ClaimState:
    if not snapshot.is_open:
        return ClaimState.CLOSED
    if scheme.pending in snapshot.labels:
        return ClaimState.PENDING_RELEASE
    if scheme.claimed in snapshot.labels or snapshot.assignees:
        return ClaimState.CLAIMED
    return ClaimState.UNCLAIMED


def heal(snapshot: ItemSnapshot, scheme: LabelScheme) -> Transition:
    """Edits that bring state labels back in line with the assignee list."""
    state = project_state(snapshot, scheme)
    if state is ClaimState.CLOSED:
        return Transition(state=state)
    has_claimed = scheme.claimed in snapshot.labels
    has_pending = scheme.pending in snapshot.labels
    if snapshot.assignees:
        if has_pending and has_claimed:
            return Transition(state=state, remove_labels=(scheme.claimed,))
        if not has_pending and not has_claimed:
            return Transition(state=ClaimState.CLAIMED, add_labels=(scheme.claimed,))
        return Transition(state=state)
    if has_claimed and not has_pending:
        return Transition(state=ClaimState.UNCLAIMED, remove_labels=(scheme.claimed,))
    return Transition(state=state)


def transition(
    state: ClaimState,
    snapshot: ItemSnapshot,
    event: ClaimEvent,
    scheme: LabelScheme,
    *,
    context: dict[str, Any] | None = None,
) -> Transition:
    ctx = context or {}
    if state is ClaimState.CLOSED:
        return Transition(state=state)

    if isinstance(event, ClaimRequested):
        return _on_claim(state, snapshot, event, scheme, ctx)
    if isinstance(event, ReleaseRequested):
        return _on_release(state, snapshot, event, scheme, ctx)
    if isinstance(event, LinkedChangeClosed):
        if (
            state is ClaimState.CLAIMED
            and not event.merged
            and event.author in snapshot.assignees
        ):
            return Transition(
                state=ClaimState.PENDING_RELEASE,
                add_labels=(scheme.pending,),
                remove_labels=(scheme.claimed,),
                notices=(
                    Notice(
                        "grace_warning",
                        event.author,
                        {"pr": event.pr_number, "grace": ctx.get("grace")},
                    ),
                ),
                delegate="grace",
                open_grace_marker=True,
            )
        return Transition(state=state)
    if isinstance(event, LinkedChangeOpened):
        if state is ClaimState.PENDING_RELEASE:
            return _cancel_grace(snapshot, scheme, event.pr_number)
        return Transition(state=state)
    if isinstance(event, GraceExpired):
        if state is not ClaimState.PENDING_RELEASE:
            return Transition(state=state)
        if event.open_pr is not None:
            return _cancel_grace(snapshot, scheme, event.open_pr, claimant=event.claimant)
        still_assigned = event.claimant in snapshot.assignees
        remaining = tuple(login for login in snapshot.assignees if login != event.claimant)
        removing = [scheme.pending]
        if not remaining and scheme.claimed in snapshot.labels:
            removing.append(scheme.claimed)
        return Transition(
            state=ClaimState.CLAIMED if remaining else ClaimState.UNCLAIMED,
            remove_labels=tuple(removing),
            add_labels=(scheme.claimed,) if remaining else (),
            remove_assignees=(event.claimant,) if still_assigned else (),
            notices=(
                Notice(
                    "grace_expired",
                    event.claimant,
                    {"grace": ctx.get("grace"), "unassigned": still_assigned},
                ),
            ),
            clear_grace_marker=True,
        )
    raise TypeError(f"unsupported claim event: {event!r}")


def _on_claim(
    state: ClaimState,
    snapshot: ItemSnapshot,
    event: ClaimRequested,
    scheme: LabelScheme,
    ctx: dict[str, Any],
) -> Transition:
    actor = event.actor
    if state is ClaimState.UNCLAIMED:
        if event.blocking:
            return Transition(
                state=state,
                notices=(Notice("too_many_claims", actor, {"blocking": list(event.blocking)}),),
            )
        return Transition(
            state=ClaimState.CLAIMED,
            add_assignees=(actor,),
            add_labels=(scheme.claimed,),
            notices=(Notice("assigned", actor, {"ttl": ctx.get("ttl")}),),
        )
    if actor in snapshot.assignees:
        return Transition(state=state, notices=(Notice("already_assigned", actor),))
    if state is ClaimState.CLAIMED and event.claimant_links_stale:
        return Transition(state=ClaimState.PENDING_TAKEOVER, delegate="takeover")
    return Transition(
        state=state,
        notices=(Notice("claimed_by_other", actor, {"claimant": snapshot.claimant}),),
    )


def _on_release(
    state: ClaimState,
    snapshot: ItemSnapshot,
    event: ReleaseRequested,
    scheme: LabelScheme,
    ctx: dict[str, Any],
) -> Transition:
    if state is ClaimState.UNCLAIMED:
        return Transition(state=state)
    if event.timed_out:
        releasing = snapshot.assignees
        kind = "stale_released"
    elif event.actor in snapshot.assignees:
        releasing = (event.actor,)
        kind = "released"
    else:
        return Transition(
            state=state,
            notices=(Notice("not_claimant", event.actor, {"claimant": snapshot.claimant}),),
        )
    remaining = tuple(login for login in snapshot.assignees if login not in releasing)
    if remaining:
        return Transition(
            state=state,
            remove_assignees=releasing,
            notices=(Notice(kind, releasing[0], {"ttl": ctx.get("ttl")}),),
        )
    return Transition(
        state=ClaimState.UNCLAIMED,
        remove_assignees=releasing,
        remove_labels=tuple(
            label for label in (scheme.claimed, scheme.pending) if label in snapshot.labels
        ),
        notices=(
            Notice(kind, releasing[0] if releasing else event.actor, {"ttl": ctx.get("ttl")}),
        ),
        clear_grace_marker=state is ClaimState.PENDING_RELEASE,
    )


def _cancel_grace(
    snapshot: ItemSnapshot,
    scheme: LabelScheme,
    pr_number: int,
    *,
    claimant: str = "",
) -> Transition:
    login = claimant or snapshot.claimant
    if snapshot.assignees:
        return Transition(
            state=ClaimState.CLAIMED,
            remove_labels=(scheme.pending,),
            add_labels=(scheme.claimed,),
            notices=(Notice("grace_cancelled", login, {"pr": pr_number}),),
            clear_grace_marker=True,
        )
    return Transition(
        state=ClaimState.UNCLAIMED,
        remove_labels=(scheme.pending,),
        notices=(Notice("grace_cancelled", login, {"pr": pr_number}),),
        clear_grace_marker=True,
    )
