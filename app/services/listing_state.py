"""
Listing workflow state table.

    draft -> submitted -> under_review -> live -> expired -> live ...
                     \\-> rejected -> submitted
    live -> needs_reapproval -> submitted
    live -> sold | rented | leased (terminal)

Pure computation: validates transitions only. Quota effects and persistence
live in app.services.listing_workflow.
"""
from __future__ import annotations

from enum import Enum


class WorkflowStatus(str, Enum):
    DRAFT = "draft"
    SUBMITTED = "submitted"
    UNDER_REVIEW = "under_review"
    LIVE = "live"
    NEEDS_REAPPROVAL = "needs_reapproval"
    REJECTED = "rejected"
    SOLD = "sold"
    RENTED = "rented"
    LEASED = "leased"
    EXPIRED = "expired"


class ListingEvent(str, Enum):
    SUBMIT = "submit"
    CLAIM = "claim"
    APPROVE = "approve"
    REJECT = "reject"
    EDIT = "edit"
    MARK_SOLD = "mark_sold"
    MARK_RENTED = "mark_rented"
    MARK_LEASED = "mark_leased"
    EXPIRE = "expire"
    REACTIVATE = "reactivate"
    FORCE_REAPPROVAL = "force_reapproval"


S = WorkflowStatus
E = ListingEvent

_TRANSITIONS: dict[tuple[WorkflowStatus, ListingEvent], WorkflowStatus] = {
    (S.DRAFT, E.SUBMIT): S.SUBMITTED,
    (S.NEEDS_REAPPROVAL, E.SUBMIT): S.SUBMITTED,
    (S.REJECTED, E.SUBMIT): S.SUBMITTED,

    (S.SUBMITTED, E.CLAIM): S.UNDER_REVIEW,

    (S.SUBMITTED, E.APPROVE): S.LIVE,
    (S.UNDER_REVIEW, E.APPROVE): S.LIVE,
    (S.SUBMITTED, E.REJECT): S.REJECTED,
    (S.UNDER_REVIEW, E.REJECT): S.REJECTED,

    # edits on published content wait for re-approval
    (S.LIVE, E.EDIT): S.NEEDS_REAPPROVAL,
    (S.NEEDS_REAPPROVAL, E.EDIT): S.NEEDS_REAPPROVAL,
    # edits on unpublished content apply in place
    (S.DRAFT, E.EDIT): S.DRAFT,
    (S.REJECTED, E.EDIT): S.REJECTED,
    (S.EXPIRED, E.EDIT): S.EXPIRED,

    (S.LIVE, E.MARK_SOLD): S.SOLD,
    (S.LIVE, E.MARK_RENTED): S.RENTED,
    (S.LIVE, E.MARK_LEASED): S.LEASED,

    (S.LIVE, E.EXPIRE): S.EXPIRED,
    (S.EXPIRED, E.REACTIVATE): S.LIVE,

    (S.LIVE, E.FORCE_REAPPROVAL): S.NEEDS_REAPPROVAL,
}

PENDING_REVIEW = frozenset({S.SUBMITTED, S.UNDER_REVIEW})
TRANSACTED = frozenset({S.SOLD, S.RENTED, S.LEASED})
TERMINAL = TRANSACTED

TRANSACTION_EVENTS: dict[str, ListingEvent] = {
    "sold": E.MARK_SOLD,
    "rented": E.MARK_RENTED,
    "leased": E.MARK_LEASED,
}


def next_status(current: WorkflowStatus | str, event: ListingEvent) -> WorkflowStatus | None:
    """Target status for ``event`` from ``current``, or None when the move is illegal."""
    return _TRANSITIONS.get((WorkflowStatus(current), event))


def can_transition(current: WorkflowStatus | str, event: ListingEvent) -> bool:
    return next_status(current, event) is not None


def valid_events(current: WorkflowStatus | str) -> set[ListingEvent]:
    status = WorkflowStatus(current)
    return {event for (src, event) in _TRANSITIONS if src == status}


def is_terminal(status: WorkflowStatus | str) -> bool:
    return WorkflowStatus(status) in TERMINAL


def edits_need_reapproval(status: WorkflowStatus | str) -> bool:
    return next_status(status, E.EDIT) == S.NEEDS_REAPPROVAL
