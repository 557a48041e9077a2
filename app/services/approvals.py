"""
Approval coordinator: resolves pending listings on behalf of an admin.

It maps the admin decision onto the workflow transition, appends the
ApprovalDecision audit row, and queues the seller notification. A listing
can only be decided while it is pending (submitted / under_review); a second
decision on the same submission reports the first one as AlreadyDecided.
"""
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.ids import utcnow
from app.models.approval_decision import ApprovalDecision
from app.models.listing import Listing
from app.services import listing_workflow
from app.services.events import emit_listing_event
from app.services.listing_state import PENDING_REVIEW, WorkflowStatus
from app.services.results import (
    AlreadyDecided,
    InvalidTransition,
    ListingNotFound,
    Outcome,
    ReasonRequired,
    failure,
    success,
)


class Decision(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"


def decision_to_dict(row: ApprovalDecision) -> dict[str, Any]:
    return {
        "id": row.id,
        "listing_id": row.listing_id,
        "request_type": row.request_type,
        "decided_by": row.decided_by,
        "decision": row.decision,
        "reason": row.reason,
        "decided_at": row.decided_at.isoformat() if row.decided_at else None,
    }


async def latest_decision(db: AsyncSession, listing_id: str) -> ApprovalDecision | None:
    stmt = (
        select(ApprovalDecision)
        .where(ApprovalDecision.listing_id == listing_id)
        .order_by(ApprovalDecision.decided_at.desc())
        .limit(1)
    )
    return (await db.execute(stmt)).scalar_one_or_none()


async def decision_history(db: AsyncSession, listing_id: str) -> list[ApprovalDecision]:
    stmt = (
        select(ApprovalDecision)
        .where(ApprovalDecision.listing_id == listing_id)
        .order_by(ApprovalDecision.decided_at.asc())
    )
    return list((await db.execute(stmt)).scalars().all())


async def pending_queue(
    db: AsyncSession,
    *,
    request_type: str | None = None,
    status: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> list[Listing]:
    """Listings waiting for a decision, oldest submission first."""
    statuses = [status] if status else [s.value for s in PENDING_REVIEW]
    stmt = select(Listing).where(Listing.workflow_status.in_(statuses))
    if request_type:
        stmt = stmt.where(Listing.review_request_type == request_type)
    stmt = stmt.order_by(Listing.submitted_at.asc(), Listing.id.asc()).limit(limit).offset(offset)
    return list((await db.execute(stmt)).scalars().all())


async def claim(db: AsyncSession, listing_id: str, *, admin_id: str) -> Outcome[Listing]:
    return await listing_workflow.claim_listing(db, listing_id, admin_id=admin_id)


async def decide(
    db: AsyncSession,
    listing_id: str,
    *,
    decision: Decision | str,
    decided_by: str,
    reason: str | None = None,
    now: datetime | None = None,
) -> Outcome[Listing]:
    now = now or utcnow()
    decision = Decision(decision)

    listing = await listing_workflow.get_listing(db, listing_id, for_update=True)
    if listing is None:
        return failure(ListingNotFound(listing_id=listing_id))

    if WorkflowStatus(listing.workflow_status) not in PENDING_REVIEW:
        previous = await latest_decision(db, listing_id)
        if previous is not None:
            return failure(AlreadyDecided(listing_id=listing_id, decision=decision_to_dict(previous)))
        return failure(InvalidTransition(listing_id=listing_id, current=listing.workflow_status, event=decision.value))

    reason = (reason or "").strip() or None
    if decision == Decision.REJECT and not reason:
        return failure(ReasonRequired())

    request_type = listing.review_request_type or "new"

    if decision == Decision.APPROVE:
        res = await listing_workflow.approve_listing(db, listing_id, admin_id=decided_by, now=now)
    else:
        res = await listing_workflow.reject_listing(db, listing_id, admin_id=decided_by, reason=reason)
    if not res.ok:
        return res

    db.add(ApprovalDecision(
        listing_id=listing_id,
        request_type=request_type,
        decided_by=decided_by,
        decision="approved" if decision == Decision.APPROVE else "rejected",
        reason=reason,
        decided_at=now,
    ))

    event_type = "listing.approved" if decision == Decision.APPROVE else "listing.rejected"
    emit_listing_event(db, res.value, event_type, request_type=request_type, reason=reason)

    await db.flush()
    return success(res.value)
