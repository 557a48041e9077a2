"""
Listing workflow: applies app.services.listing_state transitions to listing
rows together with their quota effects.

Every function is all-or-nothing with respect to expected failures: guards
run before anything is written, and the only step that can fail after that
(the ledger's compare-and-swap) happens before the listing row is touched.
Callers own the transaction (commit / rollback).
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.ids import utcnow
from app.models.listing import Listing
from app.services import sellers, subscriptions
from app.services.events import emit_listing_event
from app.services.listing_slots import (
    claim_featured_slot,
    claim_listing_slot,
    release_featured_slot,
    release_listing_slot,
)
from app.services.listing_state import (
    TRANSACTION_EVENTS,
    ListingEvent,
    WorkflowStatus,
    edits_need_reapproval,
    next_status,
)
from app.services.results import (
    InvalidTransition,
    ListingNotFound,
    Outcome,
    QuotaExhausted,
    failure,
    success,
)


log = logging.getLogger(__name__)

LISTING_KINDS = ("property", "project")

# Never editable by sellers, neither directly nor through pending_changes
PROTECTED_FIELDS = frozenset({
    "id", "seller_id", "kind", "workflow_status", "status", "is_featured", "quota_consumed",
    "subscription_id", "pending_changes", "review_request_type", "submitted_at",
    "rejection_reason", "approved_at", "approved_by", "expires_at", "transacted_at",
    "created_at", "updated_at", "created_by", "updated_by",
})


def sanitize_changes(changes: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in changes.items() if k not in PROTECTED_FIELDS}


def _apply_content(listing: Listing, changes: dict[str, Any]) -> None:
    changes = dict(changes)
    title = changes.pop("title", None)
    if title:
        listing.title = title
    if changes:
        # reassign so the JSON column is flagged dirty
        listing.details = {**(listing.details or {}), **changes}


def _invalid(listing: Listing, event: ListingEvent | str) -> Outcome[Any]:
    return failure(InvalidTransition(
        listing_id=listing.id,
        current=listing.workflow_status,
        event=event.value if isinstance(event, ListingEvent) else event,
    ))


async def get_listing(
    db: AsyncSession,
    listing_id: str,
    *,
    seller_id: str | None = None,
    for_update: bool = False,
) -> Listing | None:
    stmt = select(Listing).where(Listing.id == listing_id)
    if seller_id is not None:
        stmt = stmt.where(Listing.seller_id == seller_id)
    if for_update:
        stmt = stmt.with_for_update()
    return (await db.execute(stmt)).scalar_one_or_none()


async def _load(db: AsyncSession, listing_id: str, seller_id: str | None) -> Outcome[Listing]:
    listing = await get_listing(db, listing_id, seller_id=seller_id, for_update=True)
    if listing is None:
        return failure(ListingNotFound(listing_id=listing_id))
    return success(listing)


async def list_seller_listings(db: AsyncSession, seller_id: str, *, status: str | None = None) -> list[Listing]:
    stmt = select(Listing).where(Listing.seller_id == seller_id)
    if status:
        stmt = stmt.where(Listing.workflow_status == status)
    stmt = stmt.order_by(Listing.updated_at.desc(), Listing.id.asc())
    return list((await db.execute(stmt)).scalars().all())


async def create_listing(
    db: AsyncSession,
    *,
    seller_id: str,
    title: str,
    kind: str = "property",
    details: dict[str, Any] | None = None,
    now: datetime | None = None,
) -> Outcome[Listing]:
    """New draft. Gated by the same check the UI runs; no quota is consumed."""
    res = await sellers.require_active_seller(db, seller_id)
    if not res.ok:
        return res

    res = await subscriptions.require_current(db, seller_id, now)
    if not res.ok:
        return res

    check = await subscriptions.can_create_listing(db, seller_id, now)
    if not check.can_create:
        sub = res.value
        return failure(QuotaExhausted(kind="listing", limit=sub.listing_limit, used=sub.listings_used))

    listing = Listing(
        seller_id=seller_id,
        kind=kind,
        title=title,
        details=sanitize_changes(details or {}),
        workflow_status=WorkflowStatus.DRAFT.value,
        created_by=seller_id,
        updated_by=seller_id,
    )
    db.add(listing)
    await db.flush()
    return success(listing)


async def edit_listing(
    db: AsyncSession,
    *,
    listing_id: str,
    changes: dict[str, Any],
    seller_id: str | None = None,
) -> Outcome[Listing]:
    """
    Drafts, rejected and expired listings change in place. Edits to published
    content are parked in pending_changes and take the listing offline for
    re-approval; the listing keeps its slot meanwhile.
    """
    res = await _load(db, listing_id, seller_id)
    if not res.ok:
        return res
    listing = res.value

    if next_status(listing.workflow_status, ListingEvent.EDIT) is None:
        return _invalid(listing, ListingEvent.EDIT)

    clean = sanitize_changes(changes)

    if edits_need_reapproval(listing.workflow_status):
        was_live = listing.workflow_status == WorkflowStatus.LIVE.value
        listing.pending_changes = {**(listing.pending_changes or {}), **clean}
        listing.workflow_status = WorkflowStatus.NEEDS_REAPPROVAL.value
        if was_live:
            await release_featured_slot(db, listing)
            emit_listing_event(db, listing, "listing.needs_reapproval", reason="seller_edit")
    else:
        _apply_content(listing, clean)

    listing.updated_by = seller_id or listing.updated_by
    await db.flush()
    return success(listing)


async def submit_listing(
    db: AsyncSession,
    listing_id: str,
    *,
    seller_id: str | None = None,
    now: datetime | None = None,
) -> Outcome[Listing]:
    """Hand the listing to moderation. Free: quota is only checked at approval."""
    now = now or utcnow()
    res = await _load(db, listing_id, seller_id)
    if not res.ok:
        return res
    listing = res.value

    target = next_status(listing.workflow_status, ListingEvent.SUBMIT)
    if target is None:
        return _invalid(listing, ListingEvent.SUBMIT)

    listing.review_request_type = "edit" if listing.workflow_status == WorkflowStatus.NEEDS_REAPPROVAL.value else "new"
    listing.workflow_status = target.value
    listing.submitted_at = now
    listing.rejection_reason = None
    listing.updated_by = seller_id or listing.updated_by

    emit_listing_event(db, listing, "listing.submitted", request_type=listing.review_request_type)
    await db.flush()
    return success(listing)


async def claim_listing(db: AsyncSession, listing_id: str, *, admin_id: str) -> Outcome[Listing]:
    res = await _load(db, listing_id, None)
    if not res.ok:
        return res
    listing = res.value

    target = next_status(listing.workflow_status, ListingEvent.CLAIM)
    if target is None:
        return _invalid(listing, ListingEvent.CLAIM)

    listing.workflow_status = target.value
    listing.updated_by = admin_id
    await db.flush()
    return success(listing)


async def _claim_slot_on_current(db: AsyncSession, listing: Listing, now: datetime) -> Outcome[None]:
    if listing.quota_consumed:
        return success()

    sub = await subscriptions.get_active(db, listing.seller_id)
    if sub is None or not sub.is_current(now):
        # no package means no capacity; recoverable by purchase/renewal
        return failure(QuotaExhausted(kind="listing", limit=0, used=0))
    return await claim_listing_slot(db, listing, sub.id)


def _go_live(listing: Listing, now: datetime) -> None:
    listing.workflow_status = WorkflowStatus.LIVE.value
    listing.expires_at = now + timedelta(days=settings.listing_ttl_days)


async def approve_listing(
    db: AsyncSession,
    listing_id: str,
    *,
    admin_id: str,
    now: datetime | None = None,
) -> Outcome[Listing]:
    now = now or utcnow()
    res = await _load(db, listing_id, None)
    if not res.ok:
        return res
    listing = res.value

    if next_status(listing.workflow_status, ListingEvent.APPROVE) is None:
        return _invalid(listing, ListingEvent.APPROVE)

    res = await _claim_slot_on_current(db, listing, now)
    if not res.ok:
        return res

    if listing.pending_changes:
        _apply_content(listing, sanitize_changes(listing.pending_changes))
    listing.pending_changes = None

    _go_live(listing, now)
    listing.approved_at = now
    listing.approved_by = admin_id
    listing.rejection_reason = None
    listing.review_request_type = None
    listing.updated_by = admin_id

    await db.flush()
    return success(listing)


async def reject_listing(
    db: AsyncSession,
    listing_id: str,
    *,
    admin_id: str,
    reason: str,
) -> Outcome[Listing]:
    res = await _load(db, listing_id, None)
    if not res.ok:
        return res
    listing = res.value

    target = next_status(listing.workflow_status, ListingEvent.REJECT)
    if target is None:
        return _invalid(listing, ListingEvent.REJECT)

    # a rejected edit takes a previously live listing offline for good
    await release_listing_slot(db, listing)

    if listing.pending_changes:
        # offline now, so the proposed content becomes the working copy
        _apply_content(listing, sanitize_changes(listing.pending_changes))
    listing.pending_changes = None

    listing.workflow_status = target.value
    listing.rejection_reason = reason
    listing.review_request_type = None
    listing.updated_by = admin_id

    await db.flush()
    return success(listing)


async def mark_transacted(
    db: AsyncSession,
    listing_id: str,
    *,
    outcome: str,
    seller_id: str | None = None,
    now: datetime | None = None,
) -> Outcome[Listing]:
    """live -> sold/rented/leased. The listing slot stays consumed; a featured slot does not."""
    now = now or utcnow()
    res = await _load(db, listing_id, seller_id)
    if not res.ok:
        return res
    listing = res.value

    event = TRANSACTION_EVENTS.get(outcome)
    target = next_status(listing.workflow_status, event) if event else None
    if target is None:
        return _invalid(listing, event or f"mark_{outcome}")

    await release_featured_slot(db, listing)
    listing.workflow_status = target.value
    listing.transacted_at = now
    listing.updated_by = seller_id or listing.updated_by

    emit_listing_event(db, listing, "listing.transacted", outcome=outcome)
    await db.flush()
    return success(listing)


async def expire_listing(
    db: AsyncSession,
    listing_id: str,
    *,
    reason: str = "listing_expired",
) -> Outcome[bool]:
    """
    live -> expired, releasing the slot. Expiring an already-expired listing is a
    no-op (value False) so sweeps can be re-run.
    """
    res = await _load(db, listing_id, None)
    if not res.ok:
        return res
    listing = res.value

    if listing.workflow_status == WorkflowStatus.EXPIRED.value:
        return success(False)

    target = next_status(listing.workflow_status, ListingEvent.EXPIRE)
    if target is None:
        return _invalid(listing, ListingEvent.EXPIRE)

    await release_listing_slot(db, listing)
    listing.workflow_status = target.value
    listing.updated_by = "system"

    emit_listing_event(db, listing, "listing.expired", reason=reason)
    await db.flush()
    return success(True)


async def reactivate_listing(
    db: AsyncSession,
    listing_id: str,
    *,
    seller_id: str | None = None,
    now: datetime | None = None,
) -> Outcome[Listing]:
    """expired -> live, competing for a fresh slot exactly like an approval."""
    now = now or utcnow()
    res = await _load(db, listing_id, seller_id)
    if not res.ok:
        return res
    listing = res.value

    if next_status(listing.workflow_status, ListingEvent.REACTIVATE) is None:
        return _invalid(listing, ListingEvent.REACTIVATE)

    res = await _claim_slot_on_current(db, listing, now)
    if not res.ok:
        return res

    _go_live(listing, now)
    listing.updated_by = seller_id or listing.updated_by

    emit_listing_event(db, listing, "listing.reactivated")
    await db.flush()
    return success(listing)


async def set_featured(
    db: AsyncSession,
    listing_id: str,
    *,
    featured: bool,
    seller_id: str | None = None,
) -> Outcome[Listing]:
    res = await _load(db, listing_id, seller_id)
    if not res.ok:
        return res
    listing = res.value

    if not featured:
        await release_featured_slot(db, listing)
        await db.flush()
        return success(listing)

    if listing.workflow_status != WorkflowStatus.LIVE.value:
        return _invalid(listing, "feature")

    res = await claim_featured_slot(db, listing)
    if not res.ok:
        return res

    emit_listing_event(db, listing, "listing.featured")
    await db.flush()
    return success(listing)
