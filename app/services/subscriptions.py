"""
Subscription manager.

Owns the single active subscription per seller. ``get_active`` is the only
way the rest of the engine looks up a seller's subscription.

Purchasing (or renewing) deactivates the previous subscription and opens a
new one with zeroed counters in the same transaction. Listings that held a
slot on the old subscription are then carried over, live listings before
those in re-moderation and oldest approval first within each group;
whatever no longer fits under the new limit is taken offline for
re-approval instead of staying live over quota.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import case, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.ids import utcnow
from app.models.listing import Listing
from app.models.subscription import Subscription
from app.services import packages, sellers
from app.services.events import emit_listing_event, emit_subscription_event
from app.services.listing_slots import claim_featured_slot, claim_listing_slot, release_listing_slot
from app.services.listing_state import ListingEvent, WorkflowStatus, next_status
from app.services.quota_ledger import usage
from app.services.results import NoActiveSubscription, Outcome, failure, success


log = logging.getLogger(__name__)

# Statuses in which a listing may still hold a slot that has to follow the seller
SLOT_HOLDING_STATUSES = (
    WorkflowStatus.LIVE.value,
    WorkflowStatus.NEEDS_REAPPROVAL.value,
    WorkflowStatus.SUBMITTED.value,
    WorkflowStatus.UNDER_REVIEW.value,
)


@dataclass(frozen=True)
class CreateCheck:
    can_create: bool
    remaining: int
    reason: str | None = None


@dataclass(frozen=True)
class CarryOver:
    kept: int = 0
    featured_kept: int = 0
    sent_to_reapproval: int = 0
    released: int = 0


async def get_active(db: AsyncSession, seller_id: str, *, for_update: bool = False) -> Subscription | None:
    stmt = (
        select(Subscription)
        .where(Subscription.seller_id == seller_id, Subscription.is_active.is_(True))
        .order_by(Subscription.end_date.desc())
        .limit(1)
    )
    if for_update:
        stmt = stmt.with_for_update()
    return (await db.execute(stmt)).scalar_one_or_none()


async def require_current(db: AsyncSession, seller_id: str, now: datetime | None = None) -> Outcome[Subscription]:
    now = now or utcnow()
    sub = await get_active(db, seller_id)
    if sub is None or not sub.is_current(now):
        return failure(NoActiveSubscription(seller_id=seller_id))
    return success(sub)


async def can_create_listing(db: AsyncSession, seller_id: str, now: datetime | None = None) -> CreateCheck:
    """Read-only pre-check shown before the creation form. Never touches counters."""
    now = now or utcnow()
    sub = await get_active(db, seller_id)
    if sub is None:
        return CreateCheck(False, 0, "No active subscription. Please purchase a package to list properties.")
    if not sub.is_current(now):
        return CreateCheck(False, 0, "Your subscription has expired. Please renew to continue listing properties.")

    await db.refresh(sub)
    remaining = usage(sub).listings_remaining
    if remaining <= 0:
        return CreateCheck(False, 0, "You have reached your listing limit. Please upgrade your package for more listings.")
    return CreateCheck(True, remaining)


async def subscription_history(db: AsyncSession, seller_id: str) -> list[Subscription]:
    stmt = (
        select(Subscription)
        .where(Subscription.seller_id == seller_id)
        .order_by(Subscription.start_date.desc())
    )
    return list((await db.execute(stmt)).scalars().all())


async def deactivate(
    db: AsyncSession,
    sub: Subscription,
    *,
    reason: str,
    now: datetime,
    actor_id: str = "system",
) -> bool:
    """Flip is_active off exactly once. Returns False if it was already inactive."""
    result = await db.execute(
        update(Subscription)
        .where(Subscription.id == sub.id, Subscription.is_active.is_(True))
        .values(is_active=False, deactivated_at=now, deactivation_reason=reason, updated_by=actor_id)
        .execution_options(synchronize_session=False)
    )
    await db.refresh(sub)
    return result.rowcount == 1


async def purchase_subscription(
    db: AsyncSession,
    *,
    seller_id: str,
    package_id: str,
    now: datetime | None = None,
    payment_reference: str | None = None,
    event_type: str = "subscription.activated",
) -> Outcome[Subscription]:
    """
    Open a new subscription for the seller, superseding the current one.
    Payment has already been captured upstream.
    """
    now = now or utcnow()

    # seller row lock serialises concurrent purchases for the same seller
    res = await sellers.require_active_seller(db, seller_id, for_update=True)
    if not res.ok:
        return res
    seller = res.value

    res = await packages.require_purchasable(db, package_id, seller)
    if not res.ok:
        return res
    pkg = res.value

    previous = await get_active(db, seller_id, for_update=True)
    if previous is not None:
        await deactivate(db, previous, reason="superseded", now=now, actor_id=seller.id)

    sub = Subscription(
        seller_id=seller.id,
        package_id=pkg.id,
        start_date=now,
        end_date=now + timedelta(days=pkg.duration_days),
        listing_limit=pkg.listing_limit,
        featured_limit=pkg.featured_limit,
        listings_used=0,
        featured_used=0,
        is_active=True,
        payment_reference=payment_reference,
        created_by=seller.id,
        updated_by=seller.id,
    )
    db.add(sub)
    await db.flush()

    carried = await _carry_over_listings(db, seller_id=seller.id, new_sub=sub)
    await db.refresh(sub)

    emit_subscription_event(
        db,
        sub,
        event_type,
        listing_limit=sub.listing_limit,
        featured_limit=sub.featured_limit,
        previous_subscription_id=previous.id if previous else None,
        listings_carried_over=carried.kept,
        listings_sent_to_reapproval=carried.sent_to_reapproval,
    )
    log.info(
        "subscriptions: seller=%s package=%s sub=%s carried=%d reapproval=%d",
        seller.id, pkg.id, sub.id, carried.kept, carried.sent_to_reapproval,
    )
    return success(sub)


async def renew_subscription(
    db: AsyncSession,
    *,
    seller_id: str,
    now: datetime | None = None,
    payment_reference: str | None = None,
) -> Outcome[Subscription]:
    """Buy the seller's current (or most recent) package again."""
    current = await get_active(db, seller_id)
    if current is None:
        history = await subscription_history(db, seller_id)
        current = history[0] if history else None
    if current is None:
        return failure(NoActiveSubscription(seller_id=seller_id))

    return await purchase_subscription(
        db,
        seller_id=seller_id,
        package_id=current.package_id,
        now=now,
        payment_reference=payment_reference,
        event_type="subscription.renewed",
    )


async def _carry_over_listings(db: AsyncSession, *, seller_id: str, new_sub: Subscription) -> CarryOver:
    rows = (await db.execute(
        select(Listing)
        .where(
            Listing.seller_id == seller_id,
            Listing.quota_consumed.is_(True),
            Listing.workflow_status.in_(SLOT_HOLDING_STATUSES),
        )
        # live inventory keeps its place ahead of listings already back in moderation
        .order_by(
            case((Listing.workflow_status == WorkflowStatus.LIVE.value, 0), else_=1),
            Listing.approved_at.asc(),
            Listing.id.asc(),
        )
        .with_for_update()
    )).scalars().all()

    kept = featured_kept = reapproval = released = 0
    for listing in rows:
        was_featured = listing.is_featured
        await release_listing_slot(db, listing)

        claimed = await claim_listing_slot(db, listing, new_sub.id)
        if claimed.ok:
            kept += 1
            if was_featured and (await claim_featured_slot(db, listing)).ok:
                featured_kept += 1
            continue

        released += 1
        if listing.workflow_status == WorkflowStatus.LIVE.value:
            listing.workflow_status = next_status(listing.workflow_status, ListingEvent.FORCE_REAPPROVAL).value
            listing.updated_by = "system"
            reapproval += 1
            emit_listing_event(db, listing, "listing.needs_reapproval", reason="package_downgrade")

    await db.flush()
    return CarryOver(kept=kept, featured_kept=featured_kept, sent_to_reapproval=reapproval, released=released)
