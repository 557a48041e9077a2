"""
Keeps a listing's slot flags (quota_consumed / subscription_id / is_featured)
in step with the quota ledger counters.
"""
from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from app.models.listing import Listing
from app.services import quota_ledger
from app.services.quota_ledger import QuotaKind
from app.services.results import Outcome, success


async def claim_listing_slot(db: AsyncSession, listing: Listing, subscription_id: str) -> Outcome[None]:
    if listing.quota_consumed:
        return success()

    res = await quota_ledger.try_consume(db, subscription_id, QuotaKind.LISTING)
    if not res.ok:
        return res

    listing.quota_consumed = True
    listing.subscription_id = subscription_id
    return success()


async def release_featured_slot(db: AsyncSession, listing: Listing) -> bool:
    if not listing.is_featured:
        return False

    listing.is_featured = False
    if listing.subscription_id is None:
        return False
    return await quota_ledger.release(db, listing.subscription_id, QuotaKind.FEATURED)


async def release_listing_slot(db: AsyncSession, listing: Listing) -> bool:
    """Give the listing's slot (and featured slot, if any) back. No-op when it holds none."""
    await release_featured_slot(db, listing)

    if not listing.quota_consumed:
        return False

    released = False
    if listing.subscription_id is not None:
        released = await quota_ledger.release(db, listing.subscription_id, QuotaKind.LISTING)

    listing.quota_consumed = False
    listing.subscription_id = None
    return released


async def claim_featured_slot(db: AsyncSession, listing: Listing) -> Outcome[None]:
    if listing.is_featured:
        return success()

    # featured units come from the subscription that already carries the listing
    res = await quota_ledger.try_consume(db, listing.subscription_id, QuotaKind.FEATURED)
    if not res.ok:
        return res

    listing.is_featured = True
    return success()
