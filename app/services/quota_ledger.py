"""
Quota ledger: the two per-subscription counters (listings_used, featured_used).

Every mutation is one guarded UPDATE on a single subscription row, so two
concurrent approvals for the same seller can never push a counter past its
limit or lose an update. The ledger never touches listing rows; callers keep
the per-listing ``quota_consumed`` / ``is_featured`` flags in step.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.subscription import Subscription
from app.services.results import Outcome, QuotaExhausted, SubscriptionNotFound, failure, success


log = logging.getLogger(__name__)


class QuotaKind(str, Enum):
    LISTING = "listing"
    FEATURED = "featured"


def _columns(kind: QuotaKind):
    if kind == QuotaKind.LISTING:
        return Subscription.listings_used, Subscription.listing_limit
    return Subscription.featured_used, Subscription.featured_limit


@dataclass(frozen=True)
class QuotaUsage:
    listing_limit: int
    listings_used: int
    featured_limit: int
    featured_used: int

    @property
    def listings_remaining(self) -> int:
        return max(0, self.listing_limit - self.listings_used)

    @property
    def featured_remaining(self) -> int:
        return max(0, self.featured_limit - self.featured_used)


def usage(sub: Subscription) -> QuotaUsage:
    return QuotaUsage(
        listing_limit=sub.listing_limit,
        listings_used=sub.listings_used,
        featured_limit=sub.featured_limit,
        featured_used=sub.featured_used,
    )


async def try_consume(db: AsyncSession, subscription_id: str, kind: QuotaKind) -> Outcome[None]:
    used_col, limit_col = _columns(kind)

    # compare-and-swap: only succeeds while used < limit on an active row
    result = await db.execute(
        update(Subscription)
        .where(
            Subscription.id == subscription_id,
            Subscription.is_active.is_(True),
            used_col < limit_col,
        )
        .values({used_col.key: used_col + 1})
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 1:
        return success()

    row = (await db.execute(
        select(used_col, limit_col, Subscription.is_active).where(Subscription.id == subscription_id)
    )).one_or_none()
    if row is None:
        return failure(SubscriptionNotFound(subscription_id=subscription_id))

    used, limit, is_active = row
    if not is_active:
        # an inactive subscription has no capacity left to hand out
        return failure(QuotaExhausted(kind=kind.value, limit=0, used=0))
    return failure(QuotaExhausted(kind=kind.value, limit=limit, used=used))


async def release(db: AsyncSession, subscription_id: str, kind: QuotaKind) -> bool:
    """
    Give one unit back. Returns False (and logs) when there was nothing to
    release, so retried side effects are harmless.
    """
    used_col, _ = _columns(kind)

    result = await db.execute(
        update(Subscription)
        .where(Subscription.id == subscription_id, used_col > 0)
        .values({used_col.key: used_col - 1})
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 1:
        return True

    log.warning("quota_ledger: release no-op subscription=%s kind=%s", subscription_id, kind.value)
    return False


async def load_usage(db: AsyncSession, subscription_id: str) -> QuotaUsage | None:
    sub = await db.get(Subscription, subscription_id, populate_existing=True)
    return usage(sub) if sub else None
