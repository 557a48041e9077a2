"""
Periodic expiry sweep.

Each subscription and each listing is handled in its own short transaction,
so an interrupted sweep leaves no half-applied state and the next run simply
picks up what is left. For an expired subscription the seller's listings
are expired first and the subscription is deactivated last; if the run stops
in between, the subscription is still "active and past its end date" and
gets swept again.
"""
from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta

from opentelemetry import trace
from sqlalchemy import and_, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.config import settings
from app.core.ids import utcnow
from app.models.listing import Listing
from app.models.subscription import Subscription
from app.services import listing_workflow, subscriptions
from app.services.events import emit_subscription_event
from app.services.listing_slots import release_listing_slot
from app.services.listing_state import WorkflowStatus


log = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

LIVE = WorkflowStatus.LIVE.value


@dataclass
class SweepSummary:
    subscriptions_expired: int = 0
    listings_expired: int = 0
    slots_released: int = 0
    expiry_notices: int = 0

    @property
    def transitions(self) -> int:
        return self.subscriptions_expired + self.listings_expired + self.slots_released

    def as_dict(self) -> dict[str, int]:
        return {**asdict(self), "transitions": self.transitions}


async def _ids(session_factory: async_sessionmaker[AsyncSession], stmt) -> list[str]:
    async with session_factory() as db:
        return list((await db.execute(stmt)).scalars().all())


async def _expire_subscription_listings(
    session_factory: async_sessionmaker[AsyncSession],
    sub: tuple[str, str],
    summary: SweepSummary,
) -> None:
    sub_id, seller_id = sub
    listing_ids = await _ids(
        session_factory,
        select(Listing.id).where(
            or_(
                and_(Listing.seller_id == seller_id, Listing.workflow_status == LIVE),
                and_(Listing.subscription_id == sub_id, Listing.quota_consumed.is_(True)),
            )
        ).order_by(Listing.id),
    )

    for listing_id in listing_ids:
        async with session_factory() as db:
            listing = await listing_workflow.get_listing(db, listing_id, for_update=True)
            if listing is None:
                continue

            if listing.workflow_status == LIVE:
                res = await listing_workflow.expire_listing(db, listing_id, reason="subscription_expired")
                if res.ok and res.value:
                    summary.listings_expired += 1
            elif listing.subscription_id == sub_id and listing.workflow_status not in (
                WorkflowStatus.SOLD.value, WorkflowStatus.RENTED.value, WorkflowStatus.LEASED.value,
            ):
                # listing under re-moderation loses the slot it was keeping
                if await release_listing_slot(db, listing):
                    summary.slots_released += 1
                listing.updated_by = "system"

            await db.commit()


async def _deactivate_subscription(
    session_factory: async_sessionmaker[AsyncSession],
    sub_id: str,
    now: datetime,
    summary: SweepSummary,
) -> None:
    async with session_factory() as db:
        sub = await db.get(Subscription, sub_id, with_for_update=True, populate_existing=True)
        if sub is None or not sub.is_active or sub.end_date >= now:
            return

        if await subscriptions.deactivate(db, sub, reason="expired", now=now):
            emit_subscription_event(db, sub, "subscription.expired")
            summary.subscriptions_expired += 1
        await db.commit()


async def _send_expiry_notices(
    session_factory: async_sessionmaker[AsyncSession],
    now: datetime,
    summary: SweepSummary,
) -> None:
    cutoff = now + timedelta(days=settings.subscription_expiry_notice_days)
    sub_ids = await _ids(
        session_factory,
        select(Subscription.id).where(
            Subscription.is_active.is_(True),
            Subscription.expiry_notice_sent_at.is_(None),
            Subscription.end_date >= now,
            Subscription.end_date <= cutoff,
        ),
    )

    for sub_id in sub_ids:
        async with session_factory() as db:
            result = await db.execute(
                update(Subscription)
                .where(Subscription.id == sub_id, Subscription.expiry_notice_sent_at.is_(None))
                .values(expiry_notice_sent_at=now)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 1:
                sub = await db.get(Subscription, sub_id, populate_existing=True)
                emit_subscription_event(db, sub, "subscription.expiring", days_left=max(0, (sub.end_date - now).days))
                summary.expiry_notices += 1
            await db.commit()


async def run_expiry_sweep(
    session_factory: async_sessionmaker[AsyncSession],
    now: datetime | None = None,
) -> SweepSummary:
    """Idempotent; safe to cancel and re-run at any point."""
    now = now or utcnow()
    summary = SweepSummary()

    with tracer.start_as_current_span("expiry_sweep") as span:
        # 1) subscriptions past their end date, with everything they carried
        due = await _subs_due(session_factory, now)
        for sub in due:
            await _expire_subscription_listings(session_factory, sub, summary)
            await _deactivate_subscription(session_factory, sub[0], now, summary)

        # 2) listings past their own expiry
        listing_ids = await _ids(
            session_factory,
            select(Listing.id).where(
                Listing.workflow_status == LIVE,
                Listing.expires_at.is_not(None),
                Listing.expires_at < now,
            ).order_by(Listing.expires_at.asc()),
        )
        for listing_id in listing_ids:
            async with session_factory() as db:
                res = await listing_workflow.expire_listing(db, listing_id, reason="listing_expired")
                if res.ok and res.value:
                    summary.listings_expired += 1
                await db.commit()

        # 3) heads-up for subscriptions about to end
        await _send_expiry_notices(session_factory, now, summary)

        span.set_attribute("sweep.transitions", summary.transitions)

    log.info("expiry_sweep: %s", summary.as_dict())
    return summary


async def _subs_due(session_factory: async_sessionmaker[AsyncSession], now: datetime) -> list[tuple[str, str]]:
    async with session_factory() as db:
        rows = (await db.execute(
            select(Subscription.id, Subscription.seller_id)
            .where(Subscription.is_active.is_(True), Subscription.end_date < now)
            .order_by(Subscription.end_date.asc())
        )).all()
    return [(r[0], r[1]) for r in rows]
