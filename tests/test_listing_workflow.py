import asyncio
from datetime import timedelta

from sqlalchemy import select

from app.core.config import settings
from app.core.ids import utcnow
from app.models.outbox import OutboxEvent
from app.services import approvals, listing_workflow
from app.services.results import InvalidTransition, ListingNotFound, QuotaExhausted


async def test_submit_does_not_consume_quota(db_session, subscribed_seller, make_submitted, usage_of):
    seller = subscribed_seller["seller"]
    listing = await make_submitted(seller.id)

    assert listing.workflow_status == "submitted"
    assert listing.review_request_type == "new"
    assert listing.quota_consumed is False
    assert (await usage_of(subscribed_seller["subscription"].id)).listings_used == 0


async def test_quota_blocks_third_approval(db_session, subscribed_seller, make_submitted, approve, usage_of):
    seller = subscribed_seller["seller"]
    sub_id = subscribed_seller["subscription"].id
    a = await make_submitted(seller.id, "A")
    b = await make_submitted(seller.id, "B")
    c = await make_submitted(seller.id, "C")

    assert (await approve(a.id)).ok
    assert (await approve(b.id)).ok
    assert (await usage_of(sub_id)).listings_used == 2

    res = await approve(c.id)
    assert isinstance(res.error, QuotaExhausted)
    assert (res.error.limit, res.error.used) == (2, 2)
    await db_session.rollback()

    await db_session.refresh(c)
    assert c.workflow_status == "submitted"
    assert c.quota_consumed is False
    assert (await usage_of(sub_id)).listings_used == 2


async def test_concurrent_approvals_never_overshoot_limit(session_factory, seed_seller, make_package, subscribe, make_submitted, usage_of):
    pkg = await make_package(listing_limit=1)
    sub = await subscribe(seed_seller.id, pkg.id, now=utcnow() - timedelta(minutes=1))
    a = await make_submitted(seed_seller.id, "A")
    b = await make_submitted(seed_seller.id, "B")

    async def _decide(listing_id: str):
        async with session_factory() as db:
            res = await approvals.decide(db, listing_id, decision="approve", decided_by="adm_test")
            if res.ok:
                await db.commit()
            else:
                await db.rollback()
            return res

    results = await asyncio.gather(_decide(a.id), _decide(b.id))

    assert sum(1 for r in results if r.ok) == 1
    failed = [r for r in results if not r.ok]
    assert len(failed) == 1
    assert isinstance(failed[0].error, QuotaExhausted)

    usage = await usage_of(sub.id)
    assert (usage.listings_used, usage.listing_limit) == (1, 1)


async def test_expiry_frees_slot_for_pending_listing(db_session, subscribed_seller, make_submitted, approve, usage_of):
    seller = subscribed_seller["seller"]
    sub_id = subscribed_seller["subscription"].id
    a = await make_submitted(seller.id, "A")
    b = await make_submitted(seller.id, "B")
    c = await make_submitted(seller.id, "C")
    await approve(a.id)
    await approve(b.id)

    res = await listing_workflow.expire_listing(db_session, a.id)
    assert res.ok and res.value is True
    await db_session.commit()
    assert (await usage_of(sub_id)).listings_used == 1

    assert (await approve(c.id)).ok
    assert (await usage_of(sub_id)).listings_used == 2

    await db_session.refresh(a)
    assert a.workflow_status == "expired"
    assert a.quota_consumed is False


async def test_approval_sets_expiry(db_session, subscribed_seller, make_live):
    now = utcnow()
    listing = await make_live(subscribed_seller["seller"].id, now=now)

    assert listing.workflow_status == "live"
    assert listing.quota_consumed is True
    assert listing.subscription_id == subscribed_seller["subscription"].id
    assert listing.approved_at == now
    assert listing.expires_at == now + timedelta(days=settings.listing_ttl_days)


async def test_expire_twice_is_noop(db_session, subscribed_seller, make_live, usage_of):
    listing = await make_live(subscribed_seller["seller"].id)

    first = await listing_workflow.expire_listing(db_session, listing.id)
    second = await listing_workflow.expire_listing(db_session, listing.id)
    await db_session.commit()

    assert first.value is True
    assert second.ok and second.value is False
    assert (await usage_of(subscribed_seller["subscription"].id)).listings_used == 0


async def test_expire_draft_is_invalid(db_session, subscribed_seller):
    seller = subscribed_seller["seller"]
    draft = (await listing_workflow.create_listing(db_session, seller_id=seller.id, title="Draft")).value

    res = await listing_workflow.expire_listing(db_session, draft.id)
    assert isinstance(res.error, InvalidTransition)
    assert (res.error.current, res.error.event) == ("draft", "expire")


async def test_draft_edits_apply_in_place(db_session, subscribed_seller):
    seller = subscribed_seller["seller"]
    draft = (await listing_workflow.create_listing(
        db_session, seller_id=seller.id, title="Draft", details={"price": 100},
    )).value

    res = await listing_workflow.edit_listing(
        db_session,
        listing_id=draft.id,
        changes={"title": "Renamed", "price": 120, "quota_consumed": True, "workflow_status": "live"},
        seller_id=seller.id,
    )
    assert res.ok
    assert draft.title == "Renamed"
    assert draft.details == {"price": 120}
    assert draft.workflow_status == "draft"
    assert draft.quota_consumed is False
    assert draft.pending_changes is None


async def test_live_edit_goes_back_to_moderation_keeping_slot(db_session, subscribed_seller, make_live, approve, usage_of):
    seller = subscribed_seller["seller"]
    sub_id = subscribed_seller["subscription"].id
    listing = await make_live(seller.id, "Original")

    res = await listing_workflow.edit_listing(
        db_session, listing_id=listing.id, changes={"title": "Updated", "price": 300000}, seller_id=seller.id,
    )
    assert res.ok
    await db_session.commit()

    assert listing.workflow_status == "needs_reapproval"
    assert listing.title == "Original"
    assert listing.pending_changes == {"title": "Updated", "price": 300000}
    assert listing.quota_consumed is True
    assert (await usage_of(sub_id)).listings_used == 1

    res = await listing_workflow.submit_listing(db_session, listing.id, seller_id=seller.id)
    assert res.ok
    assert listing.review_request_type == "edit"
    await db_session.commit()

    assert (await approve(listing.id)).ok
    await db_session.refresh(listing)
    assert listing.workflow_status == "live"
    assert listing.title == "Updated"
    assert listing.details["price"] == 300000
    assert listing.pending_changes is None
    # re-approval reuses the slot it kept
    assert (await usage_of(sub_id)).listings_used == 1


async def test_cannot_edit_while_pending(db_session, subscribed_seller, make_submitted):
    seller = subscribed_seller["seller"]
    listing = await make_submitted(seller.id)

    res = await listing_workflow.edit_listing(db_session, listing_id=listing.id, changes={"price": 1}, seller_id=seller.id)
    assert isinstance(res.error, InvalidTransition)


async def test_other_sellers_listing_is_not_found(db_session, subscribed_seller, make_submitted):
    listing = await make_submitted(subscribed_seller["seller"].id)

    res = await listing_workflow.submit_listing(db_session, listing.id, seller_id="slr_someone_else")
    assert isinstance(res.error, ListingNotFound)


async def test_featured_quota(db_session, subscribed_seller, make_live, usage_of):
    seller = subscribed_seller["seller"]
    sub_id = subscribed_seller["subscription"].id
    a = await make_live(seller.id, "A")
    b = await make_live(seller.id, "B")

    assert (await listing_workflow.set_featured(db_session, a.id, featured=True, seller_id=seller.id)).ok
    # already featured: no second unit
    assert (await listing_workflow.set_featured(db_session, a.id, featured=True, seller_id=seller.id)).ok
    await db_session.commit()
    assert (await usage_of(sub_id)).featured_used == 1

    res = await listing_workflow.set_featured(db_session, b.id, featured=True, seller_id=seller.id)
    assert isinstance(res.error, QuotaExhausted)
    assert res.error.kind == "featured"

    assert (await listing_workflow.set_featured(db_session, a.id, featured=False, seller_id=seller.id)).ok
    assert (await listing_workflow.set_featured(db_session, b.id, featured=True, seller_id=seller.id)).ok
    await db_session.commit()
    assert (await usage_of(sub_id)).featured_used == 1
    assert (a.is_featured, b.is_featured) == (False, True)


async def test_only_live_listings_can_be_featured(db_session, subscribed_seller, make_submitted):
    listing = await make_submitted(subscribed_seller["seller"].id)
    res = await listing_workflow.set_featured(db_session, listing.id, featured=True)
    assert isinstance(res.error, InvalidTransition)


async def test_mark_sold_keeps_listing_slot(db_session, subscribed_seller, make_live, usage_of):
    seller = subscribed_seller["seller"]
    sub_id = subscribed_seller["subscription"].id
    listing = await make_live(seller.id)
    await listing_workflow.set_featured(db_session, listing.id, featured=True, seller_id=seller.id)

    res = await listing_workflow.mark_transacted(db_session, listing.id, outcome="sold", seller_id=seller.id)
    assert res.ok
    await db_session.commit()

    assert listing.workflow_status == "sold"
    assert listing.transacted_at is not None
    assert listing.quota_consumed is True
    assert listing.is_featured is False
    u = await usage_of(sub_id)
    assert (u.listings_used, u.featured_used) == (1, 0)

    res = await listing_workflow.mark_transacted(db_session, listing.id, outcome="rented", seller_id=seller.id)
    assert isinstance(res.error, InvalidTransition)


async def test_unknown_transaction_outcome(db_session, subscribed_seller, make_live):
    listing = await make_live(subscribed_seller["seller"].id)
    res = await listing_workflow.mark_transacted(db_session, listing.id, outcome="donated")
    assert isinstance(res.error, InvalidTransition)
    assert res.error.event == "mark_donated"


async def test_reactivate_competes_for_a_slot(db_session, subscribed_seller, make_live, make_submitted, approve, usage_of):
    seller = subscribed_seller["seller"]
    sub_id = subscribed_seller["subscription"].id
    a = await make_live(seller.id, "A")
    b = await make_submitted(seller.id, "B")

    await listing_workflow.expire_listing(db_session, a.id)
    await db_session.commit()
    assert (await approve(b.id)).ok

    res = await listing_workflow.reactivate_listing(db_session, a.id, seller_id=seller.id)
    assert res.ok
    await db_session.commit()
    assert a.workflow_status == "live"
    assert (await usage_of(sub_id)).listings_used == 2

    events = (await db_session.execute(
        select(OutboxEvent.event_type).where(OutboxEvent.aggregate_id == a.id).order_by(OutboxEvent.created_at)
    )).scalars().all()
    assert "listing.expired" in events and "listing.reactivated" in events


async def test_reactivate_at_limit_fails(db_session, seed_seller, make_package, subscribe, make_live, usage_of):
    pkg = await make_package(listing_limit=1)
    sub = await subscribe(seed_seller.id, pkg.id, now=utcnow() - timedelta(minutes=1))
    sub_id = sub.id
    a = await make_live(seed_seller.id, "A")
    await listing_workflow.expire_listing(db_session, a.id)
    await db_session.commit()
    await make_live(seed_seller.id, "B")

    res = await listing_workflow.reactivate_listing(db_session, a.id, seller_id=seed_seller.id)
    assert isinstance(res.error, QuotaExhausted)
    await db_session.rollback()

    await db_session.refresh(a)
    assert a.workflow_status == "expired"
    assert (await usage_of(sub_id)).listings_used == 1
