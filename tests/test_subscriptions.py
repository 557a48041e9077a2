from datetime import timedelta

from sqlalchemy import func, select

from app.core.ids import utcnow
from app.models.outbox import OutboxEvent
from app.models.subscription import Subscription
from app.services import listing_workflow, sellers, subscriptions
from app.services.results import NoActiveSubscription, PackageUnavailable, SellerInactive


async def test_can_create_listing_without_subscription(db_session, seed_seller):
    check = await subscriptions.can_create_listing(db_session, seed_seller.id)
    assert check.can_create is False
    assert check.remaining == 0
    assert "No active subscription" in check.reason


async def test_can_create_listing_reports_remaining(db_session, subscribed_seller, make_live):
    seller = subscribed_seller["seller"]

    check = await subscriptions.can_create_listing(db_session, seller.id)
    assert (check.can_create, check.remaining, check.reason) == (True, 2, None)

    await make_live(seller.id, "One")
    await make_live(seller.id, "Two")

    check = await subscriptions.can_create_listing(db_session, seller.id)
    assert check.can_create is False
    assert "listing limit" in check.reason


async def test_can_create_listing_after_end_date(db_session, subscribed_seller):
    seller = subscribed_seller["seller"]
    later = subscribed_seller["subscription"].end_date + timedelta(hours=1)

    check = await subscriptions.can_create_listing(db_session, seller.id, now=later)
    assert check.can_create is False
    assert "expired" in check.reason


async def test_create_listing_requires_subscription(db_session, seed_seller):
    res = await listing_workflow.create_listing(db_session, seller_id=seed_seller.id, title="Villa")
    assert isinstance(res.error, NoActiveSubscription)


async def test_purchase_supersedes_previous(db_session, seed_seller, make_package, subscribe):
    small = await make_package(listing_limit=1)
    big = await make_package(listing_limit=5, duration_days=90)

    first = await subscribe(seed_seller.id, small.id)
    second = await subscribe(seed_seller.id, big.id)

    await db_session.refresh(first)
    assert first.is_active is False
    assert first.deactivation_reason == "superseded"
    assert first.updated_by == seed_seller.id

    active = await subscriptions.get_active(db_session, seed_seller.id)
    assert active.id == second.id
    assert (active.listing_limit, active.listings_used) == (5, 0)
    assert active.end_date - active.start_date == timedelta(days=90)

    n_active = (await db_session.execute(
        select(func.count()).select_from(Subscription).where(
            Subscription.seller_id == seed_seller.id, Subscription.is_active.is_(True),
        )
    )).scalar_one()
    assert n_active == 1

    history = await subscriptions.subscription_history(db_session, seed_seller.id)
    assert {s.id for s in history} == {first.id, second.id}


async def test_purchase_carries_live_listings_over(db_session, subscribed_seller, make_package, subscribe, make_live, usage_of):
    seller = subscribed_seller["seller"]
    old_sub = subscribed_seller["subscription"]
    live = await make_live(seller.id)

    bigger = await make_package(listing_limit=10)
    new_sub = await subscribe(seller.id, bigger.id)

    await db_session.refresh(live)
    assert live.workflow_status == "live"
    assert live.quota_consumed is True
    assert live.subscription_id == new_sub.id

    assert (await usage_of(new_sub.id)).listings_used == 1
    assert (await usage_of(old_sub.id)).listings_used == 0


async def test_downgrade_sends_overflow_to_reapproval(db_session, subscribed_seller, make_package, subscribe, make_live, usage_of):
    seller = subscribed_seller["seller"]
    t0 = utcnow()
    first = await make_live(seller.id, "First", now=t0)
    second = await make_live(seller.id, "Second", now=t0 + timedelta(seconds=5))

    smaller = await make_package(listing_limit=1)
    new_sub = await subscribe(seller.id, smaller.id, now=t0 + timedelta(seconds=10))

    await db_session.refresh(first)
    await db_session.refresh(second)

    assert first.workflow_status == "live"
    assert first.subscription_id == new_sub.id

    assert second.workflow_status == "needs_reapproval"
    assert second.quota_consumed is False
    assert second.subscription_id is None

    assert (await usage_of(new_sub.id)).listings_used == 1

    events = (await db_session.execute(
        select(OutboxEvent.event_type).where(OutboxEvent.aggregate_id == second.id)
    )).scalars().all()
    assert "listing.needs_reapproval" in events


async def test_downgrade_keeps_live_listing_over_one_in_remoderation(db_session, subscribed_seller, make_package, subscribe, make_live, usage_of):
    seller = subscribed_seller["seller"]
    t0 = utcnow()
    older = await make_live(seller.id, "Older", now=t0)
    newer = await make_live(seller.id, "Newer", now=t0 + timedelta(seconds=5))

    # the older listing goes back to moderation, still holding its slot
    assert (await listing_workflow.edit_listing(
        db_session, listing_id=older.id, changes={"title": "Older, repainted"}, seller_id=seller.id,
    )).ok
    assert (await listing_workflow.submit_listing(db_session, older.id, seller_id=seller.id)).ok
    await db_session.commit()

    smaller = await make_package(listing_limit=1)
    new_sub = await subscribe(seller.id, smaller.id, now=t0 + timedelta(seconds=10))

    await db_session.refresh(older)
    await db_session.refresh(newer)

    assert newer.workflow_status == "live"
    assert newer.quota_consumed is True
    assert newer.subscription_id == new_sub.id

    assert older.workflow_status == "submitted"
    assert older.quota_consumed is False
    assert older.subscription_id is None

    assert (await usage_of(new_sub.id)).listings_used == 1

    events = (await db_session.execute(
        select(OutboxEvent.event_type).where(OutboxEvent.aggregate_id == newer.id)
    )).scalars().all()
    assert "listing.needs_reapproval" not in events


async def test_featured_flag_survives_carry_over_when_room(db_session, subscribed_seller, make_package, subscribe, make_live, usage_of):
    seller = subscribed_seller["seller"]
    live = await make_live(seller.id)
    assert (await listing_workflow.set_featured(db_session, live.id, featured=True, seller_id=seller.id)).ok
    await db_session.commit()

    no_featured = await make_package(listing_limit=3, featured_limit=0)
    new_sub = await subscribe(seller.id, no_featured.id)

    await db_session.refresh(live)
    assert live.workflow_status == "live"
    assert live.is_featured is False
    assert (await usage_of(new_sub.id)).featured_used == 0


async def test_renew_buys_same_package(db_session, subscribed_seller, make_live, usage_of):
    seller = subscribed_seller["seller"]
    old_sub = subscribed_seller["subscription"]
    await make_live(seller.id)

    res = await subscriptions.renew_subscription(db_session, seller_id=seller.id)
    assert res.ok
    await db_session.commit()
    renewed = res.value

    assert renewed.id != old_sub.id
    assert renewed.package_id == old_sub.package_id
    assert (await usage_of(renewed.id)).listings_used == 1

    kinds = (await db_session.execute(
        select(OutboxEvent.event_type).where(OutboxEvent.aggregate_id == renewed.id)
    )).scalars().all()
    assert kinds == ["subscription.renewed"]


async def test_renew_without_history(db_session, seed_seller):
    res = await subscriptions.renew_subscription(db_session, seller_id=seed_seller.id)
    assert isinstance(res.error, NoActiveSubscription)


async def test_package_restricted_to_seller_type(db_session, seed_seller, make_package):
    builders_only = await make_package(seller_type="builder")
    res = await subscriptions.purchase_subscription(db_session, seller_id=seed_seller.id, package_id=builders_only.id)
    assert isinstance(res.error, PackageUnavailable)


async def test_inactive_package_cannot_be_bought(db_session, seed_seller, make_package):
    from app.services import packages

    pkg = await make_package()
    await packages.update_package(db_session, admin_id="adm_test", package_id=pkg.id, is_active=False)
    await db_session.commit()

    res = await subscriptions.purchase_subscription(db_session, seller_id=seed_seller.id, package_id=pkg.id)
    assert isinstance(res.error, PackageUnavailable)
    assert res.error.reason == "inactive"


async def test_deactivated_seller_cannot_buy(db_session, seed_seller, make_package):
    pkg = await make_package()
    await sellers.deactivate_seller(db_session, seller_id=seed_seller.id, admin_id="adm_test")
    await db_session.commit()

    res = await subscriptions.purchase_subscription(db_session, seller_id=seed_seller.id, package_id=pkg.id)
    assert isinstance(res.error, SellerInactive)
