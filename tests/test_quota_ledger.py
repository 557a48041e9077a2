from app.core.ids import utcnow
from app.services import quota_ledger, subscriptions
from app.services.quota_ledger import QuotaKind
from app.services.results import QuotaExhausted, SubscriptionNotFound


async def test_consume_up_to_limit_then_exhausted(db_session, subscribed_seller, usage_of):
    sub_id = subscribed_seller["subscription"].id

    assert (await quota_ledger.try_consume(db_session, sub_id, QuotaKind.LISTING)).ok
    assert (await quota_ledger.try_consume(db_session, sub_id, QuotaKind.LISTING)).ok

    res = await quota_ledger.try_consume(db_session, sub_id, QuotaKind.LISTING)
    assert not res.ok
    assert isinstance(res.error, QuotaExhausted)
    assert (res.error.kind, res.error.limit, res.error.used, res.error.remaining) == ("listing", 2, 2, 0)

    await db_session.commit()
    u = await usage_of(sub_id)
    assert u.listings_used == 2
    assert u.listings_remaining == 0


async def test_featured_counter_is_independent(db_session, subscribed_seller, usage_of):
    sub_id = subscribed_seller["subscription"].id

    assert (await quota_ledger.try_consume(db_session, sub_id, QuotaKind.FEATURED)).ok
    res = await quota_ledger.try_consume(db_session, sub_id, QuotaKind.FEATURED)
    assert isinstance(res.error, QuotaExhausted)
    assert res.error.kind == "featured"

    u = await usage_of(sub_id)
    assert (u.featured_used, u.listings_used) == (1, 0)


async def test_release_never_goes_below_zero(db_session, subscribed_seller, usage_of):
    sub_id = subscribed_seller["subscription"].id

    assert (await quota_ledger.try_consume(db_session, sub_id, QuotaKind.LISTING)).ok
    assert await quota_ledger.release(db_session, sub_id, QuotaKind.LISTING) is True
    assert await quota_ledger.release(db_session, sub_id, QuotaKind.LISTING) is False

    u = await usage_of(sub_id)
    assert u.listings_used == 0


async def test_inactive_subscription_has_no_capacity(db_session, subscribed_seller):
    sub = subscribed_seller["subscription"]
    assert await subscriptions.deactivate(db_session, sub, reason="expired", now=utcnow())

    res = await quota_ledger.try_consume(db_session, sub.id, QuotaKind.LISTING)
    assert isinstance(res.error, QuotaExhausted)
    assert (res.error.limit, res.error.used) == (0, 0)


async def test_unknown_subscription(db_session):
    res = await quota_ledger.try_consume(db_session, "sub_missing", QuotaKind.LISTING)
    assert isinstance(res.error, SubscriptionNotFound)
    assert res.error.subscription_id == "sub_missing"
