from datetime import timedelta

from sqlalchemy import select

from app.core.config import settings
from app.core.ids import utcnow
from app.models.outbox import OutboxEvent
from app.services import outbox_dispatcher
from app.services.events import emit


class _RecordingCelery:
    def __init__(self, fail: bool = False):
        self.sent: list[tuple[str, list]] = []
        self.fail = fail

    def send_task(self, name, args=None, queue=None):
        if self.fail:
            raise ConnectionError("broker down")
        self.sent.append((name, args))


async def _seed_events(db_session, n: int = 2) -> list[str]:
    events = [
        emit(db_session, aggregate_type="listing", aggregate_id=f"lst_{i}", event_type="listing.approved", payload={"listing_id": f"lst_{i}"})
        for i in range(n)
    ]
    await db_session.commit()
    return [ev.id for ev in events]


async def test_dispatch_leases_pending_events(db_session, monkeypatch):
    fake = _RecordingCelery()
    monkeypatch.setattr(outbox_dispatcher, "celery", fake)
    ids = await _seed_events(db_session)

    n = await outbox_dispatcher.dispatch_outbox(db_session, batch_size=10)
    assert n == 2
    assert {args[0] for _, args in fake.sent} == set(ids)
    assert all(name == "worker.tasks.process_outbox_event" for name, _ in fake.sent)

    rows = (await db_session.execute(
        select(OutboxEvent).execution_options(populate_existing=True)
    )).scalars().all()
    assert {r.status for r in rows} == {"processing"}
    assert all(r.lease_id and r.attempts == 1 for r in rows)

    # nothing left to hand out
    assert await outbox_dispatcher.dispatch_outbox(db_session, batch_size=10) == 0


async def test_enqueue_failure_returns_events_to_pending(db_session, monkeypatch):
    monkeypatch.setattr(outbox_dispatcher, "celery", _RecordingCelery(fail=True))
    await _seed_events(db_session, 1)

    assert await outbox_dispatcher.dispatch_outbox(db_session) == 0

    row = (await db_session.execute(
        select(OutboxEvent).execution_options(populate_existing=True)
    )).scalar_one()
    assert row.status == "pending"
    assert row.lease_id is None
    assert row.last_error.startswith("enqueue failed")


async def test_worker_marks_event_done(db_session, async_engine, monkeypatch):
    from worker import tasks

    monkeypatch.setattr(outbox_dispatcher, "celery", _RecordingCelery())
    monkeypatch.setattr(settings, "database_url", async_engine.url.render_as_string(hide_password=False))
    await _seed_events(db_session, 1)
    await outbox_dispatcher.dispatch_outbox(db_session)

    row = (await db_session.execute(
        select(OutboxEvent).execution_options(populate_existing=True)
    )).scalar_one()
    await tasks._process_outbox_event(row.id, row.lease_id)

    row = (await db_session.execute(
        select(OutboxEvent).execution_options(populate_existing=True)
    )).scalar_one()
    assert row.status == "done"
    assert row.processed_at is not None
    assert row.lease_id is None


async def test_worker_ignores_stale_lease(db_session, async_engine, monkeypatch):
    from worker import tasks

    monkeypatch.setattr(outbox_dispatcher, "celery", _RecordingCelery())
    monkeypatch.setattr(settings, "database_url", async_engine.url.render_as_string(hide_password=False))
    await _seed_events(db_session, 1)
    await outbox_dispatcher.dispatch_outbox(db_session)

    row = (await db_session.execute(
        select(OutboxEvent).execution_options(populate_existing=True)
    )).scalar_one()
    await tasks._process_outbox_event(row.id, "not-my-lease")

    row = (await db_session.execute(
        select(OutboxEvent).execution_options(populate_existing=True)
    )).scalar_one()
    assert row.status == "processing"


async def test_expired_lease_is_offered_again(db_session, monkeypatch):
    fake = _RecordingCelery()
    monkeypatch.setattr(outbox_dispatcher, "celery", fake)
    [event_id] = await _seed_events(db_session, 1)
    await outbox_dispatcher.dispatch_outbox(db_session, lease_minutes=10)

    # worker never reported back
    later = utcnow() + timedelta(minutes=11)
    assert await outbox_dispatcher.requeue_expired_leases(db_session, now=later) == 1
    await db_session.commit()

    row = (await db_session.execute(
        select(OutboxEvent).execution_options(populate_existing=True)
    )).scalar_one()
    assert (row.status, row.lease_id, row.last_error) == ("pending", None, "requeued: lease expired")

    assert await outbox_dispatcher.dispatch_outbox(db_session) == 1
    row = (await db_session.execute(
        select(OutboxEvent).execution_options(populate_existing=True)
    )).scalar_one()
    assert row.attempts == 2
    assert [args[0] for _, args in fake.sent] == [event_id, event_id]
    assert fake.sent[0][1][1] != fake.sent[1][1][1]
