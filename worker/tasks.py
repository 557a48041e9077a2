import asyncio
import logging
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker
from sqlalchemy.sql import func

from worker.celery_app import celery
from app.core.config import settings
import app.models  # noqa: F401  # ensures Models are registered
from app.models.outbox import OutboxEvent
from app.notifications.registry import NOTIFIABLE_EVENTS, get_notifier
from app.services.expiry_sweeper import run_expiry_sweep as _run_expiry_sweep
from app.services.outbox_dispatcher import dispatch_outbox as _dispatch_outbox


log = logging.getLogger(__name__)

MAX_OUTBOX_ATTEMPTS = 5


async def _release(db, outbox_id: str, lease_id: str, *, status: str, error: str | None) -> None:
    await db.execute(
        update(OutboxEvent)
        .where(OutboxEvent.id == outbox_id, OutboxEvent.lease_id == lease_id)
        .values(
            status=status,
            lease_id=None,
            lease_expires_at=None,
            processing_started_at=None,
            last_error=error,
        )
    )
    await db.commit()


async def _process_outbox_event(outbox_id: str, lease_id: str) -> None:
    engine = create_async_engine(settings.database_url, pool_pre_ping=True)
    Session = async_sessionmaker(engine, expire_on_commit=False)

    async with Session() as db:
        ev = (await db.execute(select(OutboxEvent).where(OutboxEvent.id == outbox_id))).scalar_one_or_none()
        if not ev:
            await engine.dispose()
            return

        # Lease ownership check
        if ev.lease_id != lease_id or ev.status != "processing":
            # Another dispatcher reclaimed it or it's already done.
            await engine.dispose()
            return

        try:
            if ev.event_type in NOTIFIABLE_EVENTS:
                result = await get_notifier().send(event_type=ev.event_type, payload=ev.payload)
                if not result.ok:
                    if result.retryable and ev.attempts < MAX_OUTBOX_ATTEMPTS:
                        await _release(db, outbox_id, lease_id, status="pending", error=result.error_message)
                    else:
                        await _release(db, outbox_id, lease_id, status="failed", error=result.error_message)
                    await engine.dispose()
                    return

            # Mark done only if lease still matches
            done = await db.execute(
                update(OutboxEvent)
                .where(OutboxEvent.id == outbox_id, OutboxEvent.lease_id == lease_id)
                .values(
                    status="done",
                    processed_at=func.now(),
                    lease_id=None,
                    lease_expires_at=None,
                )
            )
            if done.rowcount == 0:
                # lease lost; do not overwrite
                await db.rollback()
                await engine.dispose()
                return

            await db.commit()

        except Exception as e:
            log.exception("outbox: event=%s failed", outbox_id)
            # Return to pending if lease matches; store error
            await db.rollback()
            await _release(db, outbox_id, lease_id, status="pending", error=f"{type(e).__name__}: {e}")

    await engine.dispose()


async def _dispatch() -> int:
    engine = create_async_engine(settings.database_url, pool_pre_ping=True)
    Session = async_sessionmaker(engine, expire_on_commit=False)
    try:
        async with Session() as db:
            return await _dispatch_outbox(
                db, batch_size=settings.outbox_batch_size, lease_minutes=settings.outbox_lease_minutes,
            )
    finally:
        await engine.dispose()


async def _sweep() -> dict:
    engine = create_async_engine(settings.database_url, pool_pre_ping=True)
    Session = async_sessionmaker(engine, expire_on_commit=False)
    try:
        summary = await _run_expiry_sweep(Session)
        return summary.as_dict()
    finally:
        await engine.dispose()


@celery.task(name="worker.tasks.process_outbox_event", bind=True, max_retries=5)
def process_outbox_event(self, outbox_id: str, lease_id: str) -> None:
    asyncio.run(_process_outbox_event(outbox_id, lease_id))


@celery.task(name="worker.tasks.dispatch_outbox")
def dispatch_outbox() -> int:
    return asyncio.run(_dispatch())


@celery.task(name="worker.tasks.run_expiry_sweep")
def run_expiry_sweep() -> dict:
    return asyncio.run(_sweep())
