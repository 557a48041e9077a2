"""
Hands queued notification requests to the Celery delivery task.

Listing and subscription transitions write their notification requests into
the outbox in the same transaction as the state change. This module leases a
batch of pending requests, commits the lease, and only then enqueues one
delivery task per request; the worker refuses to deliver under a lease it
does not hold. Requests whose lease ran out (worker died mid-delivery) or
whose enqueue failed go back to pending for the next round.
"""
from dataclasses import dataclass, field
from datetime import datetime, timedelta
import logging
import uuid

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.ids import utcnow
from app.models.outbox import OutboxEvent
from worker.celery_app import celery


log = logging.getLogger(__name__)

DELIVERY_TASK = "worker.tasks.process_outbox_event"
DELIVERY_QUEUE = "outbox"

# everything that ties a request to a delivery attempt
_NO_LEASE = {"lease_id": None, "lease_expires_at": None, "processing_started_at": None}


@dataclass
class LeasedBatch:
    lease_id: str
    request_ids: list[str] = field(default_factory=list)


async def _back_to_pending(db: AsyncSession, *conditions, reason: str) -> int:
    result = await db.execute(
        update(OutboxEvent)
        .where(*conditions)
        .values(status="pending", last_error=reason, **_NO_LEASE)
        .execution_options(synchronize_session=False)
    )
    return int(result.rowcount or 0)


async def requeue_expired_leases(db: AsyncSession, now: datetime | None = None) -> int:
    """Requests stuck in processing past their lease are offered again."""
    now = now or utcnow()
    return await _back_to_pending(
        db,
        OutboxEvent.status == "processing",
        OutboxEvent.lease_expires_at.is_not(None),
        OutboxEvent.lease_expires_at < now,
        reason="requeued: lease expired",
    )


async def lease_pending_requests(
    db: AsyncSession,
    batch_size: int,
    lease_minutes: int,
    now: datetime | None = None,
) -> LeasedBatch:
    now = now or utcnow()
    batch = LeasedBatch(lease_id=uuid.uuid4().hex)

    # oldest first; rows another dispatcher holds are skipped, not waited on
    stmt = (
        select(OutboxEvent.id)
        .where(OutboxEvent.status == "pending")
        .order_by(OutboxEvent.created_at.asc(), OutboxEvent.id.asc())
        .with_for_update(skip_locked=True)
        .limit(batch_size)
    )
    batch.request_ids = list((await db.execute(stmt)).scalars().all())
    if not batch.request_ids:
        return batch

    await db.execute(
        update(OutboxEvent)
        .where(OutboxEvent.id.in_(batch.request_ids))
        .values(
            status="processing",
            attempts=OutboxEvent.attempts + 1,
            last_error=None,
            lease_id=batch.lease_id,
            lease_expires_at=now + timedelta(minutes=lease_minutes),
            processing_started_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    await db.flush()
    return batch


async def dispatch_outbox(
    db: AsyncSession,
    batch_size: int = settings.outbox_batch_size,
    lease_minutes: int = settings.outbox_lease_minutes,
) -> int:
    """One dispatch round. Returns how many delivery tasks were enqueued."""
    requeued = await requeue_expired_leases(db)
    batch = await lease_pending_requests(db, batch_size=batch_size, lease_minutes=lease_minutes)

    # the lease must be visible before a worker picks the task up
    await db.commit()

    if not batch.request_ids:
        if requeued:
            log.info("outbox: requeued=%d, nothing leased", requeued)
        return 0

    enqueued = 0
    for request_id in batch.request_ids:
        try:
            celery.send_task(DELIVERY_TASK, args=[request_id, batch.lease_id], queue=DELIVERY_QUEUE)
        except Exception as e:
            log.warning("outbox: enqueue failed request=%s: %s", request_id, e)
            await _back_to_pending(
                db,
                OutboxEvent.id == request_id,
                OutboxEvent.lease_id == batch.lease_id,
                reason=f"enqueue failed: {type(e).__name__}: {e}",
            )
        else:
            enqueued += 1

    if enqueued < len(batch.request_ids):
        await db.commit()

    log.info(
        "outbox: lease=%s leased=%d enqueued=%d requeued=%d",
        batch.lease_id, len(batch.request_ids), enqueued, requeued,
    )
    return enqueued
