from __future__ import annotations

from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from app.models.outbox import OutboxEvent


def emit(
    db: AsyncSession,
    *,
    aggregate_type: str,
    aggregate_id: str,
    event_type: str,
    payload: dict[str, Any],
) -> OutboxEvent:
    """
    Queue a notification / side-effect request for an external collaborator.
    Written in the caller's transaction so it commits (or rolls back) with the
    state change that caused it.
    """
    ev = OutboxEvent(
        aggregate_type=aggregate_type,
        aggregate_id=aggregate_id,
        event_type=event_type,
        payload=payload,
        status="pending",
    )
    db.add(ev)
    return ev


def emit_listing_event(db: AsyncSession, listing, event_type: str, **extra: Any) -> OutboxEvent:
    return emit(
        db,
        aggregate_type="listing",
        aggregate_id=listing.id,
        event_type=event_type,
        payload={
            "listing_id": listing.id,
            "seller_id": listing.seller_id,
            "kind": listing.kind,
            "title": listing.title,
            "workflow_status": listing.workflow_status,
            **extra,
        },
    )


def emit_subscription_event(db: AsyncSession, sub, event_type: str, **extra: Any) -> OutboxEvent:
    return emit(
        db,
        aggregate_type="subscription",
        aggregate_id=sub.id,
        event_type=event_type,
        payload={
            "subscription_id": sub.id,
            "seller_id": sub.seller_id,
            "package_id": sub.package_id,
            "end_date": sub.end_date.isoformat() if sub.end_date else None,
            **extra,
        },
    )
