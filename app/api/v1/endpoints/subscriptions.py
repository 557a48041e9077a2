from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.errors import unwrap
from app.core.db import get_db
from app.schemas.subscription import (
    CanCreateListingOut,
    SubscriptionOut,
    SubscriptionPurchase,
    SubscriptionRenew,
)
from app.services import subscriptions
from app.services.auth import Actor, get_seller_actor
from app.services.idempotency import require_idempotency_key, run_once

router = APIRouter()


async def _purchase_once(db: AsyncSession, actor: Actor, idempotency_key: str, request: Request, body: dict, run) -> SubscriptionOut:
    async def produce() -> dict:
        sub = unwrap(await run())
        return SubscriptionOut.model_validate(sub).model_dump(mode="json")

    resp = await run_once(
        db, actor=actor, idempotency_key=idempotency_key, path=str(request.url.path), body=body, produce=produce,
    )
    await db.commit()
    return SubscriptionOut(**resp)


@router.post("/subscriptions", response_model=SubscriptionOut, status_code=201)
async def purchase(
    payload: SubscriptionPurchase,
    request: Request,
    actor: Actor = Depends(get_seller_actor),
    idempotency_key: str = Depends(require_idempotency_key),
    db: AsyncSession = Depends(get_db),
) -> SubscriptionOut:
    return await _purchase_once(
        db, actor, idempotency_key, request, payload.model_dump(),
        lambda: subscriptions.purchase_subscription(
            db,
            seller_id=actor.actor_id,
            package_id=payload.package_id,
            payment_reference=payload.payment_reference,
        ),
    )


@router.post("/subscriptions/renew", response_model=SubscriptionOut, status_code=201)
async def renew(
    payload: SubscriptionRenew,
    request: Request,
    actor: Actor = Depends(get_seller_actor),
    idempotency_key: str = Depends(require_idempotency_key),
    db: AsyncSession = Depends(get_db),
) -> SubscriptionOut:
    return await _purchase_once(
        db, actor, idempotency_key, request, payload.model_dump(),
        lambda: subscriptions.renew_subscription(
            db, seller_id=actor.actor_id, payment_reference=payload.payment_reference,
        ),
    )


@router.get("/subscriptions/current", response_model=SubscriptionOut)
async def current(actor: Actor = Depends(get_seller_actor), db: AsyncSession = Depends(get_db)) -> SubscriptionOut:
    sub = await subscriptions.get_active(db, actor.actor_id)
    if sub is None:
        raise HTTPException(status_code=404, detail="No active subscription")
    return SubscriptionOut.model_validate(sub)


@router.get("/subscriptions", response_model=list[SubscriptionOut])
async def history(actor: Actor = Depends(get_seller_actor), db: AsyncSession = Depends(get_db)) -> list[SubscriptionOut]:
    rows = await subscriptions.subscription_history(db, actor.actor_id)
    return [SubscriptionOut.model_validate(s) for s in rows]


@router.get("/subscriptions/can-create-listing", response_model=CanCreateListingOut)
async def can_create_listing(
    actor: Actor = Depends(get_seller_actor),
    db: AsyncSession = Depends(get_db),
) -> CanCreateListingOut:
    check = await subscriptions.can_create_listing(db, actor.actor_id)
    return CanCreateListingOut(can_create=check.can_create, remaining=check.remaining, reason=check.reason)
