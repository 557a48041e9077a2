from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.errors import unwrap
from app.core.db import get_db
from app.schemas.approval import DecisionIn, DecisionOut
from app.schemas.listing import ListingOut
from app.services import approvals, listing_workflow
from app.services.auth import Actor, require_admin
from app.services.idempotency import optional_idempotency_key, run_once

router = APIRouter(prefix="/admin/approvals")


@router.get("", response_model=list[ListingOut])
async def queue(
    request_type: str | None = Query(default=None, pattern="^(new|edit)$"),
    status: str | None = Query(default=None, pattern="^(submitted|under_review)$"),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    admin: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> list[ListingOut]:
    rows = await approvals.pending_queue(db, request_type=request_type, status=status, limit=limit, offset=offset)
    return [ListingOut.model_validate(r) for r in rows]


@router.get("/{listing_id}", response_model=ListingOut)
async def get_pending_listing(
    listing_id: str,
    admin: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> ListingOut:
    listing = await listing_workflow.get_listing(db, listing_id)
    if listing is None:
        raise HTTPException(status_code=404, detail="Listing not found")
    return ListingOut.model_validate(listing)


@router.post("/{listing_id}/claim", response_model=ListingOut)
async def claim(
    listing_id: str,
    admin: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> ListingOut:
    listing = unwrap(await approvals.claim(db, listing_id, admin_id=admin.actor_id))
    await db.commit()
    return ListingOut.model_validate(listing)


@router.post("/{listing_id}/decision", response_model=ListingOut)
async def decide(
    listing_id: str,
    payload: DecisionIn,
    request: Request,
    admin: Actor = Depends(require_admin),
    idempotency_key: str | None = Depends(optional_idempotency_key),
    db: AsyncSession = Depends(get_db),
) -> ListingOut:
    async def produce() -> dict:
        listing = unwrap(await approvals.decide(
            db, listing_id, decision=payload.decision, decided_by=admin.actor_id, reason=payload.reason,
        ))
        return ListingOut.model_validate(listing).model_dump(mode="json")

    resp = await run_once(
        db,
        actor=admin,
        idempotency_key=idempotency_key,
        path=str(request.url.path),
        body=payload.model_dump(),
        produce=produce,
    )
    await db.commit()
    return ListingOut(**resp)


@router.get("/{listing_id}/decisions", response_model=list[DecisionOut])
async def history(
    listing_id: str,
    admin: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> list[DecisionOut]:
    rows = await approvals.decision_history(db, listing_id)
    return [DecisionOut.model_validate(r) for r in rows]
