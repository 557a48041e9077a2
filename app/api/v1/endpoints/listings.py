from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.errors import unwrap
from app.core.db import get_db
from app.schemas.listing import (
    ListingCreate,
    ListingEdit,
    ListingFeatured,
    ListingOut,
    ListingTransaction,
)
from app.services import listing_workflow
from app.services.auth import Actor, get_seller_actor

router = APIRouter()


@router.post("/listings", response_model=ListingOut, status_code=201)
async def create_listing(
    payload: ListingCreate,
    actor: Actor = Depends(get_seller_actor),
    db: AsyncSession = Depends(get_db),
) -> ListingOut:
    listing = unwrap(await listing_workflow.create_listing(
        db, seller_id=actor.actor_id, title=payload.title, kind=payload.kind, details=payload.details,
    ))
    await db.commit()
    return ListingOut.model_validate(listing)


@router.get("/listings", response_model=list[ListingOut])
async def list_listings(
    status: str | None = None,
    actor: Actor = Depends(get_seller_actor),
    db: AsyncSession = Depends(get_db),
) -> list[ListingOut]:
    rows = await listing_workflow.list_seller_listings(db, actor.actor_id, status=status)
    return [ListingOut.model_validate(r) for r in rows]


@router.get("/listings/{listing_id}", response_model=ListingOut)
async def get_listing(
    listing_id: str,
    actor: Actor = Depends(get_seller_actor),
    db: AsyncSession = Depends(get_db),
) -> ListingOut:
    listing = await listing_workflow.get_listing(db, listing_id, seller_id=actor.actor_id)
    if listing is None:
        raise HTTPException(status_code=404, detail="Listing not found")
    return ListingOut.model_validate(listing)


@router.patch("/listings/{listing_id}", response_model=ListingOut)
async def edit_listing(
    listing_id: str,
    payload: ListingEdit,
    actor: Actor = Depends(get_seller_actor),
    db: AsyncSession = Depends(get_db),
) -> ListingOut:
    listing = unwrap(await listing_workflow.edit_listing(
        db, listing_id=listing_id, changes=payload.changes(), seller_id=actor.actor_id,
    ))
    await db.commit()
    return ListingOut.model_validate(listing)


@router.post("/listings/{listing_id}/submit", response_model=ListingOut)
async def submit_listing(
    listing_id: str,
    actor: Actor = Depends(get_seller_actor),
    db: AsyncSession = Depends(get_db),
) -> ListingOut:
    listing = unwrap(await listing_workflow.submit_listing(db, listing_id, seller_id=actor.actor_id))
    await db.commit()
    return ListingOut.model_validate(listing)


@router.post("/listings/{listing_id}/transaction", response_model=ListingOut)
async def mark_transacted(
    listing_id: str,
    payload: ListingTransaction,
    actor: Actor = Depends(get_seller_actor),
    db: AsyncSession = Depends(get_db),
) -> ListingOut:
    listing = unwrap(await listing_workflow.mark_transacted(
        db, listing_id, outcome=payload.outcome, seller_id=actor.actor_id,
    ))
    await db.commit()
    return ListingOut.model_validate(listing)


@router.post("/listings/{listing_id}/reactivate", response_model=ListingOut)
async def reactivate_listing(
    listing_id: str,
    actor: Actor = Depends(get_seller_actor),
    db: AsyncSession = Depends(get_db),
) -> ListingOut:
    listing = unwrap(await listing_workflow.reactivate_listing(db, listing_id, seller_id=actor.actor_id))
    await db.commit()
    return ListingOut.model_validate(listing)


@router.put("/listings/{listing_id}/featured", response_model=ListingOut)
async def set_featured(
    listing_id: str,
    payload: ListingFeatured,
    actor: Actor = Depends(get_seller_actor),
    db: AsyncSession = Depends(get_db),
) -> ListingOut:
    listing = unwrap(await listing_workflow.set_featured(
        db, listing_id, featured=payload.featured, seller_id=actor.actor_id,
    ))
    await db.commit()
    return ListingOut.model_validate(listing)
