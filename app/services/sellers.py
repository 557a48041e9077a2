from __future__ import annotations

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.ids import utcnow
from app.models.seller import SellerAccount
from app.services.audit import audit
from app.services.results import Outcome, SellerInactive, SellerNotFound, failure, success


async def register_seller(
    db: AsyncSession,
    *,
    name: str,
    email: str,
    seller_type: str = "individual",
) -> SellerAccount:
    seller = SellerAccount(
        name=name,
        email=email.strip().lower(),
        seller_type=seller_type,
        verification_status="pending",
        is_active=True,
        created_by="self",
        updated_by="self",
    )
    db.add(seller)
    await db.flush()
    return seller


async def get_seller(db: AsyncSession, seller_id: str, *, for_update: bool = False) -> SellerAccount | None:
    stmt = select(SellerAccount).where(SellerAccount.id == seller_id)
    if for_update:
        stmt = stmt.with_for_update()
    return (await db.execute(stmt)).scalar_one_or_none()


async def require_active_seller(db: AsyncSession, seller_id: str, *, for_update: bool = False) -> Outcome[SellerAccount]:
    seller = await get_seller(db, seller_id, for_update=for_update)
    if seller is None:
        return failure(SellerNotFound(seller_id=seller_id))
    if not seller.is_active:
        return failure(SellerInactive(seller_id=seller_id))
    return success(seller)


async def set_verification(
    db: AsyncSession,
    *,
    seller_id: str,
    status: str,
    admin_id: str,
    now: datetime | None = None,
) -> Outcome[SellerAccount]:
    seller = await get_seller(db, seller_id, for_update=True)
    if seller is None:
        return failure(SellerNotFound(seller_id=seller_id))

    previous = seller.verification_status
    seller.verification_status = status
    seller.verified_at = (now or utcnow()) if status == "verified" else None
    seller.verified_by = admin_id
    seller.updated_by = admin_id

    await audit(
        db,
        actor_id=admin_id,
        action="seller.verification_changed",
        target_type="seller",
        target_id=seller.id,
        detail={"from": previous, "to": status},
    )
    await db.flush()
    return success(seller)


async def deactivate_seller(db: AsyncSession, *, seller_id: str, admin_id: str) -> Outcome[SellerAccount]:
    seller = await get_seller(db, seller_id, for_update=True)
    if seller is None:
        return failure(SellerNotFound(seller_id=seller_id))

    if seller.is_active:
        seller.is_active = False
        seller.updated_by = admin_id
        await audit(db, actor_id=admin_id, action="seller.deactivated", target_type="seller", target_id=seller.id)
        await db.flush()
    return success(seller)
