from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.errors import unwrap
from app.core.db import get_db
from app.schemas.common import AuditEntryOut
from app.schemas.seller import SellerOut, SellerRegister, SellerVerification
from app.services import sellers
from app.services.audit import audit_trail
from app.services.auth import Actor, get_seller_actor, require_admin

router = APIRouter()


@router.post("/sellers", response_model=SellerOut, status_code=201)
async def register_seller(payload: SellerRegister, db: AsyncSession = Depends(get_db)) -> SellerOut:
    try:
        seller = await sellers.register_seller(
            db, name=payload.name, email=payload.email, seller_type=payload.seller_type,
        )
    except IntegrityError:
        await db.rollback()
        raise HTTPException(status_code=409, detail="Email already registered")
    await db.commit()
    return SellerOut.model_validate(seller)


@router.get("/sellers/me", response_model=SellerOut)
async def get_me(actor: Actor = Depends(get_seller_actor), db: AsyncSession = Depends(get_db)) -> SellerOut:
    seller = await sellers.get_seller(db, actor.actor_id)
    return SellerOut.model_validate(seller)


@router.get("/admin/sellers/{seller_id}", response_model=SellerOut)
async def admin_get_seller(
    seller_id: str,
    admin: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> SellerOut:
    seller = await sellers.get_seller(db, seller_id)
    if seller is None:
        raise HTTPException(status_code=404, detail="Seller not found")
    return SellerOut.model_validate(seller)


@router.post("/admin/sellers/{seller_id}/verification", response_model=SellerOut)
async def admin_set_verification(
    seller_id: str,
    payload: SellerVerification,
    admin: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> SellerOut:
    seller = unwrap(await sellers.set_verification(
        db, seller_id=seller_id, status=payload.status, admin_id=admin.actor_id,
    ))
    await db.commit()
    return SellerOut.model_validate(seller)


@router.post("/admin/sellers/{seller_id}/deactivate", response_model=SellerOut)
async def admin_deactivate_seller(
    seller_id: str,
    admin: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> SellerOut:
    seller = unwrap(await sellers.deactivate_seller(db, seller_id=seller_id, admin_id=admin.actor_id))
    await db.commit()
    return SellerOut.model_validate(seller)


@router.get("/admin/sellers/{seller_id}/audit", response_model=list[AuditEntryOut])
async def admin_seller_audit(
    seller_id: str,
    admin: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> list[AuditEntryOut]:
    rows = await audit_trail(db, target_type="seller", target_id=seller_id)
    return [AuditEntryOut.model_validate(r) for r in rows]
