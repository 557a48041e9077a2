from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.db import get_db
from app.schemas.package import PackageCreate, PackageOut, PackageUpdate
from app.services import packages
from app.services.auth import Actor, require_admin

router = APIRouter()


@router.get("/packages", response_model=list[PackageOut])
async def list_packages(seller_type: str | None = None, db: AsyncSession = Depends(get_db)) -> list[PackageOut]:
    rows = await packages.list_packages(db, seller_type=seller_type)
    return [PackageOut.model_validate(p) for p in rows]


@router.get("/admin/packages", response_model=list[PackageOut])
async def admin_list_packages(
    admin: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> list[PackageOut]:
    rows = await packages.list_packages(db, include_inactive=True)
    return [PackageOut.model_validate(p) for p in rows]


@router.post("/admin/packages", response_model=PackageOut, status_code=201)
async def admin_create_package(
    payload: PackageCreate,
    admin: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> PackageOut:
    pkg = await packages.create_package(db, admin_id=admin.actor_id, **payload.model_dump())
    await db.commit()
    return PackageOut.model_validate(pkg)


@router.patch("/admin/packages/{package_id}", response_model=PackageOut)
async def admin_update_package(
    package_id: str,
    payload: PackageUpdate,
    admin: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> PackageOut:
    pkg = await packages.update_package(
        db, admin_id=admin.actor_id, package_id=package_id, **payload.model_dump(exclude_unset=True),
    )
    if pkg is None:
        raise HTTPException(status_code=404, detail="Package not found")
    await db.commit()
    return PackageOut.model_validate(pkg)
