from __future__ import annotations

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.package import Package
from app.models.seller import SellerAccount
from app.services.audit import audit
from app.services.results import Outcome, PackageUnavailable, failure, success


async def create_package(
    db: AsyncSession,
    *,
    admin_id: str,
    name: str,
    price: int,
    duration_days: int,
    listing_limit: int,
    featured_limit: int = 0,
    seller_type: str | None = None,
    description: str | None = None,
) -> Package:
    pkg = Package(
        name=name,
        description=description,
        price=price,
        duration_days=duration_days,
        listing_limit=listing_limit,
        featured_limit=featured_limit,
        seller_type=seller_type,
        is_active=True,
        created_by=admin_id,
        updated_by=admin_id,
    )
    db.add(pkg)
    await db.flush()
    await audit(db, actor_id=admin_id, action="package.created", target_type="package", target_id=pkg.id)
    return pkg


async def update_package(
    db: AsyncSession,
    *,
    admin_id: str,
    package_id: str,
    name: str | None = None,
    description: str | None = None,
    is_active: bool | None = None,
) -> Package | None:
    """Only presentation fields and availability change; commercial terms are fixed."""
    pkg = await db.get(Package, package_id)
    if pkg is None:
        return None

    changed: dict = {}
    if name is not None and name != pkg.name:
        changed["name"] = name
        pkg.name = name
    if description is not None and description != pkg.description:
        changed["description"] = description
        pkg.description = description
    if is_active is not None and is_active != pkg.is_active:
        changed["is_active"] = is_active
        pkg.is_active = is_active

    if changed:
        pkg.updated_by = admin_id
        await audit(db, actor_id=admin_id, action="package.updated", target_type="package", target_id=pkg.id, detail=changed)
        await db.flush()
    return pkg


async def list_packages(db: AsyncSession, *, seller_type: str | None = None, include_inactive: bool = False) -> list[Package]:
    stmt = select(Package)
    if not include_inactive:
        stmt = stmt.where(Package.is_active.is_(True))
    if seller_type:
        stmt = stmt.where(or_(Package.seller_type.is_(None), Package.seller_type == seller_type))
    stmt = stmt.order_by(Package.price.asc())
    return list((await db.execute(stmt)).scalars().all())


async def require_purchasable(db: AsyncSession, package_id: str, seller: SellerAccount) -> Outcome[Package]:
    pkg = await db.get(Package, package_id)
    if pkg is None:
        return failure(PackageUnavailable(package_id=package_id, reason="not found"))
    if not pkg.is_active:
        return failure(PackageUnavailable(package_id=package_id, reason="inactive"))
    if pkg.seller_type is not None and pkg.seller_type != seller.seller_type:
        return failure(PackageUnavailable(package_id=package_id, reason=f"not offered to {seller.seller_type} sellers"))
    return success(pkg)
