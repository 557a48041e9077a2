import hmac
from dataclasses import dataclass
from fastapi import Depends, Header, HTTPException, Security
from fastapi.security.api_key import APIKeyHeader
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.db import get_db
from app.services.sellers import get_seller

admin_key_header = APIKeyHeader(name="X-Admin-Key", auto_error=False)


@dataclass(frozen=True)
class Actor:
    actor_id: str
    role: str  # "seller" | "admin"


async def get_seller_actor(
    x_seller_id: str | None = Header(default=None),
    db: AsyncSession = Depends(get_db),
) -> Actor:
    # the seller is authenticated upstream; here we only check the account exists and is usable
    if not x_seller_id:
        raise HTTPException(status_code=401, detail="Missing X-Seller-Id")

    seller = await get_seller(db, x_seller_id)
    if seller is None:
        raise HTTPException(status_code=401, detail="Unknown seller")
    if not seller.is_active:
        raise HTTPException(status_code=403, detail="Seller account is deactivated")

    return Actor(actor_id=seller.id, role="seller")


async def require_admin(
    admin_key: str | None = Security(admin_key_header),
    x_admin_id: str | None = Header(default=None),
) -> Actor:
    expected = settings.admin_api_key.get_secret_value()
    if not admin_key or not hmac.compare_digest(admin_key.encode(), expected.encode()):
        raise HTTPException(status_code=403, detail="Admin key required")
    if not x_admin_id:
        raise HTTPException(status_code=400, detail="Missing X-Admin-Id")
    return Actor(actor_id=x_admin_id, role="admin")


async def require_internal_admin(x_internal_admin_key: str | None = Header(default=None)) -> None:
    # ops tooling and the scheduler only; never exposed to sellers or moderators
    if not x_internal_admin_key or not hmac.compare_digest(x_internal_admin_key.encode(), settings.internal_admin_key.encode()):
        raise HTTPException(status_code=403, detail="Internal admin key required")
