from fastapi import APIRouter

from app.api.v1.endpoints.health import router as health_router
from app.api.v1.endpoints.sellers import router as sellers_router
from app.api.v1.endpoints.packages import router as packages_router
from app.api.v1.endpoints.subscriptions import router as subscriptions_router
from app.api.v1.endpoints.listings import router as listings_router
from app.api.v1.endpoints.approvals import router as approvals_router
from app.api.v1.endpoints.internal import router as internal_router


router = APIRouter(prefix="/v1")
router.include_router(health_router, tags=["health"])
router.include_router(sellers_router, tags=["sellers"])
router.include_router(packages_router, tags=["packages"])
router.include_router(subscriptions_router, tags=["subscriptions"])
router.include_router(listings_router, tags=["listings"])
router.include_router(approvals_router, tags=["approvals"])
router.include_router(internal_router, tags=["internal"])
