from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.config import settings
from app.core.db import get_db, get_session_factory
from app.schemas.common import DispatchOut, SweepSummaryOut
from app.services.auth import require_internal_admin
from app.services.expiry_sweeper import run_expiry_sweep
from app.services.outbox_dispatcher import dispatch_outbox

router = APIRouter(prefix="/internal", dependencies=[Depends(require_internal_admin)])


@router.post("/outbox/dispatch", response_model=DispatchOut)
async def internal_dispatch_outbox(db: AsyncSession = Depends(get_db)) -> DispatchOut:
    count = await dispatch_outbox(db, batch_size=settings.outbox_batch_size, lease_minutes=settings.outbox_lease_minutes)
    return DispatchOut(dispatched=count)


@router.post("/expiry-sweep", response_model=SweepSummaryOut)
async def internal_expiry_sweep(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> SweepSummaryOut:
    # one short transaction per row, so the sweep gets the factory rather than a session
    summary = await run_expiry_sweep(session_factory)
    return SweepSummaryOut(**summary.as_dict())
