import asyncio
import logging
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker

from app.core.config import settings
from app.services.outbox_dispatcher import dispatch_outbox
from worker.celery_app import celery


log = logging.getLogger(__name__)


async def _tick(Session) -> int:
    async with Session() as db:
        return await dispatch_outbox(
            db, batch_size=settings.outbox_batch_size, lease_minutes=settings.outbox_lease_minutes,
        )


async def main():
    celery.connection().ensure_connection(max_retries=3)

    logging.basicConfig(level=logging.INFO)
    log.info("dispatcher: started")

    engine = create_async_engine(settings.database_url, pool_pre_ping=True)
    Session = async_sessionmaker(engine, expire_on_commit=False)
    try:
        while True:
            try:
                n = await _tick(Session)
                if n:
                    log.info("dispatcher: enqueued %d outbox events", n)
            except Exception:
                log.exception("dispatcher: tick crashed")
            await asyncio.sleep(settings.outbox_poll_seconds)
    finally:
        await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
