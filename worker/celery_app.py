from celery import Celery
from celery.signals import worker_process_init

from app.core.config import settings
from app.core.telemetry import setup_worker_telemetry

celery = Celery(
    "listings-worker",
    broker=settings.rabbitmq_url,
    backend=settings.redis_url,
    include=["worker.tasks"],
)

celery.conf.update(
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    task_default_queue="default",
    task_routes={
        "worker.tasks.process_outbox_event": {"queue": "outbox"},
        "worker.tasks.dispatch_outbox": {"queue": "outbox"},
        "worker.tasks.run_expiry_sweep": {"queue": "maintenance"},
    },
    beat_schedule={
        "expiry-sweep": {
            "task": "worker.tasks.run_expiry_sweep",
            "schedule": float(settings.expiry_sweep_interval_seconds),
        },
        "outbox-dispatch": {
            "task": "worker.tasks.dispatch_outbox",
            "schedule": float(settings.outbox_poll_seconds),
        },
    },
)


@worker_process_init.connect
def _init_worker_telemetry(**_kwargs) -> None:
    setup_worker_telemetry()
