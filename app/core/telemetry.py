from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from app.core.config import settings
from app.core.db import engine


def _install_provider(component: str) -> None:
    resource = Resource.create({
        "service.name": settings.service_name,
        "service.namespace": component,
        "deployment.environment": settings.env,
    })
    provider = TracerProvider(resource=resource)
    processor = BatchSpanProcessor(OTLPSpanExporter(endpoint=f"{settings.otlp_endpoint}/v1/traces"))
    provider.add_span_processor(processor)
    trace.set_tracer_provider(provider)


def setup_telemetry(app) -> None:
    if not settings.telemetry_enabled:
        return

    _install_provider("api")
    FastAPIInstrumentor.instrument_app(app)
    SQLAlchemyInstrumentor().instrument(engine=engine.sync_engine)


def setup_worker_telemetry() -> None:
    """Worker processes build their own engines per task, so all of them are instrumented."""
    if not settings.telemetry_enabled:
        return

    _install_provider("worker")
    SQLAlchemyInstrumentor().instrument()
