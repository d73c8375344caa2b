import logging

from fastapi import FastAPI

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import (  # type: ignore[attr-defined]
    OTLPSpanExporter as OTLPGrpcExporter,
)
from opentelemetry.exporter.otlp.proto.http.trace_exporter import (  # type: ignore[attr-defined]
    OTLPSpanExporter as OTLPHttpExporter,
)
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.sdk.trace.sampling import TraceIdRatioBased
from opentelemetry.trace import TracerProvider as APITracerProvider

from .config import ServiceSettings

_LOGGER = logging.getLogger(__name__)
_INSTRUMENTED_APPS: set[int] = set()
_HTTPX_INSTRUMENTED = False


def _exporter_for(settings: ServiceSettings):
    if settings.tracing_endpoint is None:
        return None
    if settings.tracing_protocol == "grpc":
        return OTLPGrpcExporter(endpoint=settings.tracing_endpoint, insecure=settings.tracing_insecure)
    return OTLPHttpExporter(endpoint=settings.tracing_endpoint)


def _tracer_provider(settings: ServiceSettings) -> APITracerProvider:
    current = trace.get_tracer_provider()
    if isinstance(current, TracerProvider):
        return current

    provider = TracerProvider(
        resource=Resource.create(
            {
                "service.name": settings.app_name,
                "deployment.environment": settings.environment,
            }
        ),
        sampler=TraceIdRatioBased(settings.tracing_sample_rate),
    )
    exporter = _exporter_for(settings)
    if exporter is None:
        _LOGGER.warning(
            "Tracing is enabled for %s without an OTLP endpoint; spans stay in-process.",
            settings.app_name,
        )
    else:
        provider.add_span_processor(BatchSpanProcessor(exporter))
    try:
        trace.set_tracer_provider(provider)
    except RuntimeError:  # pragma: no cover - provider already set by another component
        return trace.get_tracer_provider()
    return provider


def _instrument_outbound_http(provider: APITracerProvider) -> None:
    global _HTTPX_INSTRUMENTED
    if _HTTPX_INSTRUMENTED:
        return
    try:
        HTTPXClientInstrumentor().instrument(tracer_provider=provider)
    except Exception as exc:  # pragma: no cover - tracing must not stop the service
        _LOGGER.warning("Could not instrument httpx for tracing: %s", exc)
    else:
        _HTTPX_INSTRUMENTED = True


def configure_tracing(app: FastAPI, settings: ServiceSettings) -> None:
    """Configure OpenTelemetry for inbound routes and outbound provider calls."""

    if not settings.enable_tracing:
        return

    provider = _tracer_provider(settings)
    if id(app) not in _INSTRUMENTED_APPS:
        FastAPIInstrumentor().instrument_app(app, tracer_provider=provider)
        _INSTRUMENTED_APPS.add(id(app))
    _instrument_outbound_http(provider)


def get_tracer(name: str) -> trace.Tracer:
    """Return a tracer from the globally configured provider (no-op when tracing is off)."""

    return trace.get_tracer(name)
