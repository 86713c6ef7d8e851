"""
SNS Gateway logging and tracing.

Logging is always on: the `snsgate` logger gets one stream handler, level
from SNS_LOG_LEVEL.

Tracing (OpenTelemetry, `otel` extra) is opt-in:
- SNS_OTEL_ENABLED=true
- SNS_OTEL_SERVICE_NAME=sns-gateway
- SNS_OTEL_EXPORTER=console|otlp
- SNS_OTEL_OTLP_ENDPOINT=https://... (otlp only)
"""

from __future__ import annotations

import logging
import os

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
DEFAULT_SERVICE_NAME = "sns-gateway"

logger = logging.getLogger(__name__)


def _bool_env(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def tracing_enabled() -> bool:
    return _bool_env("SNS_OTEL_ENABLED", False)


def configure_logging(level: str = "INFO") -> None:
    """Attach the gateway handler once; later calls only change the level."""
    gateway_logger = logging.getLogger("snsgate")
    gateway_logger.setLevel(level)
    if any(getattr(h, "_snsgate", False) for h in gateway_logger.handlers):
        return
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler._snsgate = True
    gateway_logger.addHandler(handler)


def _span_exporter(kind: str):
    from opentelemetry.sdk.trace.export import ConsoleSpanExporter

    if kind != "otlp":
        return ConsoleSpanExporter()
    try:
        from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
    except ImportError:
        logger.warning("OTLP exporter not installed, tracing to console instead")
        return ConsoleSpanExporter()
    endpoint = os.environ.get("SNS_OTEL_OTLP_ENDPOINT")
    return OTLPSpanExporter(endpoint=endpoint) if endpoint else OTLPSpanExporter()


_tracer_provider = None


def _install_tracer_provider():
    """Global provider, installed once per process. None when the SDK is missing."""
    global _tracer_provider
    if _tracer_provider is not None:
        return _tracer_provider
    try:
        from opentelemetry import trace
        from opentelemetry.sdk.resources import Resource
        from opentelemetry.sdk.trace import TracerProvider
        from opentelemetry.sdk.trace.export import BatchSpanProcessor
    except ImportError:
        logger.warning("SNS_OTEL_ENABLED set but opentelemetry-sdk is not installed")
        return None

    service_name = os.environ.get("SNS_OTEL_SERVICE_NAME", DEFAULT_SERVICE_NAME)
    exporter = os.environ.get("SNS_OTEL_EXPORTER", "console").lower()
    provider = TracerProvider(resource=Resource.create({"service.name": service_name}))
    provider.add_span_processor(BatchSpanProcessor(_span_exporter(exporter)))
    trace.set_tracer_provider(provider)
    logger.info("Tracing enabled for %s (%s exporter)", service_name, exporter)
    _tracer_provider = provider
    return provider


def configure_observability(app=None) -> bool:
    """Turn on tracing for the process and, when given, for `app`'s routes.

    Returns False when SNS_OTEL_ENABLED is off or the otel packages are
    missing; the gateway then runs with logging only.
    """
    if not tracing_enabled():
        return False
    provider = _install_tracer_provider()
    if provider is None:
        return False
    if app is None:
        return True
    try:
        from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
    except ImportError:
        logger.warning("opentelemetry-instrumentation-fastapi missing, routes are not traced")
        return False
    FastAPIInstrumentor.instrument_app(app, tracer_provider=provider, excluded_urls="health")
    return True
