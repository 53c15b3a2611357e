"""OpenTelemetry provider setup for stowage.

Tracing is decided once, when StorageBuilder.build() reads its environment
mapping; nothing here is consulted on the request path.

Environment Variables (read by the builder):
    STOWAGE_OTEL_ENABLED: "1" to emit spans (default: disabled)
    STOWAGE_OTEL_SERVICE_NAME: Service name resource attribute (default: "stowage")
    STOWAGE_OTEL_EXPORTER: "console" or "otlp" (default: "console")
    STOWAGE_OTEL_TEST_CAPTURE: "1" to keep spans in memory for tests
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from opentelemetry.sdk.trace import ReadableSpan, TracerProvider
    from opentelemetry.sdk.trace.export import SpanExporter

logger = logging.getLogger(__name__)

DEFAULT_SERVICE_NAME = "stowage"

_provider: TracerProvider | None = None
_test_exporter: Any = None
_httpx_instrumented = False


@dataclass(frozen=True, slots=True)
class TracingSettings:
    """Tracing options resolved at build time.

    Attributes:
        enabled: Whether façade operations emit spans.
        service_name: ``service.name`` resource attribute.
        exporter: "console" or "otlp".
        test_capture: Keep finished spans in an in-memory exporter.
    """

    enabled: bool = False
    service_name: str = DEFAULT_SERVICE_NAME
    exporter: str = "console"
    test_capture: bool = False


def _create_exporter(exporter: str) -> SpanExporter:
    if exporter == "otlp":
        from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter

        return OTLPSpanExporter()

    from opentelemetry.sdk.trace.export import ConsoleSpanExporter

    return ConsoleSpanExporter()


def configure_tracing(settings: TracingSettings) -> bool:
    """Install the global tracer provider once per process.

    The global provider cannot be replaced after it is set, so later calls
    only attach the in-memory exporter if a test asks for it.

    Returns:
        True if spans will be exported, False when tracing is disabled.
    """
    global _provider, _test_exporter

    if not settings.enabled:
        logger.debug("OpenTelemetry tracing disabled")
        return False

    from opentelemetry.sdk.trace.export import BatchSpanProcessor, SimpleSpanProcessor

    if _provider is None:
        from opentelemetry import trace
        from opentelemetry.sdk.resources import Resource
        from opentelemetry.sdk.trace import TracerProvider

        provider = TracerProvider(
            resource=Resource.create({"service.name": settings.service_name})
        )
        if not settings.test_capture:
            exporter = _create_exporter(settings.exporter)
            if settings.exporter == "otlp":
                provider.add_span_processor(BatchSpanProcessor(exporter))
            else:
                provider.add_span_processor(SimpleSpanProcessor(exporter))
        trace.set_tracer_provider(provider)
        _provider = provider
        logger.info(
            "OpenTelemetry tracing configured: service=%s exporter=%s",
            settings.service_name,
            "in-memory" if settings.test_capture else settings.exporter,
        )

    if settings.test_capture and _test_exporter is None and _provider is not None:
        from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

        _test_exporter = InMemorySpanExporter()
        _provider.add_span_processor(SimpleSpanProcessor(_test_exporter))

    return True


def instrument_httpx() -> None:
    """Instrument httpx clients used for URL ingestion. Idempotent."""
    global _httpx_instrumented

    if _httpx_instrumented:
        return
    from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor

    HTTPXClientInstrumentor().instrument()
    _httpx_instrumented = True
    logger.debug("httpx instrumented with OpenTelemetry")


def get_test_spans() -> list[ReadableSpan]:
    """Spans captured by the in-memory exporter, or [] without test capture."""
    if _test_exporter is None:
        return []
    return list(_test_exporter.get_finished_spans())


def clear_test_spans() -> None:
    if _test_exporter is not None:
        _test_exporter.clear()
