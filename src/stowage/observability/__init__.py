"""Stowage observability module.

Provides OpenTelemetry provider setup and test capture helpers.
"""

from stowage.observability.tracing import (
    TracingSettings,
    clear_test_spans,
    configure_tracing,
    get_test_spans,
    instrument_httpx,
)

__all__ = [
    "TracingSettings",
    "clear_test_spans",
    "configure_tracing",
    "get_test_spans",
    "instrument_httpx",
]
