"""Observability utilities: OpenTelemetry spans around the search stages.

- configure_tracing: installs an SDK tracer provider, optionally exporting to the console.
  Without it the OpenTelemetry API hands out non-recording spans, so instrumented code
  runs unchanged.
- span: context manager starting a span with attributes and recording exceptions.
"""
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional

from opentelemetry import trace
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter

logger = logging.getLogger(__name__)

_otel_inited: bool = False


def configure_tracing(console_export: bool = False) -> None:
    """Set a global tracer provider once.

    Args:
        console_export: Also print finished spans to stdout (local debugging).
    """
    global _otel_inited
    if _otel_inited:
        return
    tp = TracerProvider()
    if console_export:
        tp.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))
    trace.set_tracer_provider(tp)
    _otel_inited = True
    logger.debug("Tracing configured (console_export=%s)", console_export)


@contextmanager
def span(name: str, attributes: Optional[Dict[str, Any]] = None) -> Iterator[trace.Span]:
    """Run the enclosed block inside an OpenTelemetry span."""
    tracer = trace.get_tracer("catalog_search")
    with tracer.start_as_current_span(name, attributes=attributes or {}) as s:
        yield s
