import logging
import os
from typing import Optional

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter

logger = logging.getLogger("AIReaderGateway")


def setup_tracing(service_name: str = "AIReaderGateway", trace_file: Optional[str] = None):
    """
    Installs the OpenTelemetry tracer provider used for the per-attempt spans.

    ENABLE_CONSOLE_TRACING=true exports spans to stdout. ENABLE_FILE_TRACING=true
    appends them to AI_READER_TRACE_FILE (default 'traces.json'). Otherwise spans
    are recorded without an exporter.
    """
    if isinstance(trace.get_tracer_provider(), TracerProvider):
        # Already installed (e.g. a second lifespan in the same process).
        return trace.get_tracer("ai_reader")

    provider = TracerProvider(resource=Resource(attributes={"service.name": service_name}))

    if os.getenv("ENABLE_CONSOLE_TRACING", "false").lower() == "true":
        provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))
        logger.info("Tracing spans exported to the console.")
    elif os.getenv("ENABLE_FILE_TRACING", "false").lower() == "true":
        path = trace_file or os.getenv("AI_READER_TRACE_FILE", "traces.json")
        try:
            out = open(path, "a", encoding="utf-8")
        except OSError as e:
            logger.error(f"Failed to open trace file {path}: {e}. Spans will not be exported.")
        else:
            provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter(out=out)))
            logger.info(f"Tracing spans appended to {path}.")

    trace.set_tracer_provider(provider)
    return trace.get_tracer("ai_reader")
