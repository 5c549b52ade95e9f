"""OpenTelemetry tracing helpers for retrieval runs and evaluations.

Retrieval and evaluation always open spans through :func:`get_tracer`. Until
:func:`configure_tracing` is called, the global no-op provider discards them.

Usage with an OTLP backend (e.g. a local Arize Phoenix instance):

    from aspect_retrieval.tracing import configure_tracing

    configure_tracing(
        endpoint="http://localhost:6006/v1/traces",
        service_name="aspect-retrieval",
    )

Usage in tests:

    from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

    exporter = InMemorySpanExporter()
    configure_tracing(exporter=exporter)
    ...
    spans = exporter.get_finished_spans()
"""
from __future__ import annotations

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource, SERVICE_NAME
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import (
    ConsoleSpanExporter,
    SimpleSpanProcessor,
    SpanExporter,
)

# ---------------------------------------------------------------------------
# Span attribute names
# ---------------------------------------------------------------------------

ATTR_INPUT_VALUE = "input.value"
ATTR_RETRIEVAL_DOCUMENTS = "retrieval.documents"
ATTR_RETRIEVAL_RESULTS = "retrieval.results"
ATTR_RETRIEVAL_FAILED = "retrieval.failed"
ATTR_EVAL_QUERIES = "evaluation.queries"
ATTR_EVAL_MRR = "evaluation.mrr"
ATTR_EVAL_MAP = "evaluation.map"

# ---------------------------------------------------------------------------
# Provider lifecycle helpers
# ---------------------------------------------------------------------------

_provider: TracerProvider | None = None


def configure_tracing(
    endpoint: str | None = None,
    service_name: str = "aspect-retrieval",
    exporter: SpanExporter | None = None,
) -> TracerProvider:
    """Create and register a global TracerProvider.

    Args:
        endpoint: OTLP HTTP endpoint URL to send traces to. When *None* and no
            custom *exporter* is given, spans are printed to stdout via
            :class:`~opentelemetry.sdk.trace.export.ConsoleSpanExporter`.
        service_name: Label that identifies this application in the backend.
        exporter: An already-constructed span exporter, e.g. an
            ``InMemorySpanExporter`` in tests. When provided, *endpoint* is
            ignored.

    Returns:
        The configured :class:`~opentelemetry.sdk.trace.TracerProvider`.
    """
    global _provider

    resource = Resource(attributes={SERVICE_NAME: service_name})
    provider = TracerProvider(resource=resource)

    if exporter is not None:
        chosen_exporter: SpanExporter = exporter
    elif endpoint is not None:
        try:
            from opentelemetry.exporter.otlp.proto.http.trace_exporter import (
                OTLPSpanExporter,
            )
        except ImportError as exc:  # pragma: no cover
            raise ImportError(
                "opentelemetry-exporter-otlp-proto-http is required to export "
                "traces to an OTLP endpoint.  Install it with:\n"
                "  pip install opentelemetry-exporter-otlp-proto-http"
            ) from exc
        chosen_exporter = OTLPSpanExporter(endpoint=endpoint)
    else:
        chosen_exporter = ConsoleSpanExporter()

    # Spans are exported synchronously so tests can read them right away.
    provider.add_span_processor(SimpleSpanProcessor(chosen_exporter))
    trace.set_tracer_provider(provider)
    _provider = provider
    return provider


def get_tracer(name: str) -> trace.Tracer:
    """Return a tracer from the configured provider, or the no-op global one.

    Args:
        name: Instrumentation scope name, typically the module name.
    """
    if _provider is not None:
        return _provider.get_tracer(name)
    return trace.get_tracer(name)
