"""Logging, metrics and tracing handle passed through the request pipeline.

Metrics and spans go through the OpenTelemetry API. Until ``init_telemetry``
installs real providers the API hands out no-op instruments and spans, so the
pipeline can run without any backend configured.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Any

from opentelemetry import metrics, trace
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import ConsoleMetricExporter, PeriodicExportingMetricReader
from opentelemetry.sdk.resources import SERVICE_NAME, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter

from .logging import get_logger
from .settings import ChatSettings

_meter_provider: MeterProvider | None = None
_tracer_provider: TracerProvider | None = None


class Telemetry:
    def __init__(self, logger: logging.Logger, meter: metrics.Meter, tracer: trace.Tracer) -> None:
        self._logger = logger
        self._meter = meter
        self._tracer = tracer
        self._counters: dict[str, metrics.Counter] = {}
        self._histograms: dict[str, metrics.Histogram] = {}

    def info(self, event: str, **attributes: Any) -> None:
        self._logger.info(event, extra={"extra": attributes})

    def warning(self, event: str, **attributes: Any) -> None:
        self._logger.warning(event, extra={"extra": attributes})

    def error(self, event: str, exc_info: bool = False, **attributes: Any) -> None:
        self._logger.error(event, exc_info=exc_info, extra={"extra": attributes})

    def start_span(self, name: str, attributes: dict[str, Any] | None = None) -> trace.Span:
        """Open a span the caller must end; it outlives the handler when streaming."""
        return self._tracer.start_span(name, kind=trace.SpanKind.SERVER, attributes=attributes or {})

    def count(self, name: str, value: int = 1, tags: dict[str, str] | None = None) -> None:
        counter = self._counters.get(name)
        if counter is None:
            counter = self._counters[name] = self._meter.create_counter(name)
        try:
            counter.add(value, attributes=tags or {})
        except Exception as exc:  # noqa: BLE001
            self._logger.warning("metric_emit_failed", extra={"extra": {"metric": name, "error": str(exc)}})

    def distribution(
        self,
        name: str,
        value: float,
        unit: str = "",
        tags: dict[str, str] | None = None,
    ) -> None:
        histogram = self._histograms.get(name)
        if histogram is None:
            histogram = self._histograms[name] = self._meter.create_histogram(name, unit=unit)
        try:
            histogram.record(value, attributes=tags or {})
        except Exception as exc:  # noqa: BLE001
            self._logger.warning("metric_emit_failed", extra={"extra": {"metric": name, "error": str(exc)}})


def init_telemetry(settings: ChatSettings) -> None:
    """Install the global meter and tracer providers once per process."""
    global _meter_provider, _tracer_provider
    resource = Resource.create({SERVICE_NAME: settings.service_name})
    logger = get_logger("telemetry")

    if _meter_provider is None and settings.metrics_exporter != "none":
        if settings.metrics_exporter == "otlp":
            from opentelemetry.exporter.otlp.proto.http.metric_exporter import OTLPMetricExporter

            metric_exporter = (
                OTLPMetricExporter(endpoint=settings.otlp_endpoint) if settings.otlp_endpoint else OTLPMetricExporter()
            )
        else:
            metric_exporter = ConsoleMetricExporter()
        reader = PeriodicExportingMetricReader(metric_exporter, export_interval_millis=settings.metrics_export_interval_ms)
        _meter_provider = MeterProvider(resource=resource, metric_readers=[reader])
        metrics.set_meter_provider(_meter_provider)
        logger.info(
            "metrics_initialized",
            extra={"extra": {"exporter": settings.metrics_exporter, "service_name": settings.service_name}},
        )

    if _tracer_provider is None and settings.traces_exporter != "none":
        if settings.traces_exporter == "otlp":
            from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter

            span_exporter = (
                OTLPSpanExporter(endpoint=settings.otlp_traces_endpoint)
                if settings.otlp_traces_endpoint
                else OTLPSpanExporter()
            )
        else:
            span_exporter = ConsoleSpanExporter()
        _tracer_provider = TracerProvider(resource=resource)
        _tracer_provider.add_span_processor(BatchSpanProcessor(span_exporter))
        trace.set_tracer_provider(_tracer_provider)
        logger.info(
            "tracing_initialized",
            extra={"extra": {"exporter": settings.traces_exporter, "service_name": settings.service_name}},
        )


def shutdown_telemetry() -> None:
    global _meter_provider, _tracer_provider
    if _meter_provider is not None:
        _meter_provider.shutdown()
        _meter_provider = None
    if _tracer_provider is not None:
        _tracer_provider.shutdown()
        _tracer_provider = None


@lru_cache(maxsize=1)
def get_telemetry() -> Telemetry:
    return Telemetry(
        get_logger("chat"),
        metrics.get_meter("chat_server"),
        trace.get_tracer("chat_server"),
    )
