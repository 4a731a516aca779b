from __future__ import annotations

import atexit
import logging
import re
import threading
from collections import Counter
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

logger = logging.getLogger(__name__)
_METRIC_NAME_RE = re.compile(r"[^a-zA-Z0-9_.-]+")


def _sanitize_metric_name(name: str) -> str:
    return _METRIC_NAME_RE.sub("_", name).strip("_") or "invalid_metric"


class Instrumentation:
    def counter(self, name: str, value: int = 1, *, attrs: dict[str, Any] | None = None) -> None:
        return None

    def histogram(self, name: str, value: float, *, attrs: dict[str, Any] | None = None) -> None:
        return None

    @contextmanager
    def trace(self, name: str, *, attrs: dict[str, Any] | None = None) -> Iterator[None]:
        del name, attrs
        yield

    def flush(self) -> None:
        return None

    def shutdown(self) -> None:
        return None


class NoopInstrumentation(Instrumentation):
    pass


class InMemoryInstrumentation(Instrumentation):
    """Records counters and spans in process; used by tests and dry runs."""

    def __init__(self) -> None:
        self.counters: Counter[str] = Counter()
        self.histograms: dict[str, list[float]] = {}
        self.spans: list[str] = []

    def counter(self, name: str, value: int = 1, *, attrs: dict[str, Any] | None = None) -> None:
        key = _sanitize_metric_name(name)
        if attrs:
            labels = ",".join(f"{k}={attrs[k]}" for k in sorted(attrs))
            key = f"{key}{{{labels}}}"
        self.counters[key] += value

    def histogram(self, name: str, value: float, *, attrs: dict[str, Any] | None = None) -> None:
        del attrs
        self.histograms.setdefault(_sanitize_metric_name(name), []).append(value)

    @contextmanager
    def trace(self, name: str, *, attrs: dict[str, Any] | None = None) -> Iterator[None]:
        del attrs
        self.spans.append(name)
        yield


class OTelInstrumentation(Instrumentation):
    """OpenTelemetry backend bound to its own providers.

    Exporters are passed in; ``build_otel_exporters`` turns settings into them.
    """

    def __init__(
        self,
        *,
        service_name: str,
        span_exporter: Any | None = None,
        metric_readers: list[Any] | None = None,
    ) -> None:
        from opentelemetry.sdk.metrics import MeterProvider
        from opentelemetry.sdk.resources import Resource
        from opentelemetry.sdk.trace import TracerProvider
        from opentelemetry.sdk.trace.export import BatchSpanProcessor

        resource = Resource.create({"service.name": service_name})
        self._trace_provider = TracerProvider(resource=resource)
        if span_exporter is not None:
            self._trace_provider.add_span_processor(BatchSpanProcessor(span_exporter))
        self._tracer = self._trace_provider.get_tracer(service_name)
        self._metric_provider = MeterProvider(
            resource=resource, metric_readers=list(metric_readers or [])
        )
        self._meter = self._metric_provider.get_meter(service_name)
        self._instruments: dict[tuple[str, str], Any] = {}

    def _instrument(self, kind: str, name: str) -> Any:
        key = (kind, _sanitize_metric_name(name))
        instrument = self._instruments.get(key)
        if instrument is None:
            create = (
                self._meter.create_counter if kind == "counter" else self._meter.create_histogram
            )
            instrument = self._instruments[key] = create(key[1])
        return instrument

    def counter(self, name: str, value: int = 1, *, attrs: dict[str, Any] | None = None) -> None:
        self._instrument("counter", name).add(value, attrs or {})

    def histogram(self, name: str, value: float, *, attrs: dict[str, Any] | None = None) -> None:
        self._instrument("histogram", name).record(value, attrs or {})

    @contextmanager
    def trace(self, name: str, *, attrs: dict[str, Any] | None = None) -> Iterator[None]:
        with self._tracer.start_as_current_span(name, attributes=attrs or {}):
            yield

    def flush(self) -> None:
        self._metric_provider.force_flush()
        self._trace_provider.force_flush()

    def shutdown(self) -> None:
        self._metric_provider.shutdown()
        self._trace_provider.shutdown()


def build_otel_exporters(
    *, metrics_exporter: str, otlp_endpoint: str | None, prometheus_port: int
) -> tuple[Any, list[Any]]:
    """Spans always go to OTLP; metrics go to OTLP, Prometheus or nowhere."""
    from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter

    endpoint = {"endpoint": otlp_endpoint} if otlp_endpoint else {}
    readers: list[Any] = []
    if metrics_exporter == "otlp":
        from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
        from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader

        readers.append(PeriodicExportingMetricReader(OTLPMetricExporter(**endpoint)))
    elif metrics_exporter == "prometheus":
        from opentelemetry.exporter.prometheus import PrometheusMetricReader
        from prometheus_client import start_http_server

        readers.append(PrometheusMetricReader())
        start_http_server(prometheus_port)
    return OTLPSpanExporter(**endpoint), readers


_LOCK = threading.Lock()
_INSTRUMENTATION: Instrumentation = NoopInstrumentation()
_CONFIGURED_ONCE = False


def configure_instrumentation(
    *,
    enabled: bool,
    service_name: str = "eurozbot",
    metrics_exporter: str = "none",
    otlp_endpoint: str | None = None,
    prometheus_port: int = 9464,
) -> Instrumentation:
    global _INSTRUMENTATION, _CONFIGURED_ONCE
    with _LOCK:
        if _CONFIGURED_ONCE:
            return _INSTRUMENTATION
        _CONFIGURED_ONCE = True
        if not enabled:
            _INSTRUMENTATION = NoopInstrumentation()
            return _INSTRUMENTATION
        try:
            span_exporter, metric_readers = build_otel_exporters(
                metrics_exporter=metrics_exporter,
                otlp_endpoint=otlp_endpoint,
                prometheus_port=prometheus_port,
            )
            _INSTRUMENTATION = OTelInstrumentation(
                service_name=service_name,
                span_exporter=span_exporter,
                metric_readers=metric_readers,
            )
        except Exception:  # noqa: BLE001
            logger.exception("observability_setup_failed_falling_back_to_noop")
            _INSTRUMENTATION = NoopInstrumentation()
        return _INSTRUMENTATION


def set_instrumentation(instrumentation: Instrumentation) -> Instrumentation:
    global _INSTRUMENTATION
    with _LOCK:
        previous = _INSTRUMENTATION
        _INSTRUMENTATION = instrumentation
        return previous


def get_instrumentation() -> Instrumentation:
    return _INSTRUMENTATION


def flush_instrumentation() -> None:
    _INSTRUMENTATION.flush()


def shutdown_instrumentation() -> None:
    _INSTRUMENTATION.shutdown()


atexit.register(shutdown_instrumentation)
