from __future__ import annotations

import logging

import pytest

from eurozbot import observability
from eurozbot.observability import (
    InMemoryInstrumentation,
    NoopInstrumentation,
    configure_instrumentation,
)


@pytest.fixture
def fresh_configuration(monkeypatch):
    monkeypatch.setattr(observability, "_CONFIGURED_ONCE", False)
    monkeypatch.setattr(observability, "_INSTRUMENTATION", NoopInstrumentation())


def test_in_memory_counter_keys_carry_sorted_labels() -> None:
    recorder = InMemoryInstrumentation()

    recorder.counter("tx submitted/total", attrs={"b": 2, "a": 1})
    recorder.counter("tx submitted/total", 2, attrs={"a": 1, "b": 2})
    recorder.histogram("rpc_health_check_ms", 12.5)
    with recorder.trace("automation_cycle"):
        pass

    assert recorder.counters == {"tx_submitted_total{a=1,b=2}": 3}
    assert recorder.histograms == {"rpc_health_check_ms": [12.5]}
    assert recorder.spans == ["automation_cycle"]


def test_disabled_configuration_is_noop_and_configured_once(fresh_configuration) -> None:
    first = configure_instrumentation(enabled=False)
    second = configure_instrumentation(enabled=True, metrics_exporter="otlp")

    assert isinstance(first, NoopInstrumentation)
    assert second is first


def test_exporter_setup_failure_falls_back_to_noop(
    fresh_configuration, monkeypatch, caplog
) -> None:
    def _broken(**kwargs):
        raise RuntimeError("collector unreachable")

    monkeypatch.setattr(observability, "build_otel_exporters", _broken)

    with caplog.at_level(logging.ERROR, logger="eurozbot.observability"):
        instrumentation = configure_instrumentation(enabled=True)

    assert isinstance(instrumentation, NoopInstrumentation)
    assert "observability_setup_failed_falling_back_to_noop" in caplog.text


def test_otel_backend_exports_counters_histograms_and_spans() -> None:
    pytest.importorskip("opentelemetry.sdk")
    from opentelemetry.sdk.metrics.export import InMemoryMetricReader
    from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

    spans = InMemorySpanExporter()
    reader = InMemoryMetricReader()
    instrumentation = observability.OTelInstrumentation(
        service_name="eurozbot-test", span_exporter=spans, metric_readers=[reader]
    )
    try:
        instrumentation.counter("automation_wraps_total", 3)
        instrumentation.counter("tx_submitted_total", attrs={"action": "mint"})
        instrumentation.histogram("rpc_health_check_ms", 41.0)
        with instrumentation.trace("automation_cycle", attrs={"cycle_id": "c1"}):
            pass
        instrumentation.flush()

        names = {
            metric.name
            for resource in reader.get_metrics_data().resource_metrics
            for scope in resource.scope_metrics
            for metric in scope.metrics
        }
        finished = spans.get_finished_spans()
    finally:
        instrumentation.shutdown()

    assert {"automation_wraps_total", "tx_submitted_total", "rpc_health_check_ms"} <= names
    assert [span.name for span in finished] == ["automation_cycle"]
    assert finished[0].attributes["cycle_id"] == "c1"
