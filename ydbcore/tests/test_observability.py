"""
Metrics registry and structured logging tests.
"""

from __future__ import annotations

import io
import json
import logging

import pytest

from ydbcore.observability.logging import LogLevel, current_context, log_context, setup_logging
from ydbcore.observability.metrics import Counter, DriverMetrics, Gauge, Histogram, MetricsCollector


# =============================================================================
# METRICS
# =============================================================================
class TestMetrics:
    def test_counter_by_label(self):
        counter = Counter("tx_total", ["outcome"])
        counter.inc(outcome="committed")
        counter.inc(2, outcome="committed")
        counter.inc(outcome="rolled_back")

        assert counter.get(outcome="committed") == 3
        assert counter.get(outcome="rolled_back") == 1
        assert counter.get(outcome="never") == 0

    def test_counter_rejects_decrease(self):
        with pytest.raises(ValueError):
            Counter("c").inc(-1)

    def test_gauge(self):
        gauge = Gauge("in_use", ["pool"])
        gauge.set(5, pool="a")
        gauge.set(3, pool="a")
        assert gauge.get(pool="a") == 3
        assert gauge.get(pool="b") == 0
        assert list(gauge.collect()) == [({"pool": "a"}, 3)]

    def test_histogram_buckets(self):
        histogram = Histogram("latency", buckets=[0.1, 1.0])
        histogram.observe(0.05)
        histogram.observe(0.5)
        histogram.observe(5.0)

        (data,) = list(histogram.collect())
        assert data["buckets"] == [(0.1, 1), (1.0, 2), (float("inf"), 3)]
        assert data["count"] == 3
        assert data["sum"] == pytest.approx(5.55)

    def test_histogram_timer(self):
        histogram = Histogram("latency", ["operation"])
        with histogram.time(operation="query"):
            pass
        assert histogram.count(operation="query") == 1
        assert histogram.count(operation="do_tx") == 0

    def test_collector_returns_same_metric(self):
        collector = MetricsCollector()
        assert collector.counter("a") is collector.counter("a")

    def test_prometheus_export(self):
        collector = MetricsCollector()
        collector.counter("ydbcore_tx_total", ["outcome"], "Transactions").inc(outcome="committed")
        collector.histogram("ydbcore_operation_seconds", buckets=[1.0]).observe(0.5)

        text = collector.export_prometheus()

        assert "# HELP ydbcore_tx_total Transactions" in text
        assert "# TYPE ydbcore_tx_total counter" in text
        assert 'ydbcore_tx_total{outcome="committed"} 1.0' in text
        assert 'ydbcore_operation_seconds_bucket{le="+Inf"} 1' in text
        assert "ydbcore_operation_seconds_count 1" in text

    def test_driver_metrics_share_collector(self):
        metrics = DriverMetrics()
        metrics.sessions_created.inc()
        metrics.sessions_broken.inc(reason="attach")

        text = metrics.collector.export_prometheus()
        assert "ydbcore_sessions_created_total 1.0" in text
        assert 'ydbcore_sessions_broken_total{reason="attach"} 1.0' in text


# =============================================================================
# LOGGING
# =============================================================================
@pytest.fixture
def ydbcore_logger():
    logger = logging.getLogger("ydbcore")
    saved = (list(logger.handlers), logger.level, logger.propagate)
    yield logger
    handlers, level, propagate = saved
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    for handler in handlers:
        logger.addHandler(handler)
    logger.setLevel(level)
    logger.propagate = propagate


class TestLogging:
    def test_json_lines_carry_bound_context(self, ydbcore_logger):
        out = io.StringIO()
        setup_logging(LogLevel.DEBUG, json_output=True, stream=out)
        log = logging.getLogger("ydbcore.query.client")

        with log_context(session_id="session-1"):
            with log_context(tx_id="tx-1"):
                log.info("Committing %s", "now")
            log.warning("After tx")

        first, second = [json.loads(line) for line in out.getvalue().splitlines()]
        assert first["message"] == "Committing now"
        assert first["level"] == "INFO"
        assert first["logger"] == "ydbcore.query.client"
        assert (first["session_id"], first["tx_id"]) == ("session-1", "tx-1")
        assert second["session_id"] == "session-1"
        assert "tx_id" not in second

    def test_extra_fields_and_exceptions(self, ydbcore_logger):
        out = io.StringIO()
        setup_logging(LogLevel.INFO, json_output=True, stream=out)
        log = logging.getLogger("ydbcore.session.pool")

        try:
            raise RuntimeError("broken")
        except RuntimeError:
            log.error("Failed", extra={"error_id": "e-1"}, exc_info=True)

        record = json.loads(out.getvalue())
        assert record["error_id"] == "e-1"
        assert "RuntimeError: broken" in record["exception"]

    def test_level_filters_records(self, ydbcore_logger):
        out = io.StringIO()
        setup_logging(LogLevel.WARNING, json_output=False, stream=out)
        log = logging.getLogger("ydbcore.session.pool")

        log.info("hidden")
        log.warning("shown")

        assert "hidden" not in out.getvalue()
        assert "| WARNING  | ydbcore.session.pool | shown" in out.getvalue()

    def test_context_is_restored(self):
        assert current_context() == {}
        with log_context(session_id="s"):
            assert current_context() == {"session_id": "s"}
        assert current_context() == {}

    def test_parse_level(self):
        assert LogLevel.parse("debug") == LogLevel.DEBUG
        with pytest.raises(ValueError):
            LogLevel.parse("chatty")
