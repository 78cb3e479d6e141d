"""
Unit tests for utils.metrics

Each test uses a private CollectorRegistry so metric names never clash
with the global registry.
"""

from unittest.mock import patch

import pytest
from prometheus_client import CollectorRegistry

from utils.metrics import MetricsPublisher, SyncMetrics


@pytest.fixture
def registry():
    return CollectorRegistry()


@pytest.fixture
def metrics(registry):
    return SyncMetrics(registry=registry)


class TestSyncMetrics:
    """Test sync run metrics"""

    def test_record_relation_success(self, metrics, registry):
        metrics.record_relation("orders", kind="table", decision="replace",
                                success=True, duration=2.5, rows=100)

        assert registry.get_sample_value(
            "schema_mirror_relations_processed_total",
            {"kind": "table", "decision": "replace", "status": "success"},
        ) == 1
        assert registry.get_sample_value(
            "schema_mirror_rows_transferred_total", {"relation": "orders"}
        ) == 100
        assert registry.get_sample_value(
            "schema_mirror_transfer_duration_seconds_count", {"relation": "orders"}
        ) == 1

    def test_record_relation_failure(self, metrics, registry):
        metrics.record_relation("v", kind="view", decision="create", success=False)

        assert registry.get_sample_value(
            "schema_mirror_relations_processed_total",
            {"kind": "view", "decision": "create", "status": "failed"},
        ) == 1
        assert registry.get_sample_value(
            "schema_mirror_rows_transferred_total", {"relation": "v"}
        ) is None

    def test_consistency_match(self, metrics, registry):
        metrics.record_consistency("orders", 10, 10)

        assert registry.get_sample_value(
            "schema_mirror_row_count_difference", {"relation": "orders"}
        ) == 0
        assert registry.get_sample_value(
            "schema_mirror_consistency_mismatch_total", {"relation": "orders"}
        ) is None

    def test_consistency_mismatch(self, metrics, registry):
        metrics.record_consistency("orders", 10, 7)

        assert registry.get_sample_value(
            "schema_mirror_row_count_difference", {"relation": "orders"}
        ) == 3
        assert registry.get_sample_value(
            "schema_mirror_consistency_mismatch_total", {"relation": "orders"}
        ) == 1

    def test_record_run(self, metrics, registry):
        metrics.record_run(success=False)

        assert registry.get_sample_value("schema_mirror_last_run_success") == 0
        assert registry.get_sample_value("schema_mirror_last_run_timestamp") > 0


class TestMetricsPublisher:
    """Test the Prometheus HTTP endpoint"""

    @patch("utils.metrics.publisher.start_http_server")
    def test_start(self, mock_start, registry):
        publisher = MetricsPublisher(port=9200, registry=registry)

        publisher.start()
        publisher.start()

        mock_start.assert_called_once_with(9200, registry=registry)
        assert publisher.is_started()

    @patch("utils.metrics.publisher.start_http_server",
           side_effect=OSError("[Errno 98] Address already in use"))
    def test_port_in_use(self, mock_start, registry):
        with pytest.raises(RuntimeError, match="already in use"):
            MetricsPublisher(port=9200, registry=registry).start()

    @patch("utils.metrics.publisher.start_http_server", side_effect=OSError("Permission denied"))
    def test_other_os_error(self, mock_start, registry):
        with pytest.raises(OSError):
            MetricsPublisher(port=80, registry=registry).start()
