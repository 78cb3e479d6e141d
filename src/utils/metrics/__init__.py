"""
Prometheus metrics for schema-mirror runs

Usage:
    from utils.metrics import MetricsPublisher, SyncMetrics

    publisher = MetricsPublisher(port=9108)
    publisher.start()

    metrics = SyncMetrics()
    metrics.record_relation("orders", kind="table", decision="replace",
                            success=True, duration=3.2, rows=1200)
"""

from .publisher import MetricsPublisher
from .sync import SyncMetrics

__all__ = [
    "MetricsPublisher",
    "SyncMetrics",
]
