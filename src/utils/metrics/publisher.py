"""
Prometheus HTTP endpoint for run metrics.

A sync run is short-lived, so the endpoint only lives as long as the
process; it is mainly useful for long multi-table runs watched by a
scraper.
"""

import logging
from typing import Optional

from prometheus_client import REGISTRY, CollectorRegistry, start_http_server

logger = logging.getLogger(__name__)


class MetricsPublisher:
    """Exposes a registry on /metrics over HTTP."""

    def __init__(
        self,
        port: int = 9108,
        registry: Optional[CollectorRegistry] = None,
    ):
        self.port = port
        self.registry = registry or REGISTRY
        self._server_started = False

    def start(self) -> None:
        """
        Start the metrics HTTP server

        Raises:
            RuntimeError: If the port is already bound by another process
        """
        if self._server_started:
            logger.warning(f"Metrics server already running on port {self.port}")
            return

        try:
            start_http_server(self.port, registry=self.registry)
        except OSError as e:
            if "Address already in use" in str(e):
                raise RuntimeError(
                    f"Metrics server port {self.port} is already in use"
                ) from e
            raise

        self._server_started = True
        logger.info(f"Metrics server started on port {self.port}")

    def is_started(self) -> bool:
        return self._server_started
