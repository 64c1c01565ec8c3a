"""
Prometheus metrics for the post cache and delivery paths.

Defines and exposes metrics for:
- Subreddit fetch outcomes and refresh latency
- Cached post counts
- Delivery outcomes
- Blacklist resets

Metrics are exposed via HTTP endpoint for Prometheus scraping.
"""

import logging

from prometheus_client import (
    REGISTRY,
    Counter,
    Gauge,
    Histogram,
    start_http_server,
)

from memer.config.settings import get_settings

logger = logging.getLogger(__name__)

# Buckets for refresh latency histograms (in seconds)
LATENCY_BUCKETS = (0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0)


class MetricsCollector:
    """
    Prometheus metrics collector for the memer core.

    Usage:
        metrics = get_metrics()
        metrics.start_server()
        metrics.record_fetch("aww", "success", items=100)
    """

    def __init__(self):
        self.source_fetches = Counter(
            "memer_source_fetches_total",
            "Total subreddit fetches",
            ["subreddit", "status"],  # status: success, error, timeout
        )

        self.refresh_latency = Histogram(
            "memer_refresh_latency_seconds",
            "Duration of a full refresh cycle",
            buckets=LATENCY_BUCKETS,
        )

        self.cached_posts = Gauge(
            "memer_cached_posts",
            "Number of posts cached per subreddit",
            ["subreddit"],
        )

        self.deliveries = Counter(
            "memer_deliveries_total",
            "Delivery requests by outcome",
            ["outcome"],  # outcome: delivered, rate_limited, empty
        )

        self.blacklist_resets = Counter(
            "memer_blacklist_resets_total",
            "Number of blacklist epoch resets",
        )

        self.registered_channels = Gauge(
            "memer_registered_channels",
            "Channels known to the in-memory registry",
        )

        logger.info("Prometheus metrics initialized")

    def start_server(self, port: int | None = None) -> None:
        """
        Start Prometheus metrics HTTP server.

        Args:
            port: Port to expose metrics on (default from settings)
        """
        port = port or get_settings().metrics_port
        start_http_server(port, registry=REGISTRY)
        logger.info(f"Prometheus metrics server started on port {port}")

    def record_fetch(self, subreddit: str, status: str, items: int | None = None) -> None:
        """Record a subreddit fetch and, on success, the resulting cache size."""
        self.source_fetches.labels(subreddit=subreddit, status=status).inc()
        if items is not None:
            self.cached_posts.labels(subreddit=subreddit).set(items)

    def record_delivery(self, outcome: str) -> None:
        self.deliveries.labels(outcome=outcome).inc()


# Global metrics instance
_metrics: MetricsCollector | None = None


def get_metrics() -> MetricsCollector:
    """Get global metrics collector instance."""
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics
