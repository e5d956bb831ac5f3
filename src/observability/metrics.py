"""
Prometheus metrics for the content-tracker pipeline.

Defines and exposes metrics for:
- Items fetched per platform and fetch latency
- Store outcomes (created, updated, skipped, error)
- Refresh runs per trigger
- Summary jobs and queue reclaim

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

from src.config.settings import get_settings
from src.ingestion.schemas import Platform

logger = logging.getLogger(__name__)

# Scraper-backed fetches (Apify, Bright Data) run for minutes.
FETCH_LATENCY_BUCKETS = (0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0)
RUN_LATENCY_BUCKETS = (1.0, 5.0, 15.0, 30.0, 60.0, 120.0, 300.0, 600.0, 1800.0)


def _label(platform: Platform | str) -> str:
    return platform.value if isinstance(platform, Platform) else platform


class MetricsCollector:
    """
    Prometheus metrics collector for content-tracker.

    Usage:
        metrics = get_metrics()
        metrics.start_server()

        metrics.record_items_fetched("rss", 10)
        metrics.record_store_outcome("youtube", "created")
    """

    def __init__(self):
        # Fetching
        self.items_fetched = Counter(
            "content_tracker_items_fetched_total",
            "Raw items returned by platform fetchers",
            ["platform"],
        )

        self.fetch_errors = Counter(
            "content_tracker_fetch_errors_total",
            "Fetch failures by platform and error type",
            ["platform", "error_type"],
        )

        self.fetch_latency = Histogram(
            "content_tracker_fetch_latency_seconds",
            "Time spent in a single platform fetch",
            ["platform"],
            buckets=FETCH_LATENCY_BUCKETS,
        )

        # Normalization and storage
        self.normalization_errors = Counter(
            "content_tracker_normalization_errors_total",
            "Raw items that could not be normalized",
            ["platform"],
        )

        self.items_stored = Counter(
            "content_tracker_items_stored_total",
            "Store outcomes per item",
            ["platform", "outcome"],  # created, updated, skipped, error
        )

        # Refresh runs
        self.refresh_runs = Counter(
            "content_tracker_refresh_runs_total",
            "Refresh runs by trigger and final status",
            ["trigger", "status"],  # trigger: manual, cron, linkedin_cron, cli
        )

        self.refresh_duration = Histogram(
            "content_tracker_refresh_duration_seconds",
            "Wall time of a refresh run",
            ["trigger"],
            buckets=RUN_LATENCY_BUCKETS,
        )

        self.fetch_state_conflicts = Counter(
            "content_tracker_fetch_state_conflicts_total",
            "Compare-and-swap conflicts when writing creator fetch state",
        )

        # Summaries
        self.summary_jobs = Counter(
            "content_tracker_summary_jobs_total",
            "Summary jobs by status",
            ["status"],  # published, completed, failed
        )

        self.summary_queue_depth = Gauge(
            "content_tracker_summary_queue_depth",
            "Messages in the summary stream",
        )

        # Queue reclaim metrics
        self.pending_reclaimed = Counter(
            "content_tracker_queue_pending_reclaimed_total",
            "Total messages reclaimed from pending state",
            ["queue"],
        )

        self.dlq_max_retries = Counter(
            "content_tracker_queue_dlq_max_retries_total",
            "Total messages moved to DLQ due to max retries exceeded",
            ["queue"],
        )

        logger.info("Prometheus metrics initialized")

    def start_server(self, port: int | None = None) -> None:
        """Start the Prometheus HTTP endpoint (default port from settings)."""
        port = port or get_settings().metrics_port
        start_http_server(port, registry=REGISTRY)
        logger.info(f"Prometheus metrics server started on port {port}")

    # Convenience methods

    def record_items_fetched(self, platform: Platform | str, count: int) -> None:
        if count:
            self.items_fetched.labels(platform=_label(platform)).inc(count)

    def record_fetch_error(self, platform: Platform | str, error_type: str) -> None:
        self.fetch_errors.labels(platform=_label(platform), error_type=error_type).inc()

    def record_fetch_latency(self, platform: Platform | str, seconds: float) -> None:
        self.fetch_latency.labels(platform=_label(platform)).observe(seconds)

    def record_normalization_error(self, platform: Platform | str, count: int = 1) -> None:
        self.normalization_errors.labels(platform=_label(platform)).inc(count)

    def record_store_outcome(
        self,
        platform: Platform | str,
        outcome: str,
        count: int = 1,
    ) -> None:
        """
        Record store results.

        Args:
            platform: Source platform
            outcome: created, updated, skipped or error
            count: Number of items
        """
        if count:
            self.items_stored.labels(platform=_label(platform), outcome=outcome).inc(count)

    def record_refresh_run(self, trigger: str, success: bool, duration: float) -> None:
        status = "success" if success else "failed"
        self.refresh_runs.labels(trigger=trigger, status=status).inc()
        self.refresh_duration.labels(trigger=trigger).observe(duration)

    def record_fetch_state_conflict(self) -> None:
        self.fetch_state_conflicts.inc()

    def record_summary_jobs(self, status: str, count: int = 1) -> None:
        self.summary_jobs.labels(status=status).inc(count)

    def set_summary_queue_depth(self, depth: int) -> None:
        self.summary_queue_depth.set(depth)


# Global metrics instance
_metrics: MetricsCollector | None = None


def get_metrics() -> MetricsCollector:
    """Get global metrics collector instance."""
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics
