"""
Prometheus metrics for the crawler.
"""

import logging
from typing import Optional

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
    start_http_server,
)


class CrawlMetrics:
    """
    Crawl metrics kept in a private registry, so several crawls can run in
    one process without clashing metric names.
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.logger = logging.getLogger(__name__)
        self.registry = registry or CollectorRegistry()

        self.pages_visited = Counter(
            'crawler_pages_visited_total',
            'Total number of URLs marked visited',
            registry=self.registry
        )
        self.errors = Counter(
            'crawler_errors_total',
            'Total number of fetch and parse errors',
            ['error_type'],
            registry=self.registry
        )
        self.links_discovered = Counter(
            'crawler_links_discovered_total',
            'Total number of new in-scope URLs discovered',
            registry=self.registry
        )
        self.claims_lost = Counter(
            'crawler_claims_lost_total',
            'Popped URLs discarded because another worker had claimed them',
            registry=self.registry
        )
        self.frontier_size = Gauge(
            'crawler_frontier_size',
            'Number of URLs in the frontier',
            registry=self.registry
        )
        self.in_flight = Gauge(
            'crawler_in_flight_workers',
            'Number of workers holding work',
            registry=self.registry
        )
        self.fetch_seconds = Histogram(
            'crawler_fetch_seconds',
            'Time spent fetching and parsing a page',
            registry=self.registry
        )

    def record_page(self, fetch_time: float):
        self.pages_visited.inc()
        self.fetch_seconds.observe(fetch_time)

    def record_error(self, error_type: str):
        self.pages_visited.inc()
        self.errors.labels(error_type=error_type).inc()

    def value(self, name: str, **labels) -> float:
        """Current sample value of a metric in this registry, 0 if absent."""
        result = self.registry.get_sample_value(name, labels or None)
        return result or 0.0

    def start_server(self, port: int):
        """Expose the registry over HTTP for Prometheus to scrape."""
        start_http_server(port, registry=self.registry)
        self.logger.info(f"Prometheus metrics server started on port {port}")

    def export_text(self) -> str:
        return generate_latest(self.registry).decode('utf-8')
