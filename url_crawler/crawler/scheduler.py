"""
Crawler scheduler that coordinates the workers of a single-site crawl.
"""

import asyncio
import logging
import time
from collections import defaultdict
from dataclasses import dataclass, replace
from typing import Dict, List, Optional
from urllib.parse import urlparse

from ..errors import ConfigError, FetchError, LinkResolutionError, ParseError
from ..storage.visit_store import InMemoryVisitStore, VisitRecord, VisitStore
from ..utils.config import CrawlerConfig
from ..utils.logger import get_crawler_logger
from ..utils.monitoring import CrawlMetrics
from .fetcher import WebFetcher
from .link_filter import LinkFilter, normalize_url
from .parser import ContentParser
from .pipeline import FetchParsePipeline
from .url_frontier import Frontier, URLFrontier, URLTask


@dataclass
class CrawlStats:
    """Statistics for crawl operations."""
    start_time: float
    pages_visited: int = 0
    fetch_errors: int = 0
    parse_errors: int = 0
    links_discovered: int = 0
    claims_lost: int = 0

    @property
    def errors(self) -> int:
        return self.fetch_errors + self.parse_errors

    @property
    def elapsed_time(self) -> float:
        return time.time() - self.start_time

    @property
    def pages_per_minute(self) -> float:
        elapsed_minutes = self.elapsed_time / 60
        return self.pages_visited / elapsed_minutes if elapsed_minutes > 0 else 0


class PolitenessGate:
    """
    Enforces a minimum delay between consecutive requests to the same host.

    The gate is shared by all workers, so the delay holds for the crawl as a
    whole rather than per worker.
    """

    def __init__(self, delay: float):
        self.delay = delay
        self._last_request: Dict[str, float] = {}
        self._locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    async def wait(self, url: str) -> float:
        """Sleep until a request to the URL's host is allowed. Returns the time slept."""
        if self.delay <= 0:
            return 0.0

        host = urlparse(url).netloc
        loop = asyncio.get_running_loop()
        waited = 0.0

        async with self._locks[host]:
            last = self._last_request.get(host)
            if last is not None:
                waited = max(0.0, last + self.delay - loop.time())
                if waited > 0:
                    await asyncio.sleep(waited)
            self._last_request[host] = loop.time()

        return waited


class CrawlerScheduler:
    """
    Runs a pool of workers over a shared frontier and visit store.

    Every worker counts itself in-flight from just before it pops the
    frontier until the links of the page it claimed have been pushed. The
    crawl is over once the frontier is empty while nobody is in-flight,
    confirmed a second time after ``termination_grace`` seconds.
    """

    def __init__(self, config: CrawlerConfig, frontier: Frontier,
                 visit_store: VisitStore, pipeline: FetchParsePipeline,
                 metrics: Optional[CrawlMetrics] = None,
                 stats_interval: float = 30.0):
        self.config = config
        self.frontier = frontier
        self.visit_store = visit_store
        self.pipeline = pipeline
        self.metrics = metrics
        self.stats_interval = stats_interval
        self.logger = logging.getLogger(__name__)

        self.politeness = PolitenessGate(config.politeness_delay)
        self.stats = CrawlStats(start_time=time.time())
        self.is_running = False

        self._in_flight = 0
        self._pages_claimed = 0
        self._done: Optional[asyncio.Event] = None

    @property
    def in_flight(self) -> int:
        return self._in_flight

    async def add_seed_url(self, seed_url: str) -> str:
        """Normalize the seed, record it and queue it. Returns the normalized URL."""
        try:
            url = normalize_url(seed_url, self.config.keep_fragments)
        except LinkResolutionError as e:
            raise ConfigError(f"Invalid seed URL {seed_url!r}: {e.reason}") from e

        if await self.visit_store.record_discovered(url):
            await self.frontier.push(URLTask(url=url, depth=0))
            self.logger.info(f"Added seed URL to frontier: {url}")
        return url

    async def run(self, seed_url: str) -> Dict[str, VisitRecord]:
        """
        Crawl from ``seed_url`` until no work is left.

        Returns:
            Snapshot of the visit store once every worker has stopped
        """
        if self.is_running:
            raise RuntimeError("Crawler is already running")

        self.stats = CrawlStats(start_time=time.time())
        self._done = asyncio.Event()
        self._in_flight = 0
        self._pages_claimed = 0

        await self.add_seed_url(seed_url)

        self.is_running = True
        workers: List[asyncio.Task] = [
            asyncio.create_task(self._worker(f"worker-{i}"))
            for i in range(self.config.worker_count)
        ]
        stats_task = asyncio.create_task(self._stats_reporter())
        self.logger.info(f"Started crawling with {len(workers)} workers")

        try:
            await asyncio.gather(*workers)
        finally:
            self.is_running = False
            stats_task.cancel()
            for worker in workers:
                if not worker.done():
                    worker.cancel()
            await asyncio.gather(*workers, stats_task, return_exceptions=True)

        await self._log_final_stats()
        return await self.visit_store.snapshot()

    async def _worker(self, worker_id: str):
        """Worker coroutine that processes URLs from the frontier."""
        logger = get_crawler_logger(__name__, worker=worker_id)
        logger.debug("Worker started")

        while not self._done.is_set():
            self._enter()
            try:
                task = await self.frontier.pop()
                if task is not None:
                    await self._process_task(task, logger)
            finally:
                self._leave()

            if task is None:
                if await self._check_termination():
                    logger.debug("No work left")
                    break
                await asyncio.sleep(self.config.idle_backoff)

        logger.debug("Worker finished")

    def _enter(self):
        self._in_flight += 1
        if self.metrics:
            self.metrics.in_flight.set(self._in_flight)

    def _leave(self):
        self._in_flight -= 1
        if self.metrics:
            self.metrics.in_flight.set(self._in_flight)

    async def _check_termination(self) -> bool:
        """True once the frontier stayed empty with no worker in-flight across the grace period."""
        if self._done.is_set():
            return True
        if self._in_flight or not await self.frontier.is_empty():
            return False

        await asyncio.sleep(self.config.termination_grace)

        if self._in_flight or not await self.frontier.is_empty():
            return False

        self._done.set()
        return True

    def _reserve_page(self) -> bool:
        max_pages = self.config.max_pages
        if max_pages is not None and self._pages_claimed >= max_pages:
            return False
        self._pages_claimed += 1
        return True

    async def _process_task(self, task: URLTask, logger: logging.LoggerAdapter):
        """Claim, fetch, parse and expand a single URL."""
        if not self._reserve_page():
            if not self._done.is_set():
                self.logger.info(f"Reached max pages limit: {self.config.max_pages}")
                self._done.set()
            return

        if not await self.visit_store.try_claim(task.url):
            self._pages_claimed -= 1
            self.stats.claims_lost += 1
            if self.metrics:
                self.metrics.claims_lost.inc()
            logger.debug(f"Already claimed, skipping: {task.url}")
            return

        links: List[str] = []
        error: Optional[str] = None

        try:
            await self.politeness.wait(task.url)
            result = await self.pipeline.process(task.url)
        except FetchError as e:
            error = str(e)
            self.stats.fetch_errors += 1
            if self.metrics:
                self.metrics.record_error('fetch')
            logger.warning(f"Error requesting URL {task.url} - {e.reason}")
        except ParseError as e:
            error = str(e)
            self.stats.parse_errors += 1
            if self.metrics:
                self.metrics.record_error('parse')
            logger.warning(f"Error parsing URL {task.url} - {e.reason}")
        else:
            links = result.links
            if self.metrics:
                self.metrics.record_page(result.fetch_time)
            logger.info(f"Visited URL: {task.url} ({len(links)} links)")
            await self._queue_new_urls(task, links, logger)

        await self.visit_store.mark_visited(task.url, links, error)
        self.stats.pages_visited += 1

    async def _queue_new_urls(self, task: URLTask, links: List[str],
                              logger: logging.LoggerAdapter):
        """Record links never seen before and queue them."""
        for link in links:
            logger.info(f"Found URL: {link}")

        depth = task.depth + 1
        if self.config.max_depth is not None and depth > self.config.max_depth:
            logger.debug(f"Not queueing links beyond max depth {self.config.max_depth}")
            return

        added_count = 0
        for link in links:
            if await self.visit_store.record_discovered(link):
                await self.frontier.push(URLTask(url=link, depth=depth, parent_url=task.url))
                added_count += 1
                logger.debug(f"Queued URL: {link}")

        self.stats.links_discovered += added_count
        if self.metrics:
            self.metrics.links_discovered.inc(added_count)
            self.metrics.frontier_size.set(await self.frontier.size())

    async def _stats_reporter(self):
        """Periodically log crawl statistics."""
        while self.is_running:
            await asyncio.sleep(self.stats_interval)
            await self._log_current_stats()

    async def _log_current_stats(self):
        queued = await self.frontier.size()
        self.logger.info(
            f"Crawl Progress: "
            f"Visited={self.stats.pages_visited}, "
            f"Queued={queued}, "
            f"InFlight={self._in_flight}, "
            f"Errors={self.stats.errors}, "
            f"Rate={self.stats.pages_per_minute:.1f} pages/min"
        )

    async def _log_final_stats(self):
        queued = await self.frontier.size()

        self.logger.info("=== CRAWL COMPLETED ===")
        self.logger.info(f"Pages visited: {self.stats.pages_visited}")
        self.logger.info(f"New URLs discovered: {self.stats.links_discovered}")
        self.logger.info(f"Fetch errors: {self.stats.fetch_errors}")
        self.logger.info(f"Parse errors: {self.stats.parse_errors}")
        self.logger.info(f"Duplicate claims skipped: {self.stats.claims_lost}")
        self.logger.info(f"Total time: {self.stats.elapsed_time:.2f} seconds")
        self.logger.info(f"URLs remaining in queue: {queued}")

    def get_stats(self) -> Dict:
        """Get current crawl statistics."""
        return {
            'pages_visited': self.stats.pages_visited,
            'fetch_errors': self.stats.fetch_errors,
            'parse_errors': self.stats.parse_errors,
            'links_discovered': self.stats.links_discovered,
            'claims_lost': self.stats.claims_lost,
            'elapsed_time': self.stats.elapsed_time,
            'pages_per_minute': self.stats.pages_per_minute,
            'in_flight': self._in_flight,
            'is_running': self.is_running
        }


async def crawl(seed_url: str, worker_count: Optional[int] = None,
                delay: Optional[float] = None,
                config: Optional[CrawlerConfig] = None, *,
                fetcher=None,
                parser: Optional[ContentParser] = None,
                frontier: Optional[Frontier] = None,
                visit_store: Optional[VisitStore] = None,
                metrics: Optional[CrawlMetrics] = None) -> Dict[str, VisitRecord]:
    """
    Crawl ``seed_url`` and its same-site neighbourhood.

    ``worker_count`` and ``delay`` override the matching ``config`` fields.
    Components left as None are built from the config; a fetcher built here
    is closed when the crawl ends.

    Returns:
        Final snapshot of the visit store, keyed by normalized URL
    """
    config = config or CrawlerConfig()
    overrides = {'seed_url': seed_url}
    if worker_count is not None:
        overrides['worker_count'] = worker_count
    if delay is not None:
        overrides['politeness_delay'] = delay
    config = replace(config, **overrides)
    config.validate()

    try:
        link_filter = LinkFilter(
            seed_url,
            keep_fragments=config.keep_fragments,
            match_scheme=config.match_scheme
        )
    except LinkResolutionError as e:
        raise ConfigError(f"Invalid seed URL {seed_url!r}: {e.reason}") from e

    owns_fetcher = fetcher is None
    if owns_fetcher:
        fetcher = WebFetcher(
            user_agent=config.user_agent,
            request_timeout=config.request_timeout,
            max_concurrent_requests=config.max_concurrent_requests
        )

    pipeline = FetchParsePipeline(fetcher, parser or ContentParser(), link_filter)
    scheduler = CrawlerScheduler(
        config,
        frontier if frontier is not None else URLFrontier(),
        visit_store if visit_store is not None else InMemoryVisitStore(),
        pipeline,
        metrics
    )

    try:
        return await scheduler.run(seed_url)
    finally:
        if owns_fetcher:
            logging.getLogger(__name__).info(f"Fetcher stats: {fetcher.get_stats()}")
            await fetcher.close()


def run_crawl(seed_url: str, worker_count: int = 1, delay: float = 0.0,
              config: Optional[CrawlerConfig] = None, **components) -> Dict[str, VisitRecord]:
    """Blocking wrapper around ``crawl``."""
    return asyncio.run(crawl(seed_url, worker_count, delay, config, **components))
