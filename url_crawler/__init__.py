"""
URL Crawler

Crawls a seed URL and every page of the same site reachable from it,
with a bounded pool of concurrent workers.
"""

from .crawler.scheduler import CrawlerScheduler, crawl, run_crawl
from .errors import CrawlerError, FetchError, LinkResolutionError, ParseError
from .storage.visit_store import VisitRecord, VisitState

__version__ = "1.0.0"
__description__ = "A concurrent single-site web crawler"

__all__ = [
    'CrawlerScheduler', 'crawl', 'run_crawl',
    'CrawlerError', 'FetchError', 'LinkResolutionError', 'ParseError',
    'VisitRecord', 'VisitState'
]
