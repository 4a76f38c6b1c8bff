"""
Web crawler core components.
"""

from .url_frontier import Frontier, URLFrontier, URLTask
from .fetcher import WebFetcher, FetchResult
from .parser import ContentParser
from .link_filter import Authority, LinkFilter, normalize_url, resolve_and_filter
from .pipeline import FetchParsePipeline, PageResult
from .scheduler import CrawlerScheduler, CrawlStats, PolitenessGate, crawl, run_crawl

__all__ = [
    'Frontier', 'URLFrontier', 'URLTask',
    'WebFetcher', 'FetchResult',
    'ContentParser',
    'Authority', 'LinkFilter', 'normalize_url', 'resolve_and_filter',
    'FetchParsePipeline', 'PageResult',
    'CrawlerScheduler', 'CrawlStats', 'PolitenessGate', 'crawl', 'run_crawl'
]
