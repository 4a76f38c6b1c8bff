"""
Per-URL fetch, parse and filter sequence.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from .fetcher import FetchResult
from .link_filter import LinkFilter
from .parser import ContentParser


@dataclass
class PageResult:
    """In-scope links found on a crawled page."""
    url: str
    links: List[str] = field(default_factory=list)
    status_code: Optional[int] = None
    raw_link_count: int = 0
    fetch_time: float = 0.0
    final_url: Optional[str] = None


class FetchParsePipeline:
    """
    Fetches a claimed URL, extracts its links and keeps the in-scope ones.

    Links are resolved against the URL the response came from, so a page
    reached through a redirect keeps its relative links correct. A page
    whose redirects end on another site yields no links.

    FetchError and ParseError raised by the collaborators propagate to the
    caller untouched.
    """

    def __init__(self, fetcher, parser: ContentParser, link_filter: LinkFilter):
        self.fetcher = fetcher
        self.parser = parser
        self.link_filter = link_filter
        self.logger = logging.getLogger(__name__)

    async def process(self, url: str) -> PageResult:
        fetch_result: FetchResult = await self.fetcher.fetch(url)
        base_url = fetch_result.final_url or url

        result = PageResult(
            url=url,
            status_code=fetch_result.status_code,
            fetch_time=fetch_result.fetch_time,
            final_url=base_url
        )

        if base_url != url:
            if not self.link_filter.in_scope(base_url):
                self.logger.info(f"{url} redirected off-site to {base_url}, ignoring its links")
                return result
            self.logger.debug(f"{url} redirected to {base_url}")

        raw_links = self.parser.extract_links(
            fetch_result.content, base_url, fetch_result.content_type
        )

        seen = set()
        for raw_link in raw_links:
            link = self.link_filter(raw_link, base_url)
            if link is None or link in seen:
                continue
            seen.add(link)
            result.links.append(link)

        result.raw_link_count = len(raw_links)
        self.logger.debug(f"{url}: {len(result.links)} in-scope of {len(raw_links)} links")
        return result
