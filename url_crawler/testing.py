"""
Deterministic in-memory collaborators for exercising the scheduler without
a network.
"""

import asyncio
from collections import Counter, deque
from typing import Deque, Dict, Iterable, List, Optional, Union

from .crawler.fetcher import FetchResult
from .crawler.url_frontier import Frontier, URLTask, as_task
from .errors import FetchError
from .storage.visit_store import (
    VisitRecord,
    VisitState,
    VisitStore,
    claim_record,
    complete_record,
)


def html_page(*hrefs: str) -> str:
    """Minimal HTML document linking to ``hrefs``."""
    anchors = ''.join(f'<a href="{href}">{href}</a>' for href in hrefs)
    return f"<html><body>{anchors}</body></html>"


class FakeFetcher:
    """
    Serves pages from a dict and counts requests per URL.

    Values may be HTML strings or exceptions to raise. Unknown URLs raise a
    404 FetchError. ``redirects`` maps a requested URL to the URL whose page
    is served in its place, reported as the result's ``final_url``. Every
    fetch sleeps ``latency`` seconds, which lets other workers run in the
    meantime.
    """

    def __init__(self, pages: Dict[str, Union[str, Exception]],
                 content_type: str = 'text/html; charset=utf-8',
                 latency: float = 0.0,
                 redirects: Optional[Dict[str, str]] = None):
        self.pages = dict(pages)
        self.content_type = content_type
        self.latency = latency
        self.redirects = dict(redirects or {})
        self.calls: Counter = Counter()
        self.requested: List[str] = []
        self.request_times: List[float] = []

    async def fetch(self, url: str) -> FetchResult:
        self.calls[url] += 1
        self.requested.append(url)
        self.request_times.append(asyncio.get_running_loop().time())

        await asyncio.sleep(self.latency)

        final_url = self.redirects.get(url, url)
        page = self.pages.get(final_url)
        if page is None:
            raise FetchError(url, "HTTP 404", 404)
        if isinstance(page, Exception):
            raise page
        return FetchResult(url=url, status_code=200, content=page,
                           content_type=self.content_type, final_url=final_url)

    async def close(self):
        pass


class FIFOFrontier(Frontier):
    """Unsynchronized FIFO frontier that keeps a log of every push."""

    def __init__(self, urls: Iterable[str] = ()):
        self.queue: Deque[URLTask] = deque(URLTask(url=url) for url in urls)
        self.pushed: List[str] = []

    async def push(self, task: Union[URLTask, str]):
        task = as_task(task)
        self.pushed.append(task.url)
        self.queue.append(task)

    async def pop(self) -> Optional[URLTask]:
        if not self.queue:
            return None
        return self.queue.popleft()

    async def size(self) -> int:
        return len(self.queue)


class DictVisitStore(VisitStore):
    """Unsynchronized visit store that logs every claim attempt."""

    def __init__(self):
        self.records: Dict[str, VisitRecord] = {}
        self.claims: List[tuple] = []

    async def try_claim(self, url: str) -> bool:
        claimed = claim_record(self.records, url)
        self.claims.append((url, claimed))
        return claimed

    async def mark_visited(self, url: str, urls_found: Iterable[str] = (),
                           error: Optional[str] = None):
        complete_record(self.records, url, urls_found, error)

    async def record_discovered(self, url: str) -> bool:
        if url in self.records:
            return False
        self.records[url] = VisitRecord(url=url)
        return True

    async def snapshot(self) -> Dict[str, VisitRecord]:
        return {url: record.copy() for url, record in self.records.items()}

    async def get(self, url: str) -> Optional[VisitRecord]:
        record = self.records.get(url)
        return record.copy() if record else None

    def states(self) -> Dict[str, VisitState]:
        return {url: record.state for url, record in self.records.items()}
