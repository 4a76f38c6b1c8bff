"""
Visit state tracking for crawled URLs.

The visit store is the only deduplication authority of a crawl: a URL is
fetched by whichever worker wins ``try_claim`` for it, and by nobody else.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Dict, Iterable, List, Optional

from ..errors import InvalidTransitionError


class VisitState(Enum):
    """Lifecycle of a URL within a crawl."""
    DISCOVERED = 'discovered'
    VISITING = 'visiting'
    VISITED = 'visited'


@dataclass
class VisitRecord:
    """Visit state of a single normalized URL."""
    url: str
    state: VisitState = VisitState.DISCOVERED
    urls_found: List[str] = field(default_factory=list)
    error: Optional[str] = None
    discovered_time: float = field(default_factory=time.time)
    visited_time: Optional[float] = None

    @property
    def visited(self) -> bool:
        return self.state is VisitState.VISITED

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            'url': self.url,
            'state': self.state.value,
            'urls_found': list(self.urls_found),
            'error': self.error,
            'discovered_time': self.discovered_time,
            'visited_time': self.visited_time
        }

    def copy(self) -> 'VisitRecord':
        return replace(self, urls_found=list(self.urls_found))


class VisitStore:
    """Abstract base class for visit state storage."""

    async def try_claim(self, url: str) -> bool:
        """Move an unseen or discovered URL to VISITING; True if the caller now owns it."""
        raise NotImplementedError

    async def mark_visited(self, url: str, urls_found: Iterable[str] = (),
                           error: Optional[str] = None):
        """Move a claimed URL from VISITING to VISITED."""
        raise NotImplementedError

    async def record_discovered(self, url: str) -> bool:
        """Insert a never-seen URL as DISCOVERED; True if it was new."""
        raise NotImplementedError

    async def snapshot(self) -> Dict[str, VisitRecord]:
        """Copy of every record, keyed by URL."""
        raise NotImplementedError

    async def get(self, url: str) -> Optional[VisitRecord]:
        """Copy of the record for a URL, if any."""
        raise NotImplementedError

    async def count(self, state: Optional[VisitState] = None) -> int:
        """Number of records, optionally restricted to one state."""
        records = await self.snapshot()
        if state is None:
            return len(records)
        return sum(1 for record in records.values() if record.state is state)


def claim_record(records: Dict[str, VisitRecord], url: str) -> bool:
    """Check-and-set step of a claim. Callers provide the atomicity."""
    record = records.get(url)
    if record is None:
        records[url] = VisitRecord(url=url, state=VisitState.VISITING)
        return True
    if record.state is VisitState.DISCOVERED:
        record.state = VisitState.VISITING
        return True
    return False


def complete_record(records: Dict[str, VisitRecord], url: str,
                    urls_found: Iterable[str], error: Optional[str]):
    record = records.get(url)
    if record is None or record.state is not VisitState.VISITING:
        raise InvalidTransitionError(url, record.state if record else None)
    record.state = VisitState.VISITED
    record.urls_found = list(urls_found)
    record.error = error
    record.visited_time = time.time()


class InMemoryVisitStore(VisitStore):
    """Visit store backed by a dict, guarded by a lock for concurrent workers."""

    def __init__(self):
        self.logger = logging.getLogger(__name__)
        self._records: Dict[str, VisitRecord] = {}
        self._lock = asyncio.Lock()

    async def try_claim(self, url: str) -> bool:
        async with self._lock:
            claimed = claim_record(self._records, url)
        if claimed:
            self.logger.debug(f"Claimed URL: {url}")
        return claimed

    async def mark_visited(self, url: str, urls_found: Iterable[str] = (),
                           error: Optional[str] = None):
        async with self._lock:
            complete_record(self._records, url, urls_found, error)
        self.logger.debug(f"Marked URL as visited: {url}")

    async def record_discovered(self, url: str) -> bool:
        async with self._lock:
            if url in self._records:
                return False
            self._records[url] = VisitRecord(url=url)
        return True

    async def snapshot(self) -> Dict[str, VisitRecord]:
        async with self._lock:
            return {url: record.copy() for url, record in self._records.items()}

    async def get(self, url: str) -> Optional[VisitRecord]:
        async with self._lock:
            record = self._records.get(url)
            return record.copy() if record else None

    async def count(self, state: Optional[VisitState] = None) -> int:
        async with self._lock:
            if state is None:
                return len(self._records)
            return sum(1 for record in self._records.values() if record.state is state)
