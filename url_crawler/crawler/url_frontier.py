"""
URL Frontier implementation for managing URLs waiting to be crawled.
"""

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Optional, Union


@dataclass
class URLTask:
    """Represents a URL crawling task."""
    url: str
    depth: int = 0
    parent_url: Optional[str] = None
    discovered_time: float = field(default_factory=time.time)


class Frontier:
    """Abstract base class for the pending-URL queue."""

    async def push(self, task: Union[URLTask, str]):
        """Append a task to the queue."""
        raise NotImplementedError

    async def pop(self) -> Optional[URLTask]:
        """Remove and return the next task, or None when the queue is empty."""
        raise NotImplementedError

    async def size(self) -> int:
        """Number of queued tasks."""
        raise NotImplementedError

    async def is_empty(self) -> bool:
        """Check if the frontier is empty."""
        return await self.size() == 0


def as_task(task: Union[URLTask, str]) -> URLTask:
    """Wrap a bare URL string in a depth-0 task."""
    if isinstance(task, URLTask):
        return task
    return URLTask(url=task)


class URLFrontier(Frontier):
    """
    FIFO queue of URLs to crawl, safe for concurrent pushers and poppers.

    The frontier does not deduplicate: the same URL may be queued more than
    once and the visit store decides which entry gets crawled.
    """

    def __init__(self):
        self.logger = logging.getLogger(__name__)
        self._queue: Deque[URLTask] = deque()
        self._lock = asyncio.Lock()

    async def push(self, task: Union[URLTask, str]):
        task = as_task(task)
        async with self._lock:
            self._queue.append(task)
        self.logger.debug(f"Added URL to frontier: {task.url}")

    async def pop(self) -> Optional[URLTask]:
        async with self._lock:
            if not self._queue:
                return None
            task = self._queue.popleft()
        self.logger.debug(f"Retrieved URL from frontier: {task.url}")
        return task

    async def size(self) -> int:
        async with self._lock:
            return len(self._queue)
