"""
Web page fetcher built on aiohttp.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Dict, Optional

import aiohttp
from aiohttp import ClientError, ClientSession, ClientTimeout

from ..errors import FetchError


@dataclass
class FetchResult:
    """Result of a successful fetch. ``final_url`` is where redirects ended."""
    url: str
    status_code: int
    content: str = ''
    headers: Optional[Dict[str, str]] = None
    fetch_time: float = 0.0
    content_type: Optional[str] = None
    encoding: Optional[str] = None
    final_url: Optional[str] = None


class WebFetcher:
    """
    Fetches web pages over a shared aiohttp session.

    ``fetch`` returns a FetchResult for 2xx responses and raises FetchError
    for everything else: connection errors, timeouts, other status codes and
    bodies larger than ``max_content_size``.
    """

    def __init__(self, user_agent: str, request_timeout: float = 30,
                 max_concurrent_requests: int = 10,
                 max_content_size: int = 10 * 1024 * 1024):
        self.user_agent = user_agent
        self.request_timeout = request_timeout
        self.max_concurrent_requests = max_concurrent_requests
        self.max_content_size = max_content_size

        self.logger = logging.getLogger(__name__)

        # Session management
        self.session: Optional[ClientSession] = None
        self.semaphore = asyncio.Semaphore(max_concurrent_requests)

        # Statistics
        self.stats = {
            'total_requests': 0,
            'successful_requests': 0,
            'failed_requests': 0,
            'total_bytes_downloaded': 0
        }

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def start(self):
        """Initialize the fetcher session."""
        if self.session is None:
            timeout = ClientTimeout(total=self.request_timeout)
            headers = {'User-Agent': self.user_agent}

            self.session = aiohttp.ClientSession(
                timeout=timeout,
                headers=headers,
                connector=aiohttp.TCPConnector(
                    limit=self.max_concurrent_requests * 2,
                    ttl_dns_cache=300,
                    use_dns_cache=True
                )
            )
            self.logger.info("WebFetcher session started")

    async def close(self):
        """Close the fetcher session."""
        if self.session:
            await self.session.close()
            self.session = None
            self.logger.info("WebFetcher session closed")

    async def fetch(self, url: str) -> FetchResult:
        """
        Fetch a single URL.

        Args:
            url: The URL to fetch

        Returns:
            FetchResult with the decoded body

        Raises:
            FetchError: on network failure, timeout or a non-2xx status
        """
        if self.session is None:
            await self.start()

        start_time = time.time()

        async with self.semaphore:
            self.stats['total_requests'] += 1
            try:
                async with self.session.get(url) as response:
                    if not 200 <= response.status < 300:
                        raise FetchError(url, f"HTTP {response.status}", response.status)

                    content = await self._read_content_safely(url, response)
                    content_type = response.headers.get('content-type', '').lower()

                    self.stats['successful_requests'] += 1
                    self.stats['total_bytes_downloaded'] += len(content)
                    self.logger.debug(f"Fetched {url}: {response.status} ({len(content)} chars)")

                    return FetchResult(
                        url=url,
                        status_code=response.status,
                        content=content,
                        headers=dict(response.headers),
                        fetch_time=time.time() - start_time,
                        content_type=content_type,
                        encoding=response.charset,
                        final_url=str(response.url)
                    )

            except FetchError:
                self.stats['failed_requests'] += 1
                raise

            except asyncio.TimeoutError as e:
                self.stats['failed_requests'] += 1
                raise FetchError(url, "Request timeout") from e

            except ClientError as e:
                self.stats['failed_requests'] += 1
                raise FetchError(url, f"Client error: {e}") from e

    async def _read_content_safely(self, url: str, response: aiohttp.ClientResponse) -> str:
        """Read and decode the body, refusing anything above the size limit."""
        content_length = response.headers.get('content-length')
        if content_length and content_length.isdigit() and int(content_length) > self.max_content_size:
            raise FetchError(url, f"Content too large ({content_length} bytes)", response.status)

        # Read content in chunks to respect size limit
        content_bytes = b''
        async for chunk in response.content.iter_chunked(8192):
            content_bytes += chunk
            if len(content_bytes) > self.max_content_size:
                raise FetchError(url, "Content exceeded size limit during reading", response.status)

        encoding = response.charset or 'utf-8'
        try:
            return content_bytes.decode(encoding)
        except (UnicodeDecodeError, LookupError):
            # Try common encodings
            for fallback_encoding in ['utf-8', 'cp1252']:
                try:
                    return content_bytes.decode(fallback_encoding)
                except UnicodeDecodeError:
                    continue

            # If all else fails, decode with errors ignored
            return content_bytes.decode('utf-8', errors='ignore')

    def get_stats(self) -> Dict[str, int]:
        """Get fetcher statistics."""
        return self.stats.copy()
