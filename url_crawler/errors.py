"""
Exception types raised by the crawler components.
"""

from typing import Optional


class CrawlerError(Exception):
    """Base class for crawler errors."""
    pass


class FetchError(CrawlerError):
    """Network failure, timeout or non-2xx response while fetching a page."""

    def __init__(self, url: str, reason: str, status_code: Optional[int] = None):
        self.url = url
        self.reason = reason
        self.status_code = status_code
        super().__init__(f"Failed to fetch {url}: {reason}")


class ParseError(CrawlerError):
    """Fetched content could not be parsed as HTML."""

    def __init__(self, url: str, reason: str):
        self.url = url
        self.reason = reason
        super().__init__(f"Failed to parse {url}: {reason}")


class LinkResolutionError(CrawlerError):
    """A discovered link is malformed or cannot be crawled."""

    def __init__(self, link: str, reason: str):
        self.link = link
        self.reason = reason
        super().__init__(f"Cannot resolve link {link!r}: {reason}")


class InvalidTransitionError(CrawlerError):
    """A visit record was moved to a state it cannot reach from its current one."""

    def __init__(self, url: str, state):
        self.url = url
        self.state = state
        super().__init__(f"Invalid state transition for {url} (current state: {state})")


class ConfigError(CrawlerError, ValueError):
    """Invalid configuration value."""
    pass
