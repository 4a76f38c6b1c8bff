"""
HTML link extraction.
"""

import logging
from typing import List, Optional
from urllib.parse import urljoin

from bs4 import BeautifulSoup, SoupStrainer

from ..errors import ParseError

HTML_CONTENT_TYPES = ('text/html', 'application/xhtml+xml')

# Parse only the tags that carry links
LINK_STRAINER = SoupStrainer(['a', 'base'])


class ContentParser:
    """
    Extracts raw link strings from HTML pages.

    Links are returned as they appear in ``href`` attributes, in document
    order. Filtering and normalization are left to the link filter.
    """

    def __init__(self, features: str = 'lxml'):
        self.features = features
        self.logger = logging.getLogger(__name__)

    def extract_links(self, content, base_url: str,
                      content_type: Optional[str] = None) -> List[str]:
        """
        Parse HTML content and return the href of every anchor.

        Args:
            content: Raw HTML content
            base_url: The URL the content was fetched from
            content_type: Content-Type header of the response, if known

        Returns:
            Raw link strings; relative links stay relative unless the page
            declares a <base href>, which they are resolved against

        Raises:
            ParseError: if the content is not HTML or cannot be parsed
        """
        if content_type and not self._is_html(content_type):
            raise ParseError(base_url, f"Non-HTML content type: {content_type}")

        if not isinstance(content, (str, bytes)):
            raise ParseError(base_url, f"Unsupported content of type {type(content).__name__}")

        if isinstance(content, bytes) and b'\x00' in content:
            raise ParseError(base_url, "Binary content")

        try:
            soup = BeautifulSoup(content, self.features, parse_only=LINK_STRAINER)
        except Exception as e:
            raise ParseError(base_url, str(e)) from e

        document_base = self._document_base(soup, base_url)
        links = []
        for anchor in soup.find_all('a', href=True):
            href = anchor['href'].strip()
            if not href:
                continue
            if document_base and not href.startswith('#'):
                href = self._join(document_base, href)
            links.append(href)

        self.logger.debug(f"Parsed {len(links)} links from {base_url}")
        return links

    def _document_base(self, soup: BeautifulSoup, base_url: str) -> Optional[str]:
        """Resolved <base href> of the document, if it declares one."""
        base = soup.find('base', href=True)
        if not base or not base['href'].strip():
            return None
        return self._join(base_url, base['href'].strip())

    def _join(self, base: str, href: str) -> str:
        try:
            return urljoin(base, href)
        except ValueError:
            # Malformed; the link filter rejects it
            return href

    def _is_html(self, content_type: str) -> bool:
        """Check if content type is HTML."""
        content_type = content_type.lower()
        return any(html_type in content_type for html_type in HTML_CONTENT_TYPES)
