"""
Policy Document Client
======================

Fetches a privacy policy page over HTTP and parses it into a document tree
for the segmenter. Redirects are followed; transient network errors are
retried according to the process settings.
"""

from __future__ import annotations

import requests
import structlog
from bs4 import BeautifulSoup

from common.config import Settings
from common.errors import TransportError
from common.utils import retry

from .segmenter import parse_document

log = structlog.get_logger(__name__)


class PolicyDocumentClient:
    """Downloads and parses policy pages."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self._session = requests.Session()
        self._session.headers.update({"User-Agent": settings.USER_AGENT})

    @retry(retryable_exceptions=(requests.exceptions.ConnectionError, requests.exceptions.Timeout))
    def _get(self, *args, **kwargs) -> requests.Response:
        """A retriable version of session.get."""
        return self._session.get(*args, **kwargs)

    def fetch_html(self, url: str) -> str:
        """Return the body of ``url`` as text."""
        log.info("Fetching policy document", url=url)
        try:
            response = self._get(url, timeout=self.settings.REQUEST_TIMEOUT, allow_redirects=True)
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            raise TransportError(f"Failed to fetch policy document {url}: {e}") from e
        return response.text

    def fetch(self, url: str) -> BeautifulSoup:
        """Return the parsed document at ``url``."""
        return parse_document(self.fetch_html(url))

    def close(self) -> None:
        self._session.close()
