from __future__ import annotations

import logging
import queue
import threading
from typing import List

import orjson

from urlharvest.core.http import HttpError, make_request
from urlharvest.providers.base import Provider, ProviderError

logger = logging.getLogger(__name__)

NAME = 'wayback'
CDX_ENDPOINT = 'https://web.archive.org/cdx/search/cdx'


def decode_page_count(body: bytes) -> int:
    value = orjson.loads(body)
    # bool is an int subclass; the archive never sends one here
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValueError(f"expected a page count, got {value!r}")
    return value


def decode_page(body: bytes) -> List[List[str]]:
    rows = orjson.loads(body)
    if not isinstance(rows, list):
        raise ValueError(f"expected a list of rows, got {type(rows).__name__}")
    for i, row in enumerate(rows):
        if not isinstance(row, list) or not row or not all(isinstance(f, str) for f in row):
            raise ValueError(f"row {i} is not a non-empty list of strings")
    return rows


class WaybackProvider(Provider):
    name = NAME

    def format_url(self, domain: str, page: int) -> str:
        if self.config.include_subdomains:
            domain = f"*.{domain}"
        base = f"{CDX_ENDPOINT}?url={domain}/*&output=json&collapse=urlkey&fl=original&page={page}"
        return base + self.filters.get_parameters(True)

    def _request(self, url: str) -> bytes:
        self.counters['requests'] += 1
        return make_request(self.config.client, url, self.config.max_retries, self.config.timeout)

    def get_pagination(self, domain: str) -> int:
        url = f"{self.format_url(domain, 0)}&showNumPages=true"
        return decode_page_count(self._request(url))

    def _skip_empty_page(self, domain: str, page: int) -> None:
        # Wayback's page count is not always right when a filter is applied.
        self.counters['empty_pages'] += 1
        logger.info("[%s] page %d for %s is empty, skipping", self.name, page, domain)

    def fetch(self, cancel: threading.Event, domain: str, results: queue.Queue) -> None:
        if not domain or not domain.strip():
            raise ValueError("domain must not be empty")

        try:
            pages = self.get_pagination(domain)
        except (HttpError, ValueError) as e:
            raise ProviderError(self.name, f"failed to fetch {self.name} pagination: {e}") from e

        if self.config.max_pages:
            pages = min(self.config.max_pages, pages)

        for page in range(pages):
            if cancel.is_set():
                logger.info("[%s] cancelled before page %d of %s", self.name, page, domain)
                return
            logger.info("[%s] fetching %s page=%d", self.name, domain, page)
            api_url = self.format_url(domain, page)
            try:
                body = self._request(api_url)
            except HttpError as e:
                raise ProviderError(self.name, f"failed to fetch {self.name} results page {page}: {e}", page=page) from e
            try:
                rows = decode_page(body)
            except ValueError as e:
                raise ProviderError(self.name, f"failed to decode {self.name} results for page {page}: {e}", page=page) from e
            self.counters['pages'] += 1

            if not rows:
                self._skip_empty_page(domain, page)
                continue

            # row 0 is the field-name header
            for row in rows[1:]:
                if not self._emit(cancel, results, row[0]):
                    logger.info("[%s] cancelled while sending page %d of %s", self.name, page, domain)
                    return
