from __future__ import annotations

import queue
import threading
from typing import Dict, Optional

from urlharvest.core.filters import Filters
from urlharvest.core.models import ProviderConfig

SEND_POLL_SECONDS = 0.25


class ProviderError(Exception):
    def __init__(self, provider: str, message: str, page: Optional[int] = None):
        super().__init__(message)
        self.provider = provider
        self.page = page


class Provider:
    name = ''

    def __init__(self, config: ProviderConfig, filters: Filters):
        self.config = config
        self.filters = filters
        self.counters: Dict[str, int] = {
            'requests': 0,
            'pages': 0,
            'empty_pages': 0,
            'emitted': 0,
        }

    def fetch(self, cancel: threading.Event, domain: str, results: queue.Queue) -> None:
        """Send every URL known for `domain` to `results`. Raises ProviderError."""
        raise NotImplementedError

    def _emit(self, cancel: threading.Event, results: queue.Queue, url: str) -> bool:
        # Blocks while a bounded queue is full, but gives up once cancelled.
        while True:
            try:
                results.put(url, timeout=SEND_POLL_SECONDS)
            except queue.Full:
                if cancel.is_set():
                    return False
                continue
            self.counters['emitted'] += 1
            return True
