from __future__ import annotations

import random
import time
from typing import Dict, Optional

import httpx

RETRY_STATUS = {429, 500, 502, 503, 504}
DEFAULT_USER_AGENT = "urlharvest/1.0"


class HttpError(Exception):
    def __init__(self, url: str, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.url = url
        self.status_code = status_code


class HttpClient:
    def __init__(
        self,
        user_agent: str = DEFAULT_USER_AGENT,
        connect_timeout: float = 5.0,
        read_timeout: float = 45.0,
        *,
        proxy: Optional[str] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        # httpx requires either a default timeout or all four parameters explicitly
        self.client = httpx.Client(
            timeout=httpx.Timeout(
                connect=connect_timeout,
                read=read_timeout,
                write=read_timeout,
                pool=connect_timeout,
            ),
            proxy=proxy,
            transport=transport,
            follow_redirects=True,
        )
        self.ua = user_agent

    def get(
        self,
        url: str,
        *,
        timeout: Optional[float] = None,
        attempts: int = 3,
        extra_headers: Optional[Dict[str, str]] = None,
    ) -> httpx.Response:
        headers = {"User-Agent": self.ua}
        if extra_headers:
            headers.update(extra_headers)
        kwargs = {}
        if timeout is not None:
            kwargs['timeout'] = timeout

        attempts = max(1, attempts)
        delay = 0.5
        for attempt in range(1, attempts + 1):
            try:
                resp = self.client.get(url, headers=headers, **kwargs)
            except httpx.HTTPError:
                if attempt == attempts:
                    raise
                self._backoff_sleep(delay)
                delay = min(delay * 2, 8.0)
                continue

            if resp.status_code in RETRY_STATUS:
                if attempt == attempts:
                    return resp
                self._backoff_sleep(delay)
                delay = min(delay * 2, 8.0)
                continue
            return resp
        return resp  # type: ignore

    def close(self) -> None:
        self.client.close()

    @staticmethod
    def _backoff_sleep(base: float) -> None:
        jitter = base * random.uniform(0.8, 1.2)
        time.sleep(jitter)


def make_request(client: HttpClient, url: str, max_retries: int, timeout: float) -> bytes:
    """
    GET `url`, retrying transient failures up to `max_retries` times.
    Returns the body of a 200 response; anything else raises HttpError.
    """
    try:
        resp = client.get(url, timeout=timeout, attempts=max_retries + 1)
    except httpx.HTTPError as e:
        raise HttpError(url, f"request failed: {e}") from e
    if resp.status_code != 200:
        raise HttpError(url, f"unexpected status {resp.status_code}", status_code=resp.status_code)
    return resp.content
