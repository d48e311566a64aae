from __future__ import annotations

from typing import Literal, NamedTuple, Optional, Tuple

from urlharvest.core.filters import Filters
from urlharvest.core.http import HttpClient

ProviderName = Literal['wayback']


class ProviderConfig(NamedTuple):
    client: HttpClient
    include_subdomains: bool = False
    max_pages: int = 0  # 0 means no cap
    max_retries: int = 5
    timeout: float = 45.0


class RunConfig(NamedTuple):
    providers: Tuple[str, ...] = ('wayback',)
    include_subdomains: bool = False
    max_pages: int = 0
    max_retries: int = 5
    timeout: float = 45.0
    threads: int = 1
    proxy: Optional[str] = None
    blacklist: Tuple[str, ...] = ()
    filter_params: bool = False
    json_output: bool = False
    queue_size: int = 0
    filters: Filters = Filters()
