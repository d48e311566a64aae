from __future__ import annotations

import argparse
import logging
import os
import queue
import sys
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, Iterable, List, Optional, Set, TextIO, Tuple, Type

import yaml
from tqdm import tqdm

from urlharvest.core.filters import Filters
from urlharvest.core.http import HttpClient
from urlharvest.core.models import ProviderConfig, ProviderName, RunConfig
from urlharvest.core.normalize import endpoint_key, is_blacklisted, normalize_extensions
from urlharvest.output import UrlWriter
from urlharvest.providers.base import Provider, ProviderError
from urlharvest.providers.wayback import WaybackProvider

logger = logging.getLogger(__name__)

PROVIDERS: Dict[ProviderName, Type[Provider]] = {
    WaybackProvider.name: WaybackProvider,
}
DEFAULT_CONFIG_PATH = os.path.join(os.path.expanduser('~'), '.urlharvest.yaml')
FILTER_KEYS = ('mc', 'mt', 'fc', 'ft', 'from', 'to')


def _load_config(path: Optional[str]) -> Dict:
    if not path:
        return {}
    with open(path, 'r') as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: expected a mapping at the top level")
    return data


def _as_tuple(value) -> Tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        value = value.split(',')
    elif not isinstance(value, (list, tuple)):
        value = [value]
    return tuple(str(v).strip() for v in value if str(v).strip())


def _optional_str(value) -> Optional[str]:
    if value is None or value == '':
        return None
    return str(value)


def build_run_config(file_cfg: Dict, overrides: Optional[Dict] = None) -> RunConfig:
    """Merge the YAML config with CLI overrides; None values in overrides are ignored."""
    overrides = overrides or {}
    merged = {k: v for k, v in file_cfg.items() if k != 'filters'}
    merged.update({k: v for k, v in overrides.items() if k != 'filters' and v is not None})

    filter_cfg = dict(file_cfg.get('filters') or {})
    filter_cfg.update({k: v for k, v in (overrides.get('filters') or {}).items() if v is not None})
    unknown = set(filter_cfg) - set(FILTER_KEYS)
    if unknown:
        raise ValueError(f"unknown filter keys: {', '.join(sorted(unknown))}")

    filters = Filters(
        match_status_codes=_as_tuple(filter_cfg.get('mc')),
        match_mime_types=_as_tuple(filter_cfg.get('mt')),
        filter_status_codes=_as_tuple(filter_cfg.get('fc')),
        filter_mime_types=_as_tuple(filter_cfg.get('ft')),
        date_from=_optional_str(filter_cfg.get('from')),
        date_to=_optional_str(filter_cfg.get('to')),
    )

    defaults = RunConfig()
    cfg = RunConfig(
        providers=_as_tuple(merged.get('providers', defaults.providers)),
        include_subdomains=bool(merged.get('subs', defaults.include_subdomains)),
        max_pages=int(merged.get('pages', defaults.max_pages)),
        max_retries=int(merged.get('retries', defaults.max_retries)),
        timeout=float(merged.get('timeout', defaults.timeout)),
        threads=int(merged.get('threads', defaults.threads)),
        proxy=_optional_str(merged.get('proxy')),
        blacklist=_as_tuple(merged.get('blacklist')),
        filter_params=bool(merged.get('fp', defaults.filter_params)),
        json_output=bool(merged.get('json', defaults.json_output)),
        queue_size=int(merged.get('queue_size', defaults.queue_size)),
        filters=filters,
    )

    if not cfg.providers:
        raise ValueError("at least one provider is required")
    for name in cfg.providers:
        if name not in PROVIDERS:
            raise ValueError(f"Unknown provider: {name}")
    if cfg.max_pages < 0:
        raise ValueError("pages must be >= 0")
    if cfg.max_retries < 0:
        raise ValueError("retries must be >= 0")
    if cfg.timeout <= 0:
        raise ValueError("timeout must be > 0")
    if cfg.threads < 1:
        raise ValueError("threads must be >= 1")
    if cfg.queue_size < 0:
        raise ValueError("queue_size must be >= 0")
    return cfg


def _select_provider(name: str, config: ProviderConfig, filters: Filters) -> Provider:
    cls = PROVIDERS.get(name)
    if cls is None:
        raise ValueError(f"Unknown provider: {name}")
    return cls(config, filters)


def _read_domains(domains: List[str], stdin: TextIO) -> List[str]:
    if not domains:
        domains = [line for line in stdin]
    out = []
    for d in domains:
        d = d.strip()
        if d and d not in out:
            out.append(d)
    return out


def harvest(
    domains: Iterable[str],
    cfg: RunConfig,
    writer: UrlWriter,
    *,
    cancel: Optional[threading.Event] = None,
    client: Optional[HttpClient] = None,
    progress: bool = False,
) -> List[Tuple[str, str, Dict]]:
    """
    Run every configured provider against every domain and write each
    surviving URL once. Returns (provider, domain, counters) per job.
    """
    cancel = cancel or threading.Event()
    owned_client = client is None
    if client is None:
        client = HttpClient(read_timeout=cfg.timeout, proxy=cfg.proxy)
    pcfg = ProviderConfig(
        client=client,
        include_subdomains=cfg.include_subdomains,
        max_pages=cfg.max_pages,
        max_retries=cfg.max_retries,
        timeout=cfg.timeout,
    )
    results: queue.Queue = queue.Queue(maxsize=cfg.queue_size)
    blacklist = normalize_extensions(cfg.blacklist)
    seen: Set[str] = set()
    seen_endpoints: Set[str] = set()

    def _keep(url: str) -> bool:
        if url in seen:
            return False
        seen.add(url)
        if is_blacklisted(url, blacklist):
            return False
        if cfg.filter_params:
            key = endpoint_key(url)
            if key in seen_endpoints:
                return False
            seen_endpoints.add(key)
        return True

    def _process(name: str, domain: str) -> Dict:
        provider = _select_provider(name, pcfg, cfg.filters)
        counters: Dict = provider.counters
        counters['errors'] = 0
        if cancel.is_set():
            logger.info("[%s] %s: cancelled before start", name, domain)
            return counters
        try:
            provider.fetch(cancel, domain, results)
        except ProviderError as e:
            counters['errors'] += 1
            counters['last_error'] = str(e)
            logger.warning("[%s] %s: %s", name, domain, e)
        return counters

    jobs = [(name, d) for d in domains for name in cfg.providers]
    summary: List[Tuple[str, str, Dict]] = []
    bar = tqdm(desc='urls', unit='url', disable=not progress, file=sys.stderr)
    try:
        with ThreadPoolExecutor(max_workers=max(1, cfg.threads)) as ex:
            futures = {ex.submit(_process, name, d): (name, d) for name, d in jobs}
            try:
                pending = set(futures)
                while True:
                    try:
                        url = results.get(timeout=0.1)
                    except queue.Empty:
                        pending = {f for f in pending if not f.done()}
                        if not pending and results.empty():
                            break
                        continue
                    if _keep(url):
                        writer.write(url)
                        bar.update(1)
            except KeyboardInterrupt:
                # let producers blocked on a full queue notice and stop
                cancel.set()
                ex.shutdown(wait=True, cancel_futures=True)
                raise

        for fut, (name, domain) in futures.items():
            try:
                counters = fut.result()
            except Exception as e:
                logger.error("[%s] %s: unexpected failure", name, domain, exc_info=e)
                counters = {'requests': 0, 'pages': 0, 'empty_pages': 0, 'emitted': 0, 'errors': 1, 'last_error': str(e)}
            summary.append((name, domain, counters))
            logger.info("[%s] %s metrics: %s", name, domain, counters)
    finally:
        bar.close()
        if owned_client:
            client.close()
    return summary


def _overrides_from_args(args: argparse.Namespace) -> Dict:
    return {
        'providers': args.providers,
        'subs': args.subs,
        'pages': args.pages,
        'retries': args.retries,
        'timeout': args.timeout,
        'threads': args.threads,
        'proxy': args.proxy,
        'blacklist': args.blacklist,
        'fp': args.fp,
        'json': args.json,
        'filters': {
            'mc': args.mc,
            'mt': args.mt,
            'fc': args.fc,
            'ft': args.ft,
            'from': args.date_from,
            'to': args.date_to,
        },
    }


def main(argv: List[str] | None = None) -> int:
    ap = argparse.ArgumentParser(description='Fetch known URLs for domains from web archives')
    ap.add_argument('domains', nargs='*', help='Domains to fetch (read from stdin when omitted)')
    ap.add_argument('--config', default=None, help='YAML config path (default ~/.urlharvest.yaml if present)')
    ap.add_argument('--providers', default=None, help=f"Comma separated providers ({','.join(PROVIDERS)})")
    ap.add_argument('--subs', action='store_true', default=None, help='Include subdomains of the target domain')
    ap.add_argument('--pages', type=int, default=None, help='Max pages per provider, 0 for all')
    ap.add_argument('--retries', type=int, default=None, help='Retries per HTTP request')
    ap.add_argument('--timeout', type=float, default=None, help='Seconds per HTTP request')
    ap.add_argument('--threads', type=int, default=None, help='Number of jobs to run in parallel')
    ap.add_argument('--proxy', default=None, help='HTTP proxy URL')
    ap.add_argument('--mc', default=None, help='Status codes to match')
    ap.add_argument('--mt', default=None, help='Mime types to match')
    ap.add_argument('--fc', default=None, help='Status codes to filter out')
    ap.add_argument('--ft', default=None, help='Mime types to filter out')
    ap.add_argument('--from', dest='date_from', default=None, help='Fetch captures from date (YYYYMM)')
    ap.add_argument('--to', dest='date_to', default=None, help='Fetch captures up to date (YYYYMM)')
    ap.add_argument('--blacklist', default=None, help='Comma separated extensions to skip')
    ap.add_argument('--fp', action='store_true', default=None, help='Keep one URL per endpoint, ignoring parameters')
    ap.add_argument('--json', action='store_true', default=None, help='Write JSON lines')
    ap.add_argument('--output', '-o', default=None, help='Output file (default stdout)')
    ap.add_argument('--progress', action='store_true', help='Show a progress counter on stderr')
    ap.add_argument('--verbose', '-v', action='store_true', help='Log per-page progress')
    args = ap.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
        stream=sys.stderr,
    )

    config_path = args.config
    if config_path is None and os.path.exists(DEFAULT_CONFIG_PATH):
        config_path = DEFAULT_CONFIG_PATH
    try:
        cfg = build_run_config(_load_config(config_path), _overrides_from_args(args))
    except (OSError, ValueError, yaml.YAMLError) as e:
        print(f"urlharvest: {e}", file=sys.stderr)
        return 2

    domains = _read_domains(args.domains, sys.stdin)
    if not domains:
        print("urlharvest: no domains given", file=sys.stderr)
        return 2

    cancel = threading.Event()
    try:
        with UrlWriter(args.output, json_output=cfg.json_output) as writer:
            summary = harvest(domains, cfg, writer, cancel=cancel, progress=args.progress)
    except KeyboardInterrupt:
        return 130

    failed = sum(1 for _, _, c in summary if c.get('errors'))
    if summary and failed == len(summary):
        return 1
    return 0


if __name__ == '__main__':
    raise SystemExit(main())
