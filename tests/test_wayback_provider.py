import queue
import threading
import unittest

import httpx

from fake_archive import FakeArchive
from urlharvest.core.filters import Filters
from urlharvest.core.models import ProviderConfig
from urlharvest.providers.base import ProviderError
from urlharvest.providers.wayback import WaybackProvider, decode_page, decode_page_count

HEADER = ["original"]


def drain(q: queue.Queue):
    out = []
    while not q.empty():
        out.append(q.get_nowait())
    return out


class TestWaybackURL(unittest.TestCase):
    def _provider(self, subs=False, filters=Filters()):
        cfg = ProviderConfig(client=None, include_subdomains=subs)
        return WaybackProvider(cfg, filters)

    def test_format_url(self):
        self.assertEqual(
            self._provider().format_url('example.com', 3),
            'https://web.archive.org/cdx/search/cdx?url=example.com/*&output=json&collapse=urlkey&fl=original&page=3',
        )

    def test_subdomains_prefix(self):
        plain = self._provider().format_url('example.com', 0)
        subs = self._provider(subs=True).format_url('example.com', 0)
        self.assertEqual(subs, plain.replace('url=example.com/*', 'url=*.example.com/*'))

    def test_filter_suffix_after_page(self):
        url = self._provider(filters=Filters(match_status_codes=('200',))).format_url('example.com', 1)
        self.assertTrue(url.endswith('&page=1&filter=statuscode%3A200'))


class TestWaybackDecode(unittest.TestCase):
    def test_page_count(self):
        self.assertEqual(decode_page_count(b'7\n'), 7)

    def test_page_count_rejects_non_integers(self):
        for body in (b'true', b'-1', b'1.5', b'"3"', b'[]', b'oops'):
            with self.assertRaises(ValueError):
                decode_page_count(body)

    def test_page_rows(self):
        self.assertEqual(decode_page(b'[["original"],["https://a"]]'), [HEADER, ["https://a"]])
        self.assertEqual(decode_page(b'[]'), [])

    def test_page_rejects_bad_shapes(self):
        for body in (b'{}', b'[["a"], "b"]', b'[["a"], []]', b'[["a"], [1]]'):
            with self.assertRaises(ValueError):
                decode_page(body)


class TestWaybackFetch(unittest.TestCase):
    def _run(self, archive, *, max_pages=0, max_retries=0, cancel=None, results=None):
        provider = WaybackProvider(
            ProviderConfig(client=archive.client(), max_pages=max_pages, max_retries=max_retries, timeout=5.0),
            Filters(),
        )
        results = results if results is not None else queue.Queue()
        provider.fetch(cancel or threading.Event(), 'example.com', results)
        return provider, drain(results)

    def test_streams_pages_in_order(self):
        archive = FakeArchive({'example.com': [
            [HEADER, ["https://example.com/a"], ["https://example.com/b"]],
            [HEADER, ["https://example.com/c"]],
        ]})
        provider, urls = self._run(archive)
        self.assertEqual(urls, ["https://example.com/a", "https://example.com/b", "https://example.com/c"])
        self.assertEqual(archive.page_requests(), [0, 1])
        self.assertEqual(provider.counters['emitted'], 3)
        self.assertEqual(provider.counters['requests'], 3)

    def test_emitted_count_skips_one_header_per_page(self):
        pages = [
            [HEADER] + [[f"https://example.com/{p}/{i}"] for i in range(n)]
            for p, n in enumerate([4, 0, 2])
        ]
        _, urls = self._run(FakeArchive({'example.com': pages}))
        self.assertEqual(len(urls), 6)

    def test_max_pages_caps_iteration(self):
        pages = [[HEADER, [f"https://example.com/{i}"]] for i in range(5)]
        archive = FakeArchive({'example.com': pages})
        _, urls = self._run(archive, max_pages=2)
        self.assertEqual(archive.page_requests(), [0, 1])
        self.assertEqual(urls, ["https://example.com/0", "https://example.com/1"])

    def test_max_pages_above_discovered(self):
        archive = FakeArchive({'example.com': [[HEADER, ["https://example.com/x"]]]})
        self._run(archive, max_pages=10)
        self.assertEqual(archive.page_requests(), [0])

    def test_cancelled_before_start(self):
        archive = FakeArchive({'example.com': [[HEADER, ["https://example.com/a"]]] * 3})
        cancel = threading.Event()
        cancel.set()
        provider, urls = self._run(archive, cancel=cancel)
        self.assertEqual(urls, [])
        self.assertEqual(archive.page_requests(), [])
        self.assertEqual(provider.counters['pages'], 0)

    def test_cancelled_during_first_page(self):
        archive = FakeArchive({'example.com': [
            [HEADER, ["https://example.com/a"]],
            [HEADER, ["https://example.com/b"]],
        ]})
        cancel = threading.Event()

        def cancel_on_page_zero(request):
            if 'showNumPages' not in request.url.params and request.url.params.get('page') == '0':
                cancel.set()

        archive.on_request = cancel_on_page_zero
        provider, urls = self._run(archive, cancel=cancel)
        # the in-flight page still completes, the next one is never requested
        self.assertEqual(urls, ["https://example.com/a"])
        self.assertEqual(archive.page_requests(), [0])
        self.assertEqual(provider.counters['pages'], 1)

    def test_empty_page_is_skipped(self):
        archive = FakeArchive({'example.com': [
            [HEADER, ["https://example.com/a"]],
            [],
            [HEADER, ["https://example.com/b"]],
        ]})
        provider, urls = self._run(archive)
        self.assertEqual(urls, ["https://example.com/a", "https://example.com/b"])
        self.assertEqual(provider.counters['empty_pages'], 1)
        self.assertEqual(archive.page_requests(), [0, 1, 2])

    def test_header_only_page(self):
        archive = FakeArchive({'example.com': [[HEADER], [HEADER, ["https://example.com/a"]]]})
        provider, urls = self._run(archive)
        self.assertEqual(urls, ["https://example.com/a"])
        self.assertEqual(provider.counters['empty_pages'], 0)

    def test_pagination_failure(self):
        archive = FakeArchive({'example.com': [[HEADER, ["https://example.com/a"]]]},
                              page_counts={'example.com': b'not a number'})
        with self.assertRaises(ProviderError) as cm:
            self._run(archive)
        self.assertIn('pagination', str(cm.exception))
        self.assertIsNone(cm.exception.page)
        self.assertEqual(archive.page_requests(), [])

    def test_pagination_http_failure(self):
        archive = FakeArchive({'example.com': []}, page_counts={'example.com': httpx.Response(404)})
        with self.assertRaises(ProviderError):
            self._run(archive)
        self.assertEqual(archive.page_requests(), [])

    def test_page_request_failure_reports_page(self):
        archive = FakeArchive({'example.com': [
            [HEADER, ["https://example.com/a"]],
            httpx.Response(404),
            [HEADER, ["https://example.com/c"]],
        ]})
        results = queue.Queue()
        with self.assertRaises(ProviderError) as cm:
            self._run(archive, results=results)
        self.assertEqual(cm.exception.page, 1)
        # rows from earlier pages are not retracted
        self.assertEqual(drain(results), ["https://example.com/a"])
        self.assertEqual(archive.page_requests(), [0, 1])

    def test_page_decode_failure_reports_page(self):
        archive = FakeArchive({'example.com': [b'{"nope": 1}']})
        with self.assertRaises(ProviderError) as cm:
            self._run(archive)
        self.assertEqual(cm.exception.page, 0)
        self.assertIn('decode', str(cm.exception))

    def test_blocked_send_notices_cancel(self):
        archive = FakeArchive({'example.com': [
            [HEADER, ["https://example.com/a"], ["https://example.com/b"], ["https://example.com/c"]],
        ]})
        cancel = threading.Event()
        timer = threading.Timer(0.3, cancel.set)
        timer.start()
        try:
            provider, urls = self._run(archive, cancel=cancel, results=queue.Queue(maxsize=1))
        finally:
            timer.cancel()
        self.assertEqual(urls, ["https://example.com/a"])
        self.assertEqual(provider.counters['emitted'], 1)

    def test_empty_domain(self):
        with self.assertRaises(ValueError):
            WaybackProvider(ProviderConfig(client=None), Filters()).fetch(threading.Event(), ' ', queue.Queue())


if __name__ == '__main__':
    unittest.main()
