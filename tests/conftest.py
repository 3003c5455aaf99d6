from __future__ import annotations

import threading
from typing import Dict, List, Sequence, Union

import pytest

from domaincrawler.core import Crawler, build_config
from domaincrawler.fetcher import ClientError, FetchOutcome, Success

Script = Union[FetchOutcome, Sequence[FetchOutcome]]


def html_page(*hrefs: str) -> Success:
    """A 200 text/html response linking to ``hrefs``."""
    anchors = "\n".join(f'<a href="{href}">link</a>' for href in hrefs)
    body = f"<html><head><title>t</title></head><body>{anchors}</body></html>"
    return Success(200, "text/html; charset=utf-8", "utf-8", lambda: body.encode("utf-8"))


class FakeFetcher:
    """Returns scripted outcomes per URL; sequences are consumed one per fetch."""

    def __init__(self, pages: Dict[str, Script]) -> None:
        self.pages = {url: list(s) if isinstance(s, (list, tuple)) else s for url, s in pages.items()}
        self.calls: List[str] = []
        self.closed = False
        self._lock = threading.Lock()

    def fetch(self, url: str) -> FetchOutcome:
        with self._lock:
            self.calls.append(url)
            script = self.pages.get(url, ClientError(404))
            if isinstance(script, list):
                return script.pop(0) if len(script) > 1 else script[0]
            return script

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def make_crawler():
    """Build a Crawler over a FakeFetcher with fast polling."""
    created: List[Crawler] = []

    def factory(pages: Dict[str, Script], start_url: str = "http://x.com", **options) -> Crawler:
        options.setdefault("poll_interval_s", 0.05)
        options.setdefault("shutdown_timeout_s", 5.0)
        max_threads = options.pop("max_threads", 1)
        crawl_limit = options.pop("crawl_limit", None)
        config = build_config(start_url, max_threads, crawl_limit, **options)
        crawler = Crawler(config, fetcher=FakeFetcher(pages))
        created.append(crawler)
        return crawler

    yield factory

    for crawler in created:
        crawler.drain()
