"""
Per-URL unit of work: fetch, act on the outcome, resubmit discovered links.
"""
from __future__ import annotations

from typing import TYPE_CHECKING
from urllib.parse import urljoin

import requests

from domaincrawler.fetcher import (
    ClientError,
    Redirect,
    RetryLater,
    Success,
    TransportError,
    is_html,
)
from domaincrawler.links import extract_links

if TYPE_CHECKING:
    from domaincrawler.core import Crawler


class CrawlWorker:
    """
    Processes one dispatched URL.

    Every outcome is terminal for this unit of work. Redirect targets and
    retries are handed back to the crawler as new units of work, and
    ``task_completed`` is reported only after those hand-offs.
    """

    def __init__(self, crawler: Crawler, url: str) -> None:
        self.crawler = crawler
        self.url = url

    def run(self) -> None:
        try:
            self._process()
        except Exception as e:
            self.crawler.log_error(f"Processing error: {e}", self.url)
        finally:
            self.crawler.task_completed()

    def _process(self) -> None:
        outcome = self.crawler.fetcher.fetch(self.url)

        if isinstance(outcome, Redirect):
            self._follow_redirect(outcome)
        elif isinstance(outcome, RetryLater):
            self._retry(outcome)
        elif isinstance(outcome, ClientError):
            self.crawler.log_skip(f"Client Error {outcome.status}", self.url)
        elif isinstance(outcome, TransportError):
            self.crawler.log_error(f"Fetch error: {outcome.message}", self.url)
        elif isinstance(outcome, Success):
            if is_html(outcome.content_type):
                self._collect(outcome)
        else:
            raise TypeError(f"Unexpected fetch outcome: {outcome!r}")

    def _follow_redirect(self, outcome: Redirect) -> None:
        if not outcome.location:
            return
        target = urljoin(self.url, outcome.location.strip())
        self.crawler.log_skip(f"Redirect {outcome.status}", f"{self.url} -> {target}")
        self.crawler.submit(target)

    def _retry(self, outcome: RetryLater) -> None:
        error_type = "Rate Limit Error" if outcome.status == 429 else "Server Error"
        self.crawler.log_error(
            f"{error_type} ({outcome.status}). Retrying in {outcome.retry_after_s}s",
            self.url,
        )
        self.crawler.backoff(outcome.retry_after_s)
        self.crawler.resubmit(self.url)

    def _collect(self, outcome: Success) -> None:
        self.crawler.mark_successful(self.url)

        try:
            html = outcome.read_body()
        except requests.RequestException as e:
            self.crawler.log_error(f"Fetch error: {e}", self.url)
            return

        url_filter = self.crawler.url_filter
        for href in extract_links(html, outcome.encoding):
            target = url_filter.resolve_and_filter(href, self.url)
            if target:
                self.crawler.submit(target)
