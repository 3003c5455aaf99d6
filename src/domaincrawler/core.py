"""
Crawl orchestration: shared state, worker dispatch, completion and reporting.
"""
from __future__ import annotations

import logging
import sys
import threading
import time
from concurrent import futures
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import List, Optional, Set, TextIO
from urllib.parse import urlsplit

from domaincrawler.fetcher import (
    DEFAULT_RETRY_DELAY_S,
    DEFAULT_TIMEOUT_S,
    DEFAULT_USER_AGENT,
    Fetcher,
)
from domaincrawler.urls import HTTP_SCHEMES, UrlFilter, normalize_url, strip_www
from domaincrawler.worker import CrawlWorker

logger = logging.getLogger(__name__)

DEFAULT_MAX_THREADS = 10
UNBOUNDED = sys.maxsize

# Safety against resource consuming websites
MAX_COLLECTED_LINKS = 500_000

POLL_INTERVAL_S = 0.5
SHUTDOWN_TIMEOUT_S = 60.0

SPINNER = "|/-\\"


@dataclass(frozen=True, slots=True)
class CrawlConfig:
    """Immutable settings for one crawl run."""
    start_url: str
    base_domain: str
    max_threads: int = DEFAULT_MAX_THREADS
    crawl_limit: int = UNBOUNDED
    max_collected: int = MAX_COLLECTED_LINKS
    timeout_s: float = DEFAULT_TIMEOUT_S
    user_agent: str = DEFAULT_USER_AGENT
    retry_delay_s: int = DEFAULT_RETRY_DELAY_S
    poll_interval_s: float = POLL_INTERVAL_S
    shutdown_timeout_s: float = SHUTDOWN_TIMEOUT_S


@dataclass(frozen=True, slots=True)
class CrawlStatus:
    """Point-in-time view of a running crawl."""
    active: int
    found: int
    submitted: int
    elapsed_s: float


@dataclass(slots=True)
class CrawlResult:
    """Outcome of a finished crawl."""
    start_url: str
    links: List[str]
    submitted: int
    elapsed_s: float
    interrupted: bool = False


class CrawlState:
    """
    Visited/collected sets and task counters shared by all workers.

    All mutations happen under one condition lock, so visited test-and-insert
    is atomic and the active count never loses an update. Waiters on the
    condition are woken when the crawl becomes idle.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition()
        self._visited: Set[str] = set()
        self._collected: Set[str] = set()
        self._active = 0
        self._submitted = 0
        self._complete = threading.Event()
        self.started_at = time.monotonic()

    def add_visited(self, url: str) -> bool:
        """Insert ``url``; True only for the first caller."""
        with self._cond:
            if url in self._visited:
                return False
            self._visited.add(url)
            return True

    def add_collected(self, url: str) -> None:
        with self._cond:
            self._collected.add(url)

    def next_submission(self) -> int:
        with self._cond:
            self._submitted += 1
            return self._submitted

    def task_started(self) -> None:
        with self._cond:
            self._active += 1

    def task_finished(self) -> None:
        with self._cond:
            self._active -= 1
            if self._active <= 0:
                self._cond.notify_all()

    def mark_complete(self) -> None:
        self._complete.set()
        with self._cond:
            self._cond.notify_all()

    @property
    def is_complete(self) -> bool:
        return self._complete.is_set()

    def wait_for_complete(self, timeout: float) -> bool:
        """Sleep up to ``timeout`` seconds; returns early once the crawl is complete."""
        return self._complete.wait(timeout)

    def _idle(self) -> bool:
        return self._active <= 0 or self._complete.is_set()

    def is_idle(self) -> bool:
        with self._cond:
            return self._idle()

    def wait_until_idle(self, timeout: float) -> bool:
        with self._cond:
            return self._cond.wait_for(self._idle, timeout)

    @property
    def active(self) -> int:
        with self._cond:
            return self._active

    @property
    def submitted(self) -> int:
        with self._cond:
            return self._submitted

    @property
    def collected_count(self) -> int:
        with self._cond:
            return len(self._collected)

    @property
    def visited(self) -> frozenset[str]:
        with self._cond:
            return frozenset(self._visited)

    @property
    def collected(self) -> frozenset[str]:
        with self._cond:
            return frozenset(self._collected)

    def collected_sorted(self) -> List[str]:
        with self._cond:
            return sorted(self._collected)

    def elapsed(self) -> float:
        return time.monotonic() - self.started_at

    def snapshot(self) -> CrawlStatus:
        with self._cond:
            return CrawlStatus(
                active=self._active,
                found=len(self._collected),
                submitted=self._submitted,
                elapsed_s=self.elapsed(),
            )


def print_status(status: CrawlStatus, frame: str) -> None:
    """Overwrite the progress line on stderr."""
    line = (
        f"\r\033[K[{frame}] Active: {status.active} | Found: {status.found} "
        f"| Submitted: {status.submitted} | Time: {int(status.elapsed_s)}s "
    )
    sys.stderr.write(line)
    sys.stderr.flush()


class Crawler:
    """
    Crawls every page of one domain reachable from the start URL.

    Workers run on a fixed-size thread pool and talk back to the crawler only
    through ``submit``, ``resubmit``, ``mark_successful`` and
    ``task_completed``.
    """

    def __init__(
        self,
        config: CrawlConfig,
        fetcher: Optional[Fetcher] = None,
        verbose: bool = False,
    ) -> None:
        self.config = config
        self.verbose = verbose
        self.state = CrawlState()
        self.url_filter = UrlFilter(config.base_domain)

        self._owns_fetcher = fetcher is None
        self.fetcher = fetcher or Fetcher(
            timeout_s=config.timeout_s,
            user_agent=config.user_agent,
            retry_delay_s=config.retry_delay_s,
            pool_size=config.max_threads,
        )

        self._executor = ThreadPoolExecutor(
            max_workers=config.max_threads,
            thread_name_prefix="crawl-worker",
        )
        self._futures: Set[futures.Future] = set()
        self._futures_lock = threading.Lock()

    # Submission

    def submit(self, url: str) -> None:
        """Schedule ``url`` unless it was seen before or a limit was reached."""
        if not self._accepting():
            return

        canonical = normalize_url(url)

        # Sole dedup gate: only the first submitter of a canonical URL proceeds
        if not self.state.add_visited(canonical):
            return

        self._dispatch_counted(canonical)

    def resubmit(self, url: str) -> None:
        """
        Schedule a retry of an already visited URL.

        Bypasses the visited gate but still counts against the crawl limit
        and honours the safety cap.
        """
        if not self._accepting():
            return
        self._dispatch_counted(normalize_url(url))

    def _accepting(self) -> bool:
        if self.state.collected_count >= self.config.max_collected:
            self.state.mark_complete()
            return False
        return not self.state.is_complete

    def _dispatch_counted(self, canonical: str) -> None:
        # Over budget: the URL stays visited but is never fetched
        if self.state.next_submission() > self.config.crawl_limit:
            return

        self.state.task_started()
        try:
            future = self._executor.submit(CrawlWorker(self, canonical).run)
        except RuntimeError:
            # pool already shut down
            self.state.task_finished()
            logger.debug("Dropped %s, pool is shut down", canonical)
            return

        with self._futures_lock:
            self._futures.add(future)
        future.add_done_callback(self._forget)

    def _forget(self, future: futures.Future) -> None:
        with self._futures_lock:
            self._futures.discard(future)

    # Worker callbacks

    def mark_successful(self, url: str) -> None:
        """Record a 2xx HTML page."""
        self.state.add_collected(normalize_url(url))

    def task_completed(self) -> None:
        self.state.task_finished()

    def backoff(self, seconds: float) -> None:
        """Block the calling worker, waking early if the crawl is stopped."""
        self.state.wait_for_complete(seconds)

    def log_error(self, reason: str, url: str) -> None:
        logger.error("ERROR: %s -> %s", reason, url)

    def log_skip(self, reason: str, url: str) -> None:
        logger.info("SKIP: %s -> %s", reason, url)

    def status(self) -> CrawlStatus:
        return self.state.snapshot()

    # Lifecycle

    def await_completion(self) -> None:
        """Block until no worker is active or the crawl is marked complete."""
        frame = 0
        while not self.state.is_idle():
            if self.verbose:
                print_status(self.status(), SPINNER[frame % len(SPINNER)])
            frame += 1
            self.state.wait_until_idle(self.config.poll_interval_s)

        if self.verbose:
            sys.stderr.write("\n")

    def drain(self) -> None:
        """Stop accepting work, wait for in-flight workers, then cancel the rest."""
        self.state.mark_complete()
        self._executor.shutdown(wait=False)

        with self._futures_lock:
            pending = list(self._futures)

        try:
            _, not_done = futures.wait(pending, timeout=self.config.shutdown_timeout_s)
        except KeyboardInterrupt:
            not_done = {f for f in pending if not f.done()}

        if not_done:
            self._executor.shutdown(wait=False, cancel_futures=True)
            logger.warning(
                "Pool did not drain within %ss, abandoning %d task(s)",
                self.config.shutdown_timeout_s,
                len(not_done),
            )

    def run(self) -> CrawlResult:
        """Crawl from the start URL until done; the caller prints the report."""
        if self.verbose:
            sys.stderr.write(
                f"Crawling {self.config.start_url} with {self.config.max_threads} threads ...\n"
            )

        interrupted = False
        try:
            self.submit(self.config.start_url)
            self.await_completion()
        except KeyboardInterrupt:
            interrupted = True
            logger.warning("Crawler interrupted, reporting links collected so far.")
        finally:
            self.drain()
            if self._owns_fetcher:
                self.fetcher.close()

        return CrawlResult(
            start_url=self.config.start_url,
            links=self.state.collected_sorted(),
            submitted=self.state.submitted,
            elapsed_s=self.state.elapsed(),
            interrupted=interrupted,
        )

    def report(self, stream: Optional[TextIO] = None) -> None:
        """Print the sorted collected links and their count."""
        out = stream or sys.stdout
        out.write("\n--- Crawling Finished ---\n")

        links = self.state.collected_sorted()
        if not links:
            return

        out.write("\n--- Unique Links Found (Sorted by Label) ---\n")
        for url in links:
            out.write(f"{url}\n")
        out.write("-" * 35 + "\n")
        out.write(f"Number of links collected: {len(links)}\n")


def build_config(
    start_url: str,
    max_threads: int = DEFAULT_MAX_THREADS,
    crawl_limit: Optional[int] = None,
    **options,
) -> CrawlConfig:
    """
    Validate the start URL and assemble a CrawlConfig.

    Raises:
        ValueError: if the start URL is not an absolute http(s) URL, or a
            numeric setting is not positive.
    """
    try:
        parsed = urlsplit(start_url.strip())
        host = parsed.hostname
    except ValueError:
        raise ValueError(f"Invalid start URL: {start_url}") from None

    if parsed.scheme.lower() not in HTTP_SCHEMES or not host:
        raise ValueError(f"Invalid start URL: {start_url}")

    if max_threads <= 0:
        raise ValueError(f"max_threads must be positive, got {max_threads}")

    if crawl_limit is None:
        crawl_limit = UNBOUNDED
    elif crawl_limit <= 0:
        raise ValueError(f"crawl_limit must be positive, got {crawl_limit}")

    return CrawlConfig(
        start_url=start_url.strip(),
        base_domain=strip_www(host),
        max_threads=max_threads,
        crawl_limit=crawl_limit,
        **options,
    )


def crawl(
    start_url: str,
    max_threads: int = DEFAULT_MAX_THREADS,
    crawl_limit: Optional[int] = None,
    fetcher: Optional[Fetcher] = None,
    verbose: bool = False,
    **options,
) -> CrawlResult:
    """
    Crawl all same-domain pages reachable from ``start_url``.

    Args:
        start_url: The URL to start crawling from.
        max_threads: Size of the worker pool.
        crawl_limit: Maximum number of submissions, None for no limit.
        fetcher: Optional fetcher to use instead of a requests-based one.
        verbose: Whether to print the startup and progress lines.
        **options: Extra CrawlConfig fields (timeout_s, user_agent, ...).

    Returns:
        CrawlResult with the collected links sorted lexicographically.
    """
    config = build_config(start_url, max_threads, crawl_limit, **options)
    return Crawler(config, fetcher=fetcher, verbose=verbose).run()
