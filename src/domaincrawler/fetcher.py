"""
HTTP fetching with outcomes classified by status code band.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Optional, Union

import requests
from requests.adapters import HTTPAdapter
from requests.utils import get_encoding_from_headers

DEFAULT_TIMEOUT_S = 10.0
DEFAULT_RETRY_DELAY_S = 10
DEFAULT_POOL_SIZE = 10
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


@dataclass(frozen=True, slots=True)
class Redirect:
    """3xx response; ``location`` is the raw Location header, if any."""
    status: int
    location: Optional[str]


@dataclass(frozen=True, slots=True)
class RetryLater:
    """429 or 5xx response; retry after ``retry_after_s`` seconds."""
    status: int
    retry_after_s: int


@dataclass(frozen=True, slots=True)
class ClientError:
    """4xx response other than 429."""
    status: int


def _no_body() -> bytes:
    return b""


@dataclass(frozen=True, slots=True)
class Success:
    """
    2xx response.

    The body is not read until ``read_body()`` is called, which returns the
    decoded (gunzipped) bytes and releases the connection. ``encoding`` is
    the charset named in the Content-Type header, if any.
    """
    status: int
    content_type: str
    encoding: Optional[str] = None
    read_body: Callable[[], bytes] = field(default=_no_body, compare=False, repr=False)


@dataclass(frozen=True, slots=True)
class TransportError:
    """Connect, read or decode failure."""
    message: str


FetchOutcome = Union[Redirect, RetryLater, ClientError, Success, TransportError]


def is_html(content_type: Optional[str]) -> bool:
    return "text/html" in (content_type or "").lower()


def parse_retry_after(value: Optional[str], default: int) -> int:
    """Parse a Retry-After header given in whole seconds, else use ``default``."""
    if value is None:
        return default
    try:
        seconds = int(value.strip())
    except ValueError:
        return default
    return seconds if seconds >= 0 else default


def read_body(resp: requests.Response) -> bytes:
    """Buffer the whole decoded body, then release the connection."""
    try:
        return resp.content
    finally:
        resp.close()


class Fetcher:
    """Performs single GET requests over a shared ``requests.Session``."""

    def __init__(
        self,
        timeout_s: float = DEFAULT_TIMEOUT_S,
        user_agent: str = DEFAULT_USER_AGENT,
        retry_delay_s: int = DEFAULT_RETRY_DELAY_S,
        pool_size: int = DEFAULT_POOL_SIZE,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.timeout_s = timeout_s
        self.retry_delay_s = retry_delay_s
        self.session = session or requests.Session()
        self.session.headers["User-Agent"] = user_agent
        self.session.headers["Accept-Encoding"] = "gzip, deflate"

        # One pooled connection per worker thread
        adapter = HTTPAdapter(pool_connections=pool_size, pool_maxsize=pool_size)
        self.session.mount("http://", adapter)
        self.session.mount("https://", adapter)

    def fetch(self, url: str) -> FetchOutcome:
        """
        Fetch ``url`` once without following redirects.

        Never raises for network problems; they come back as TransportError.
        An HTML Success keeps the response open until its body is read.
        """
        try:
            resp = self.session.get(
                url,
                timeout=(self.timeout_s, self.timeout_s),
                allow_redirects=False,
                stream=True,
            )
        except requests.RequestException as e:
            return TransportError(str(e))

        outcome = self._classify(resp)
        if not (isinstance(outcome, Success) and is_html(outcome.content_type)):
            resp.close()
        return outcome

    def _classify(self, resp: requests.Response) -> FetchOutcome:
        status = resp.status_code

        if 300 <= status <= 399:
            return Redirect(status, resp.headers.get("Location"))

        if status == 429 or status >= 500:
            retry_after = parse_retry_after(resp.headers.get("Retry-After"), self.retry_delay_s)
            return RetryLater(status, retry_after)

        if status >= 400:
            return ClientError(status)

        content_type = resp.headers.get("Content-Type") or ""
        if not is_html(content_type):
            # Skip downloading bodies that will never be parsed
            return Success(status, content_type)

        # Without an explicit charset requests assumes ISO-8859-1 for text/*;
        # leave detection to the parser instead
        encoding = None
        if "charset=" in content_type.lower():
            encoding = get_encoding_from_headers(resp.headers)

        return Success(status, content_type, encoding, lambda: read_body(resp))

    def close(self) -> None:
        self.session.close()
