"""
Multithreaded crawler that lists every same-domain page reachable from a start URL.
"""
from domaincrawler.core import CrawlConfig, Crawler, CrawlResult, CrawlStatus, build_config, crawl
from domaincrawler.urls import UrlFilter, normalize_url

__version__ = "1.0.0"
__all__ = [
    "crawl",
    "build_config",
    "Crawler",
    "CrawlConfig",
    "CrawlResult",
    "CrawlStatus",
    "UrlFilter",
    "normalize_url",
]
