"""Shared fixtures: an in-memory site and a crawl config writing to tmp_path."""

from typing import Callable, Dict, List, Optional, Union

import pytest

from site_spider.config import CrawlConfig
from site_spider.http_client import FetchError, FetchResult


def link_page(title: str, hrefs: List[str], body: str = "") -> str:
    """Build a small HTML page with a title and one anchor per href."""
    anchors = "\n".join(f'<a href="{h}">{h}</a>' for h in hrefs)
    return (
        f"<html lang=\"en\"><head><title>{title}</title></head>"
        f"<body><nav><a href=\"/\">Home</a></nav><main><h1>{title}</h1>"
        f"<p>{body or title}</p>{anchors}</main></body></html>"
    )


class FakeFetcher:
    """Serves pages from a dict keyed by normalized URL.

    Unknown URLs fail with HTTP 404. ``interrupt_on`` raises
    KeyboardInterrupt on that (1-based) fetch call, before anything is
    served.
    """

    def __init__(
        self,
        pages: Dict[str, Union[str, Exception]],
        interrupt_on: Optional[int] = None,
    ):
        self.pages = pages
        self.interrupt_on = interrupt_on
        self.calls = 0
        self.fetched: List[str] = []

    def fetch(self, url: str) -> FetchResult:
        self.calls += 1
        if self.interrupt_on is not None and self.calls == self.interrupt_on:
            raise KeyboardInterrupt
        self.fetched.append(url)

        page = self.pages.get(url)
        if page is None:
            raise FetchError("HTTP 404", status_code=404)
        if isinstance(page, Exception):
            raise page
        return FetchResult(
            url=url,
            final_url=url,
            status_code=200,
            headers={"Content-Type": "text/html"},
            fetched_at=0.0,
            body=page.encode("utf-8"),
        )


@pytest.fixture
def make_config(tmp_path) -> Callable[..., CrawlConfig]:
    """Factory for fast, offline crawl configs."""

    def _make(**overrides) -> CrawlConfig:
        values = dict(
            seed_url="https://example.com/",
            output_dir=str(tmp_path / "crawls"),
            delay_ms=0,
            respect_robots=False,
        )
        values.update(overrides)
        return CrawlConfig(**values)

    return _make


@pytest.fixture
def small_site() -> Dict[str, str]:
    """Two levels below the homepage, with a cycle back to the root."""
    return {
        "https://example.com/": link_page("Acme", ["/about", "/products"]),
        "https://example.com/about": link_page(
            "About Us", ["/", "/team"], body="We build things &amp; more."
        ),
        "https://example.com/products": link_page("Products", ["/products/widget"]),
        "https://example.com/team": link_page("Our Team", ["/about"]),
        "https://example.com/products/widget": link_page("Widget", []),
    }
