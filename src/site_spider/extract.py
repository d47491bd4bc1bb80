"""HTML to text, metadata, page type, links and JSON-LD.

Every function here is tolerant: missing elements give empty values and
malformed markup never raises.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any
from urllib.parse import urldefrag, urljoin, urlparse

from bs4 import BeautifulSoup, Comment
from markdownify import markdownify as md

from .models import PageMetadata, PageType
from .urls import normalize_url, site_domain

logger = logging.getLogger(__name__)

_NON_CONTENT_TAGS = [
    "script",
    "style",
    "nav",
    "header",
    "footer",
    "aside",
    "noscript",
    "iframe",
    "form",
    "svg",
    "canvas",
]

_BLOCK_TAGS = ["p", "div", "h1", "h2", "h3", "h4", "h5", "h6", "li", "tr"]

_SKIP_SCHEMES = ("javascript:", "mailto:", "tel:", "data:")

_WS = re.compile(r"\s+")


def _soup(html: str) -> BeautifulSoup:
    try:
        return BeautifulSoup(html or "", "html.parser")
    except (AssertionError, ValueError, TypeError) as e:
        # html.parser gives up on a few pathological declarations.
        logger.debug("Unparseable HTML (%s); treating as empty", e)
        return BeautifulSoup("", "html.parser")


def _attr_text(val: object) -> str:
    if isinstance(val, list):
        if not val:
            return ""
        return " ".join(str(v) for v in val)
    return str(val or "")


def extract_text(html: str) -> str:
    soup = _soup(html)

    for tag in soup.find_all(_NON_CONTENT_TAGS):
        tag.decompose()
    for comment in soup.find_all(string=lambda s: isinstance(s, Comment)):
        comment.extract()

    for tag in soup.find_all(["br", "hr"]):
        tag.replace_with("\n")
    for tag in soup.find_all(_BLOCK_TAGS):
        tag.append("\n")

    raw = soup.get_text(" ")
    lines = (_WS.sub(" ", ln).strip() for ln in raw.split("\n"))
    return "\n".join(ln for ln in lines if ln)


def _meta_content(soup: BeautifulSoup, key: str) -> str | None:
    key = key.lower()
    for attr in ("name", "property", "itemprop"):
        for tag in soup.find_all("meta"):
            if _attr_text(tag.get(attr)).strip().lower() != key:
                continue
            content = _attr_text(tag.get("content")).strip()
            if content:
                return content
    return None


def extract_metadata(html: str, url: str) -> PageMetadata:
    _ = url
    soup = _soup(html)

    title = ""
    if soup.title is not None:
        title = soup.title.get_text(" ", strip=True)
    title = _meta_content(soup, "og:title") or title

    description = (
        _meta_content(soup, "og:description")
        or _meta_content(soup, "description")
        or ""
    )

    canonical_url = None
    for link in soup.find_all("link", href=True):
        rels = [r.lower() for r in _attr_text(link.get("rel")).split()]
        if "canonical" in rels:
            canonical_url = _attr_text(link.get("href")).strip() or None
            break

    language = None
    html_tag = soup.find("html")
    if html_tag is not None:
        language = _attr_text(html_tag.get("lang")).strip() or None

    return PageMetadata(
        title=title,
        description=description,
        canonical_url=canonical_url,
        og_image=_meta_content(soup, "og:image"),
        og_type=_meta_content(soup, "og:type"),
        language=language,
        author=_meta_content(soup, "author")
        or _meta_content(soup, "article:author"),
        published_date=_meta_content(soup, "article:published_time")
        or _meta_content(soup, "datePublished"),
        modified_date=_meta_content(soup, "article:modified_time")
        or _meta_content(soup, "dateModified"),
    )


# Fixed priority chain; the first category that matches wins.
_CLASSIFIERS: tuple[tuple[PageType, re.Pattern[str], tuple[str, ...]], ...] = (
    (
        PageType.ABOUT,
        re.compile(r"/(about|company|who-we-are|our-story|mission|values)"),
        ("about us", "our company", "who we are"),
    ),
    (
        PageType.TEAM,
        re.compile(
            r"/(team|leadership|people|management|executives|staff|our-team)"
        ),
        ("our team", "leadership", "management team"),
    ),
    (
        PageType.PRODUCT,
        re.compile(r"/(product|service|solution|offering|platform|feature)"),
        ("product", "service", "solution"),
    ),
    (
        PageType.NEWS,
        re.compile(
            r"/(news|press|blog|article|post|stories|media|announcement)"
        ),
        ("news", "press release", "blog"),
    ),
    (
        PageType.CONTACT,
        re.compile(r"/(contact|get-in-touch|reach-us|connect|inquiry)"),
        ("contact", "get in touch"),
    ),
    (
        PageType.LEGAL,
        re.compile(r"/(privacy|terms|legal|policy|disclaimer|cookie|gdpr|ccpa)"),
        ("privacy policy", "terms of", "legal"),
    ),
)


def classify_page(url: str, html: str, metadata: PageMetadata) -> PageType:
    _ = html
    try:
        path = (urlparse(url).path or "").lower()
    except ValueError:
        path = ""
    title = (metadata.title or "").lower()
    is_article = (metadata.og_type or "").lower() == "article"

    if path in ("", "/"):
        return PageType.HOMEPAGE

    for page_type, path_re, keywords in _CLASSIFIERS:
        if path_re.search(path) or any(k in title for k in keywords):
            return page_type
        if page_type is PageType.NEWS and is_article:
            return page_type

    return PageType.OTHER


@dataclass(frozen=True)
class LinkSet:
    internal: list[str]
    external: list[str]


def extract_links(html: str, base_url: str) -> LinkSet:
    soup = _soup(html)

    effective_base = base_url
    base = soup.find("base", href=True)
    if base is not None:
        base_href = _attr_text(base.get("href")).strip()
        if base_href:
            try:
                effective_base = urljoin(base_url, base_href)
            except ValueError:
                effective_base = base_url

    try:
        base_domain = site_domain(urlparse(base_url).hostname)
    except ValueError:
        return LinkSet(internal=[], external=[])

    internal: dict[str, None] = {}
    external: dict[str, None] = {}
    for a in soup.select("a[href], area[href]"):
        href = _attr_text(a.get("href")).strip()
        if not href or href.startswith("#"):
            continue
        if href.lower().startswith(_SKIP_SCHEMES):
            continue

        try:
            resolved, _frag = urldefrag(urljoin(effective_base, href))
            parsed = urlparse(resolved)
            host = parsed.hostname
        except ValueError:
            continue
        if parsed.scheme not in ("http", "https") or not host:
            continue

        if site_domain(host) == base_domain:
            internal[normalize_url(resolved)] = None
        else:
            external[resolved] = None

    return LinkSet(internal=list(internal), external=list(external))


def extract_json_ld(html: str) -> Any:
    soup = _soup(html)

    def _is_ld_json(value: object) -> bool:
        return _attr_text(value).split(";", 1)[0].strip().lower() == (
            "application/ld+json"
        )

    results: list[Any] = []
    for script in soup.find_all("script", type=_is_ld_json):
        raw = script.string if script.string is not None else script.get_text()
        raw = (raw or "").strip()
        if not raw:
            continue
        try:
            results.append(json.loads(raw))
        except (json.JSONDecodeError, ValueError):
            logger.debug("Skipping malformed JSON-LD block")
            continue

    if not results:
        return None
    return results[0] if len(results) == 1 else results


def _pick_main_content(soup: BeautifulSoup):
    for selector in ["main", "article", "div[role='main']"]:
        node = soup.select_one(selector)
        if node and node.get_text(strip=True):
            return node
    return soup.body or soup


def render_markdown(html: str, *, source_url: str) -> str:
    soup = _soup(html)
    for t in soup.find_all(_NON_CONTENT_TAGS):
        t.decompose()
    main = _pick_main_content(soup)
    markdown = md(str(main), heading_style="ATX").strip() + "\n"
    return f"Source: {source_url}\n\n" + markdown


@dataclass(frozen=True)
class ExtractedPage:
    metadata: PageMetadata
    text: str
    page_type: PageType
    links: LinkSet
    json_ld: Any


def extract_page(html: str, url: str) -> ExtractedPage:
    metadata = extract_metadata(html, url)
    return ExtractedPage(
        metadata=metadata,
        text=extract_text(html),
        page_type=classify_page(url, html, metadata),
        links=extract_links(html, url),
        json_ld=extract_json_ld(html),
    )
