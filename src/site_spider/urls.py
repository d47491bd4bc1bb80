from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass
from functools import lru_cache
from urllib.parse import ParseResult, urlparse, urlunparse

_DEFAULT_PORTS = {"http": 80, "https": 443}


def normalize_url(raw_url: str) -> str:
    """Normalize a URL for visited-set and frontier de-duplication.

    - Lowercases scheme + hostname, drops default ports.
    - Strips fragments.
    - Strips trailing slashes unless the path is just ``/``.
    - Sorts query parameters by name (stable for repeated names), keeping
      each pair exactly as written.

    Idempotent. Relative or unparseable input comes back unchanged.
    """

    try:
        parsed: ParseResult = urlparse(raw_url)
        port = parsed.port
    except ValueError:
        return raw_url
    if not parsed.scheme or not parsed.netloc or not parsed.hostname:
        return raw_url

    scheme = parsed.scheme.lower()
    host = parsed.hostname.lower()
    if ":" in host:
        host = f"[{host}]"
    if port is not None and _DEFAULT_PORTS.get(scheme) != port:
        host = f"{host}:{port}"
    userinfo, at, _ = parsed.netloc.rpartition("@")
    netloc = f"{userinfo}{at}{host}"

    path = parsed.path
    if scheme in _DEFAULT_PORTS and not path:
        path = "/"
    if len(path) > 1 and path.endswith("/"):
        path = path.rstrip("/") or "/"

    query = parsed.query
    if query:
        pairs = [p for p in query.split("&") if p]
        query = "&".join(sorted(pairs, key=lambda p: p.split("=", 1)[0]))

    return urlunparse(
        parsed._replace(
            scheme=scheme, netloc=netloc, path=path, query=query, fragment=""
        )
    )


def url_hash(url: str) -> str:
    """Stable artifact key for a (normalized) URL."""

    return hashlib.sha256(url.encode("utf-8")).hexdigest()[:12]


def site_domain(host: str | None) -> str:
    host = (host or "").lower()
    if host.startswith("www."):
        host = host[4:]
    return host


def path_and_query(url: str) -> str:
    parsed = urlparse(url)
    path = parsed.path or "/"
    if parsed.query:
        return f"{path}?{parsed.query}"
    return path


@lru_cache(maxsize=512)
def glob_to_regex(pattern: str) -> re.Pattern[str]:
    """Compile a crawl glob.

    ``**`` crosses ``/``, ``*`` is a run of non-``/`` characters, ``?`` one
    non-``/`` character. Everything else is literal. Case-insensitive.
    """

    out = ["^"]
    i = 0
    while i < len(pattern):
        ch = pattern[i]
        if ch == "*":
            if pattern[i + 1 : i + 2] == "*":
                out.append(".*")
                i += 2
                continue
            out.append("[^/]*")
        elif ch == "?":
            out.append("[^/]")
        else:
            out.append(re.escape(ch))
        i += 1
    out.append("$")
    return re.compile("".join(out), re.IGNORECASE)


def match_glob(pattern: str, text: str) -> bool:
    return glob_to_regex(pattern).match(text) is not None


@dataclass(frozen=True)
class UrlScope:
    include_patterns: tuple[str, ...] = ()
    exclude_patterns: tuple[str, ...] = ()

    @staticmethod
    def _matches(pattern: str, candidates: tuple[str, ...]) -> bool:
        return any(match_glob(pattern, c) for c in candidates)

    def is_allowed(self, url: str) -> bool:
        try:
            pq = path_and_query(url)
        except ValueError:
            return False
        candidates = (pq, url)

        for pattern in self.exclude_patterns:
            if self._matches(pattern, candidates):
                return False

        if self.include_patterns:
            return any(
                self._matches(pattern, candidates)
                for pattern in self.include_patterns
            )
        return True
