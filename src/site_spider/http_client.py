from __future__ import annotations

import json
import time
from dataclasses import dataclass
from typing import Protocol
from urllib.parse import urljoin

import requests
from requests import exceptions as req_exc

REDIRECT_STATUSES = {301, 302, 303, 307, 308}

_ACCEPT_HTML = "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"


class FetchError(RuntimeError):
    """One page could not be fetched. The crawl records it and moves on."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass(frozen=True)
class FetchResult:
    url: str
    final_url: str
    status_code: int
    headers: dict[str, str]
    fetched_at: float
    body: bytes

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")


class PageFetcher(Protocol):
    def fetch(self, url: str) -> FetchResult: ...


class DirectFetcher:
    """Plain HTTP GET. Redirects are followed hop by hop so each target is
    re-resolved against the URL that issued it."""

    def __init__(
        self,
        session: requests.Session,
        *,
        user_agent: str,
        timeout_s: float = 30.0,
        follow_redirects: bool = True,
        max_redirects: int = 10,
    ) -> None:
        self._session = session
        self._user_agent = user_agent
        self._timeout_s = timeout_s
        self._follow_redirects = follow_redirects
        self._max_redirects = max_redirects

    def _get(self, url: str) -> requests.Response:
        try:
            return self._session.get(
                url,
                headers={
                    "User-Agent": self._user_agent,
                    "Accept": _ACCEPT_HTML,
                    "Accept-Language": "en-US,en;q=0.5",
                },
                timeout=self._timeout_s,
                allow_redirects=False,
            )
        except req_exc.Timeout as e:
            raise FetchError(
                f"Request timeout after {self._timeout_s}s: {url}", status_code=408
            ) from e
        except req_exc.RequestException as e:
            raise FetchError(f"Failed to fetch {url}: {e}") from e

    def fetch(self, url: str) -> FetchResult:
        current = url
        for _hop in range(self._max_redirects + 1):
            resp = self._get(current)
            status = int(resp.status_code)
            location = resp.headers.get("Location")

            if self._follow_redirects and status in REDIRECT_STATUSES and location:
                try:
                    current = urljoin(current, location)
                except ValueError as e:
                    raise FetchError(
                        f"Invalid redirect Location {location!r} from {current}: {e}"
                    ) from e
                continue

            if status >= 400:
                raise FetchError(f"HTTP {status}", status_code=status)

            return FetchResult(
                url=url,
                final_url=current,
                status_code=status,
                headers={k: str(v) for k, v in resp.headers.items()},
                fetched_at=time.time(),
                body=resp.content,
            )

        raise FetchError(f"Too many redirects (>{self._max_redirects}): {url}")


class RenderingProxyFetcher:
    """Fetch through a realtime rendering proxy for JavaScript-heavy sites.

    The proxy is asked for fully rendered HTML; its JSON envelope carries the
    page in ``results[0].content``.
    """

    def __init__(
        self,
        session: requests.Session,
        *,
        username: str,
        password: str,
        endpoint: str,
        timeout_s: float = 30.0,
    ) -> None:
        self._session = session
        self._auth = (username, password)
        self._endpoint = endpoint
        self._timeout_s = timeout_s

    def fetch(self, url: str) -> FetchResult:
        payload = {"source": "universal", "url": url, "render": "html", "parse": False}
        try:
            resp = self._session.post(
                self._endpoint,
                json=payload,
                auth=self._auth,
                timeout=self._timeout_s,
            )
        except req_exc.Timeout as e:
            raise FetchError(
                f"Rendering proxy timeout after {self._timeout_s}s: {url}",
                status_code=408,
            ) from e
        except req_exc.RequestException as e:
            raise FetchError(f"Rendering proxy request failed: {e}") from e

        if int(resp.status_code) >= 400:
            raise FetchError(
                f"Rendering proxy returned HTTP {resp.status_code}",
                status_code=int(resp.status_code),
            )

        try:
            envelope = resp.json()
        except (json.JSONDecodeError, ValueError) as e:
            raise FetchError(f"Failed to parse rendering proxy response: {e}") from e

        results = envelope.get("results") if isinstance(envelope, dict) else None
        first = results[0] if isinstance(results, list) and results else None
        content = first.get("content") if isinstance(first, dict) else None
        if not isinstance(content, str):
            raise FetchError("No content in rendering proxy response")

        try:
            status = int(first.get("status_code") or 200)
        except (TypeError, ValueError) as e:
            raise FetchError(
                f"Invalid status in rendering proxy response: {first.get('status_code')!r}"
            ) from e
        if status >= 400:
            raise FetchError(f"HTTP {status}", status_code=status)

        return FetchResult(
            url=url,
            final_url=str(first.get("url") or url),
            status_code=status,
            headers={},
            fetched_at=time.time(),
            body=content.encode("utf-8"),
        )
