from __future__ import annotations

import logging
import time
from collections import deque
from dataclasses import dataclass, replace
from enum import Enum
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

import requests

from .config import CrawlConfig, Settings
from .extract import extract_page, render_markdown
from .http_client import DirectFetcher, FetchError, PageFetcher, RenderingProxyFetcher
from .manifest import (
    CrawlManifest,
    crawl_timestamp,
    read_json,
    utc_iso,
    write_page_artifacts,
)
from .models import (
    CrawlStats,
    ErrorEntry,
    FrontierItem,
    PageMetadata,
    PageRecord,
    PageSummary,
    PageType,
)
from .robots import RobotsPolicy, fetch_robots
from .state import STATE_FILENAME, CrawlState
from .urls import UrlScope, normalize_url, url_hash

logger = logging.getLogger(__name__)

MANIFEST_FILENAME = "manifest.json"
PAGES_DIRNAME = "pages"

_ROBOTS_TIMEOUT_S = 10.0


class CrawlError(RuntimeError):
    """Fatal crawl-level failure; the run stops and reports it."""


class CrawlPhase(str, Enum):
    INIT = "init"
    FETCHING_ROBOTS = "fetching_robots"
    RESUMING = "resuming"
    CRAWLING = "crawling"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class CrawlResult:
    success: bool
    phase: CrawlPhase
    crawl_id: str
    output_path: Path | None
    manifest_path: Path | None
    state_path: Path | None
    manifest: CrawlManifest | None
    error: str | None = None


def infer_status(error: BaseException) -> int:
    """Best-effort HTTP status for a failed fetch; 0 when unknown."""

    status = getattr(error, "status_code", None)
    if isinstance(status, int) and status > 0:
        return status
    message = str(error).lower()
    if "404" in message:
        return 404
    if "403" in message:
        return 403
    if "500" in message:
        return 500
    if "timeout" in message or "timed out" in message:
        return 408
    return 0


def build_fetcher(
    config: CrawlConfig, session: requests.Session, settings: Settings
) -> PageFetcher:
    if not config.use_rendering_proxy:
        return DirectFetcher(
            session,
            user_agent=config.user_agent,
            timeout_s=config.timeout_s,
            follow_redirects=config.follow_redirects,
        )

    if not settings.has_proxy_credentials:
        raise CrawlError(
            "RENDER_PROXY_USERNAME and RENDER_PROXY_PASSWORD must be set "
            "to fetch through the rendering proxy"
        )
    return RenderingProxyFetcher(
        session,
        username=str(settings.render_proxy_username),
        password=str(settings.render_proxy_password),
        endpoint=settings.render_proxy_endpoint,
        timeout_s=config.timeout_s,
    )


class Crawler:
    """Bounded, polite, resumable breadth-first crawl of one site.

    One fetch is in flight at a time and the politeness delay is observed
    between iterations. Frontier, visited set and stats are owned by this
    instance; nothing else mutates them.
    """

    def __init__(
        self,
        config: CrawlConfig,
        *,
        fetcher: PageFetcher | None = None,
        session: requests.Session | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.cfg = config
        self.session = session or requests.Session()
        self.settings = settings or Settings()
        self.scope = UrlScope(
            include_patterns=config.include_patterns,
            exclude_patterns=config.exclude_patterns,
        )

        self._fetcher = fetcher
        self.phase = CrawlPhase.INIT
        self.crawl_id = ""
        self.domain = ""
        self.crawl_dir: Path | None = None
        self.pages_dir: Path | None = None
        self.manifest: CrawlManifest | None = None
        self.robots: RobotsPolicy | None = None
        self.effective_delay_ms = config.delay_ms

        self.frontier: deque[FrontierItem] = deque()
        self.visited: set[str] = set()
        self.stats = CrawlStats()
        self._queued: set[str] = set()
        self._in_flight: FrontierItem | None = None

    @property
    def manifest_path(self) -> Path | None:
        return self.crawl_dir / MANIFEST_FILENAME if self.crawl_dir else None

    @property
    def state_path(self) -> Path | None:
        return self.crawl_dir / STATE_FILENAME if self.crawl_dir else None

    def _resolve_fetcher(self) -> PageFetcher:
        if self._fetcher is None:
            self._fetcher = build_fetcher(self.cfg, self.session, self.settings)
        return self._fetcher

    def _load_robots(self, seed_url: str) -> None:
        if not self.cfg.respect_robots:
            self.robots = None
            return

        logger.info("Fetching robots.txt...")
        self.robots = fetch_robots(
            self.session,
            seed_url,
            user_agent=self.cfg.user_agent,
            timeout_s=min(self.cfg.timeout_s, _ROBOTS_TIMEOUT_S),
        )

        robots_delay = self.robots.crawl_delay(self.cfg.user_agent)
        if robots_delay is not None and robots_delay * 1000 > self.effective_delay_ms:
            logger.info(
                "robots.txt specifies crawl-delay: %ss (using this instead of %sms)",
                robots_delay,
                self.effective_delay_ms,
            )
            self.effective_delay_ms = int(robots_delay * 1000)

    def _enqueue(self, item: FrontierItem) -> None:
        if item.url in self.visited or item.url in self._queued:
            return
        self._queued.add(item.url)
        self.frontier.append(item)

    def _result(self, success: bool, error: str | None = None) -> CrawlResult:
        return CrawlResult(
            success=success,
            phase=self.phase,
            crawl_id=self.crawl_id,
            output_path=self.crawl_dir,
            manifest_path=self.manifest_path,
            state_path=self.state_path,
            manifest=self.manifest,
            error=error,
        )

    def crawl(self) -> CrawlResult:
        started = time.time()
        try:
            seed = self.cfg.seed_url
            try:
                parsed = urlparse(seed)
            except ValueError as e:
                raise CrawlError(f"Invalid seed URL: {seed}") from e
            if parsed.scheme not in ("http", "https") or not parsed.hostname:
                raise CrawlError(f"Invalid seed URL: {seed}")

            self.domain = parsed.hostname.lower()
            stamp = crawl_timestamp(started)
            self.crawl_id = f"{self.domain}_{stamp}"

            self.crawl_dir = Path(self.cfg.output_dir) / self.domain / stamp
            self.pages_dir = self.crawl_dir / PAGES_DIRNAME
            self.pages_dir.mkdir(parents=True, exist_ok=True)

            self.stats = CrawlStats()
            self.manifest = CrawlManifest(
                crawl_id=self.crawl_id,
                seed_url=seed,
                domain=self.domain,
                started_at=utc_iso(),
                config=self.cfg.to_dict(),
                stats=self.stats,
            )

            logger.info("Starting crawl: %s", self.crawl_id)
            logger.info("Seed URL: %s", seed)
            logger.info("Output: %s", self.crawl_dir)
            logger.info(
                "Limits: max %s pages, depth %s", self.cfg.max_pages, self.cfg.max_depth
            )

            fetcher = self._resolve_fetcher()

            self.phase = CrawlPhase.FETCHING_ROBOTS
            self._load_robots(seed)
            self.manifest.effective_delay_ms = self.effective_delay_ms

            self._enqueue(FrontierItem(url=normalize_url(seed), depth=0))

            self.phase = CrawlPhase.CRAWLING
            self._process_frontier(fetcher)
            self._finish()
            return self._result(True)
        except (CrawlError, OSError, ValueError) as e:
            self.phase = CrawlPhase.FAILED
            logger.error("Crawl failed: %s", e)
            return self._result(False, error=str(e))

    def resume(self, state_path: Path | str) -> CrawlResult:
        self.phase = CrawlPhase.RESUMING
        try:
            state_file = Path(state_path)
            if not state_file.is_file():
                raise CrawlError(f"State file not found: {state_file}")
            state = CrawlState.load(state_file)

            self.crawl_dir = state_file.parent
            self.pages_dir = self.crawl_dir / PAGES_DIRNAME
            self.pages_dir.mkdir(parents=True, exist_ok=True)
            self.crawl_id = state.crawl_id

            manifest_file = self.crawl_dir / MANIFEST_FILENAME
            if manifest_file.exists():
                self.manifest = CrawlManifest.load(manifest_file)
            else:
                self.manifest = CrawlManifest(
                    crawl_id=state.crawl_id,
                    seed_url=self.cfg.seed_url,
                    domain=(urlparse(self.cfg.seed_url).hostname or "").lower(),
                    started_at=state.saved_at or utc_iso(),
                    config=self.cfg.to_dict(),
                )
            self.manifest.completed_at = None
            self.domain = self.manifest.domain

            self.stats = state.stats
            self.manifest.stats = self.stats
            self.frontier = deque(state.frontier)
            self._queued = {item.url for item in self.frontier}
            self.visited = set(state.visited)

            logger.info("Resuming crawl: %s", self.crawl_id)
            logger.info("  State saved at: %s", state.saved_at)
            logger.info("  Queue remaining: %d URLs", len(self.frontier))
            logger.info("  Already visited: %d URLs", len(self.visited))

            fetcher = self._resolve_fetcher()

            # Robots policies are not assumed to survive between runs.
            self._load_robots(self.manifest.seed_url or self.cfg.seed_url)
            self.manifest.effective_delay_ms = self.effective_delay_ms

            self.phase = CrawlPhase.CRAWLING
            self._process_frontier(fetcher)
            self._finish()
            return self._result(True)
        except (CrawlError, OSError, ValueError) as e:
            self.phase = CrawlPhase.FAILED
            logger.error("Resume failed: %s", e)
            return self._result(False, error=str(e))

    def _process_frontier(self, fetcher: PageFetcher) -> None:
        try:
            self._crawl_loop(fetcher)
        except KeyboardInterrupt:
            in_flight = self._in_flight
            if in_flight is not None:
                # Put the interrupted fetch back so resume retries it.
                self.visited.discard(in_flight.url)
                self._queued.add(in_flight.url)
                self.frontier.appendleft(in_flight)
                self._in_flight = None
            if self.crawl_dir is not None and self.manifest is not None:
                self.checkpoint()
                logger.warning("Crawl interrupted; state saved to %s", self.state_path)
            raise

    def _crawl_loop(self, fetcher: PageFetcher) -> None:
        cfg = self.cfg
        while self.frontier and self.stats.pages_successful < cfg.max_pages:
            item = self.frontier.popleft()
            url = normalize_url(item.url)
            self._queued.discard(item.url)

            if url in self.visited:
                continue
            if item.depth > cfg.max_depth:
                continue
            if self.robots is not None and not self.robots.is_allowed(
                url, cfg.user_agent
            ):
                logger.debug("[ROBOTS] Skipping: %s", url)
                continue
            if not self.scope.is_allowed(url):
                logger.debug("[FILTER] Skipping: %s", url)
                continue

            self.visited.add(url)
            self._in_flight = FrontierItem(url=url, depth=item.depth)

            logger.info(
                "[%d/%d] Fetching: %s",
                self.stats.pages_successful + 1,
                cfg.max_pages,
                url,
            )
            record = self.fetch_page(fetcher, url, item.depth)
            if record.ok:
                self._record_success(record)
            else:
                self._record_failure(record)
            self._in_flight = None

            if self.stats.processed % cfg.checkpoint_every == 0:
                self.checkpoint()

            if self.frontier:
                self._pause()

    def _pause(self) -> None:
        if self.effective_delay_ms > 0:
            time.sleep(self.effective_delay_ms / 1000.0)

    def fetch_page(self, fetcher: PageFetcher, url: str, depth: int) -> PageRecord:
        start = time.monotonic()
        key = url_hash(url)
        try:
            res = fetcher.fetch(url)
        except (FetchError, requests.RequestException, ValueError) as e:
            return PageRecord(
                url=url,
                url_hash=key,
                status=infer_status(e),
                page_type=PageType.OTHER,
                metadata=PageMetadata(),
                html="",
                text="",
                internal_links=[],
                external_links=[],
                json_ld=None,
                fetched_at=utc_iso(),
                depth=depth,
                response_time_ms=int((time.monotonic() - start) * 1000),
                content_length=0,
                error=str(e) or type(e).__name__,
            )

        response_time_ms = int((time.monotonic() - start) * 1000)
        html = res.text
        page = extract_page(html, url)
        return PageRecord(
            url=url,
            url_hash=key,
            status=res.status_code,
            page_type=page.page_type,
            metadata=page.metadata,
            html=html,
            text=page.text,
            internal_links=page.links.internal,
            external_links=page.links.external,
            json_ld=page.json_ld,
            fetched_at=utc_iso(),
            depth=depth,
            response_time_ms=response_time_ms,
            content_length=len(res.body),
            final_url=res.final_url,
        )

    def _record_success(self, record: PageRecord) -> None:
        assert self.manifest is not None and self.pages_dir is not None

        markdown = None
        if self.cfg.emit_markdown:
            markdown = render_markdown(record.html, source_url=record.url)
        write_page_artifacts(self.pages_dir, record, markdown=markdown)

        for link in record.internal_links:
            self._enqueue(FrontierItem(url=normalize_url(link), depth=record.depth + 1))

        # Counted last: an interrupt above re-queues the page uncounted.
        self.stats.record_success(record)
        self.manifest.pages.append(PageSummary.from_record(record))

        title = record.metadata.title
        if len(title) > 50:
            title = title[:50] + "..."
        logger.info("  [OK] %s | %s", record.page_type.value, title)

    def _record_failure(self, record: PageRecord) -> None:
        assert self.manifest is not None

        self.stats.record_failure()
        self.manifest.errors.append(
            ErrorEntry(
                url=record.url,
                error=record.error or "",
                timestamp=record.fetched_at,
                status=record.status,
            )
        )
        logger.warning("  [FAILED] %s", record.error)

    def checkpoint(self) -> None:
        """Persist the resumable state and the manifest."""

        assert self.manifest is not None and self.crawl_dir is not None

        state = CrawlState(
            crawl_id=self.crawl_id,
            frontier=list(self.frontier),
            visited=sorted(self.visited),
            stats=self.stats,
        )
        state.save(self.crawl_dir / STATE_FILENAME)
        self.manifest.stats = self.stats
        self.manifest.save(self.crawl_dir / MANIFEST_FILENAME)
        logger.debug(
            "Checkpoint: %d queued, %d visited", len(self.frontier), len(self.visited)
        )

    def _finish(self) -> None:
        assert self.manifest is not None and self.crawl_dir is not None

        self.manifest.completed_at = utc_iso()
        self.manifest.stats = self.stats
        self.manifest.save(self.crawl_dir / MANIFEST_FILENAME)
        # The checkpoint only describes in-progress work.
        CrawlState.delete(self.crawl_dir / STATE_FILENAME)
        self.phase = CrawlPhase.COMPLETED

        logger.info("Crawl complete!")
        logger.info("  Pages crawled: %d", self.stats.pages_successful)
        logger.info("  Pages failed: %d", self.stats.pages_failed)
        logger.info("  Total bytes: %.2f MB", self.stats.total_bytes / 1024 / 1024)
        logger.info("  Output: %s", self.crawl_dir)


def resume_config(state_path: Path | str, **overrides: Any) -> CrawlConfig:
    """Rebuild the configuration of an interrupted crawl.

    The crawl's manifest supplies the stored configuration; non-None
    ``overrides`` replace individual fields.
    """

    manifest_file = Path(state_path).parent / MANIFEST_FILENAME
    if not manifest_file.exists():
        seed_url = overrides.get("seed_url")
        if not seed_url:
            raise CrawlError(
                f"No manifest next to {state_path}; a seed URL is required to resume"
            )
        base = CrawlConfig(seed_url=str(seed_url))
    else:
        data = read_json(manifest_file)
        stored = dict(data.get("config") or {}) if isinstance(data, dict) else {}
        stored.setdefault("seed_url", (data or {}).get("seed_url") or "")
        base = CrawlConfig.from_dict(stored)

    changes = {k: v for k, v in overrides.items() if v is not None}
    return replace(base, **changes) if changes else base


@dataclass(frozen=True)
class CrawlListing:
    domain: str
    name: str
    path: Path
    pages: int | None
    complete: bool
    readable: bool = True


def list_crawls(output_dir: Path | str, *, per_domain: int = 5) -> list[CrawlListing]:
    """Newest crawl folders per domain, read from their manifests."""

    root = Path(output_dir)
    if not root.is_dir():
        return []

    listings: list[CrawlListing] = []
    for domain_dir in sorted(p for p in root.iterdir() if p.is_dir()):
        crawls = sorted(
            (p for p in domain_dir.iterdir() if p.is_dir()),
            key=lambda p: p.name,
            reverse=True,
        )[:per_domain]
        for crawl_dir in crawls:
            manifest_file = crawl_dir / MANIFEST_FILENAME
            if not manifest_file.exists():
                continue
            try:
                manifest = CrawlManifest.load(manifest_file)
            except (OSError, ValueError):
                listings.append(
                    CrawlListing(
                        domain=domain_dir.name,
                        name=crawl_dir.name,
                        path=crawl_dir,
                        pages=None,
                        complete=False,
                        readable=False,
                    )
                )
                continue
            listings.append(
                CrawlListing(
                    domain=domain_dir.name,
                    name=crawl_dir.name,
                    path=crawl_dir,
                    pages=manifest.stats.pages_successful,
                    complete=manifest.completed_at is not None,
                )
            )
    return listings
