from __future__ import annotations

import json
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .models import CrawlStats, ErrorEntry, PageRecord, PageSummary


def utc_iso() -> str:
    return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())


def crawl_timestamp(at: float | None = None) -> str:
    """Folder-friendly UTC timestamp, e.g. ``20260125_034546``."""

    return time.strftime("%Y%m%d_%H%M%S", time.gmtime(at))


def write_json(path: Path, obj: Any) -> None:
    # Write-then-rename so an interrupted checkpoint never leaves half a file.
    tmp = path.with_name(path.name + ".tmp")
    tmp.write_text(
        json.dumps(obj, indent=2, ensure_ascii=False) + "\n",
        encoding="utf-8",
        newline="\n",
    )
    tmp.replace(path)


def read_json(path: Path) -> Any:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ValueError(f"Invalid JSON in {path}: {e}") from e


@dataclass
class CrawlManifest:
    crawl_id: str
    seed_url: str
    domain: str
    started_at: str
    config: dict[str, Any]
    completed_at: str | None = None
    effective_delay_ms: int | None = None
    stats: CrawlStats = field(default_factory=CrawlStats)
    pages: list[PageSummary] = field(default_factory=list)
    errors: list[ErrorEntry] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "crawl_id": self.crawl_id,
            "seed_url": self.seed_url,
            "domain": self.domain,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
            "config": dict(self.config),
            "effective_delay_ms": self.effective_delay_ms,
            "stats": self.stats.to_dict(),
            "pages": [p.to_dict() for p in self.pages],
            "errors": [e.to_dict() for e in self.errors],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CrawlManifest":
        if not isinstance(data, dict):
            raise ValueError("Manifest must be a JSON object")
        try:
            return cls(
                crawl_id=str(data["crawl_id"]),
                seed_url=str(data.get("seed_url") or ""),
                domain=str(data.get("domain") or ""),
                started_at=str(data.get("started_at") or ""),
                completed_at=data.get("completed_at"),
                config=dict(data.get("config") or {}),
                effective_delay_ms=data.get("effective_delay_ms"),
                stats=CrawlStats.from_dict(data.get("stats")),
                pages=[PageSummary.from_dict(p) for p in data.get("pages") or []],
                errors=[ErrorEntry.from_dict(e) for e in data.get("errors") or []],
            )
        except (KeyError, TypeError, AttributeError) as e:
            raise ValueError(f"Malformed manifest: {e}") from e

    def save(self, path: Path) -> None:
        write_json(path, self.to_dict())

    @classmethod
    def load(cls, path: Path) -> "CrawlManifest":
        return cls.from_dict(read_json(path))


@dataclass(frozen=True)
class PageArtifacts:
    html: Path
    text: Path
    meta: Path
    markdown: Path | None = None


def artifact_paths(pages_dir: Path, key: str) -> PageArtifacts:
    return PageArtifacts(
        html=pages_dir / f"{key}.html",
        text=pages_dir / f"{key}.txt",
        meta=pages_dir / f"{key}.json",
    )


def write_page_artifacts(
    pages_dir: Path,
    record: PageRecord,
    *,
    markdown: str | None = None,
) -> PageArtifacts:
    """Write the HTML/text/metadata triple (plus optional Markdown)."""

    paths = artifact_paths(pages_dir, record.url_hash)
    paths.html.write_text(record.html, encoding="utf-8", newline="\n")
    paths.text.write_text(record.text, encoding="utf-8", newline="\n")
    paths.meta.write_text(
        json.dumps(record.to_json_dict(), indent=2, ensure_ascii=False) + "\n",
        encoding="utf-8",
        newline="\n",
    )

    if markdown is None:
        return paths

    md_path = pages_dir / f"{record.url_hash}.md"
    md_path.write_text(markdown, encoding="utf-8", newline="\n")
    return PageArtifacts(
        html=paths.html, text=paths.text, meta=paths.meta, markdown=md_path
    )
