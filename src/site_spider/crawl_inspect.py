from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .crawl import MANIFEST_FILENAME, PAGES_DIRNAME
from .manifest import CrawlManifest, artifact_paths
from .state import STATE_FILENAME


@dataclass(frozen=True)
class CrawlInspection:
    crawl_dir: Path
    crawl_id: str
    complete: bool
    has_state: bool
    pages: int
    errors: int
    pages_by_type: dict[str, int]
    referenced_files: int
    missing_files: int
    missing_by_kind: dict[str, int]
    missing_paths_sample: list[str]

    def to_dict(self) -> dict[str, Any]:
        return {
            "crawl_dir": str(self.crawl_dir),
            "crawl_id": self.crawl_id,
            "complete": self.complete,
            "has_state": self.has_state,
            "pages": self.pages,
            "errors": self.errors,
            "pages_by_type": dict(self.pages_by_type),
            "referenced_files": self.referenced_files,
            "missing_files": self.missing_files,
            "missing_by_kind": dict(self.missing_by_kind),
            "missing_paths_sample": list(self.missing_paths_sample),
        }


def inspect_crawl(
    crawl_dir: Path,
    *,
    max_missing_paths_sample: int = 25,
) -> CrawlInspection:
    """Summarize a crawl folder and check every page has its artifact triple."""

    crawl_dir = crawl_dir.resolve()
    manifest_file = crawl_dir / MANIFEST_FILENAME
    if not manifest_file.exists():
        raise FileNotFoundError(f"Missing {MANIFEST_FILENAME} in: {crawl_dir}")

    manifest = CrawlManifest.load(manifest_file)
    pages_dir = crawl_dir / PAGES_DIRNAME

    pages_by_type: dict[str, int] = {}
    missing_by_kind: dict[str, int] = {}
    missing_paths_sample: list[str] = []
    referenced_files = 0
    missing_files = 0

    for page in manifest.pages:
        kind = page.page_type.value
        pages_by_type[kind] = pages_by_type.get(kind, 0) + 1

        paths = artifact_paths(pages_dir, page.url_hash)
        for ext, path in (("html", paths.html), ("txt", paths.text), ("json", paths.meta)):
            referenced_files += 1
            if path.exists():
                continue
            missing_files += 1
            missing_by_kind[ext] = missing_by_kind.get(ext, 0) + 1
            if len(missing_paths_sample) < max_missing_paths_sample:
                missing_paths_sample.append(path.relative_to(crawl_dir).as_posix())

    pages_by_type = dict(sorted(pages_by_type.items(), key=lambda kv: (-kv[1], kv[0])))
    missing_by_kind = dict(
        sorted(missing_by_kind.items(), key=lambda kv: (-kv[1], kv[0]))
    )

    return CrawlInspection(
        crawl_dir=crawl_dir,
        crawl_id=manifest.crawl_id,
        complete=manifest.completed_at is not None,
        has_state=(crawl_dir / STATE_FILENAME).exists(),
        pages=len(manifest.pages),
        errors=len(manifest.errors),
        pages_by_type=pages_by_type,
        referenced_files=referenced_files,
        missing_files=missing_files,
        missing_by_kind=missing_by_kind,
        missing_paths_sample=missing_paths_sample,
    )
