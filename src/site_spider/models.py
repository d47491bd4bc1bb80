from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any


class PageType(str, Enum):
    HOMEPAGE = "homepage"
    ABOUT = "about"
    TEAM = "team"
    PRODUCT = "product"
    NEWS = "news"
    CONTACT = "contact"
    LEGAL = "legal"
    OTHER = "other"

    @classmethod
    def parse(cls, value: object) -> "PageType":
        try:
            return cls(str(value))
        except ValueError:
            return cls.OTHER


@dataclass(frozen=True)
class PageMetadata:
    title: str = ""
    description: str = ""
    canonical_url: str | None = None
    og_image: str | None = None
    og_type: str | None = None
    language: str | None = None
    author: str | None = None
    published_date: str | None = None
    modified_date: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class FrontierItem:
    url: str
    depth: int

    def to_dict(self) -> dict[str, Any]:
        return {"url": self.url, "depth": self.depth}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "FrontierItem":
        return cls(url=str(data["url"]), depth=int(data["depth"]))


@dataclass(frozen=True)
class PageRecord:
    """Outcome of one fetch attempt. ``error`` is set for failed fetches."""

    url: str
    url_hash: str
    status: int
    page_type: PageType
    metadata: PageMetadata
    html: str
    text: str
    internal_links: list[str]
    external_links: list[str]
    json_ld: Any
    fetched_at: str
    depth: int
    response_time_ms: int
    content_length: int
    final_url: str | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_json_dict(self) -> dict[str, Any]:
        """The ``pages/<hash>.json`` payload (no raw HTML or text)."""

        return {
            "url": self.url,
            "url_hash": self.url_hash,
            "final_url": self.final_url,
            "status": self.status,
            "type": self.page_type.value,
            "metadata": self.metadata.to_dict(),
            "internal_links": list(self.internal_links),
            "external_links": list(self.external_links),
            "json_ld": self.json_ld,
            "fetched_at": self.fetched_at,
            "depth": self.depth,
            "response_time_ms": self.response_time_ms,
            "content_length": self.content_length,
        }


def _empty_type_counts() -> dict[str, int]:
    return {t.value: 0 for t in PageType}


@dataclass
class CrawlStats:
    pages_requested: int = 0
    pages_successful: int = 0
    pages_failed: int = 0
    total_bytes: int = 0
    avg_response_time_ms: float = 0.0
    pages_by_type: dict[str, int] = field(default_factory=_empty_type_counts)

    def record_success(self, record: PageRecord) -> None:
        self.pages_requested += 1
        self.pages_successful += 1
        self.total_bytes += record.content_length
        key = record.page_type.value
        self.pages_by_type[key] = self.pages_by_type.get(key, 0) + 1
        # Incremental mean so the figure stays correct across resumes.
        n = self.pages_successful
        self.avg_response_time_ms = round(
            self.avg_response_time_ms
            + (record.response_time_ms - self.avg_response_time_ms) / n,
            1,
        )

    def record_failure(self) -> None:
        self.pages_requested += 1
        self.pages_failed += 1

    @property
    def processed(self) -> int:
        return self.pages_requested

    def to_dict(self) -> dict[str, Any]:
        return {
            "pages_requested": self.pages_requested,
            "pages_successful": self.pages_successful,
            "pages_failed": self.pages_failed,
            "total_bytes": self.total_bytes,
            "avg_response_time_ms": self.avg_response_time_ms,
            "pages_by_type": dict(self.pages_by_type),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "CrawlStats":
        data = data or {}
        by_type = _empty_type_counts()
        for k, v in (data.get("pages_by_type") or {}).items():
            by_type[str(k)] = int(v or 0)
        return cls(
            pages_requested=int(data.get("pages_requested") or 0),
            pages_successful=int(data.get("pages_successful") or 0),
            pages_failed=int(data.get("pages_failed") or 0),
            total_bytes=int(data.get("total_bytes") or 0),
            avg_response_time_ms=float(data.get("avg_response_time_ms") or 0.0),
            pages_by_type=by_type,
        )


@dataclass(frozen=True)
class PageSummary:
    url: str
    url_hash: str
    status: int
    page_type: PageType
    title: str
    fetched_at: str
    depth: int
    content_length: int

    @classmethod
    def from_record(cls, record: PageRecord) -> "PageSummary":
        return cls(
            url=record.url,
            url_hash=record.url_hash,
            status=record.status,
            page_type=record.page_type,
            title=record.metadata.title,
            fetched_at=record.fetched_at,
            depth=record.depth,
            content_length=record.content_length,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "url": self.url,
            "url_hash": self.url_hash,
            "status": self.status,
            "type": self.page_type.value,
            "title": self.title,
            "fetched_at": self.fetched_at,
            "depth": self.depth,
            "content_length": self.content_length,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PageSummary":
        return cls(
            url=str(data["url"]),
            url_hash=str(data["url_hash"]),
            status=int(data.get("status") or 0),
            page_type=PageType.parse(data.get("type")),
            title=str(data.get("title") or ""),
            fetched_at=str(data.get("fetched_at") or ""),
            depth=int(data.get("depth") or 0),
            content_length=int(data.get("content_length") or 0),
        )


@dataclass(frozen=True)
class ErrorEntry:
    url: str
    error: str
    timestamp: str
    status: int | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "url": self.url,
            "error": self.error,
            "timestamp": self.timestamp,
        }
        if self.status is not None:
            out["status"] = self.status
        return out

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ErrorEntry":
        status = data.get("status")
        return cls(
            url=str(data["url"]),
            error=str(data.get("error") or ""),
            timestamp=str(data.get("timestamp") or ""),
            status=int(status) if status is not None else None,
        )
