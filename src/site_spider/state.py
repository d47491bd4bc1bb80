from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .manifest import read_json, utc_iso, write_json
from .models import CrawlStats, FrontierItem

STATE_FILENAME = "state.json"


@dataclass
class CrawlState:
    """Resume checkpoint: what is left to do and what is already done."""

    crawl_id: str
    frontier: list[FrontierItem] = field(default_factory=list)
    visited: list[str] = field(default_factory=list)
    stats: CrawlStats = field(default_factory=CrawlStats)
    saved_at: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "crawl_id": self.crawl_id,
            "frontier": [item.to_dict() for item in self.frontier],
            "visited": list(self.visited),
            "stats": self.stats.to_dict(),
            "saved_at": self.saved_at,
        }

    @classmethod
    def from_dict(cls, data: Any) -> "CrawlState":
        if not isinstance(data, dict):
            raise ValueError("Crawl state must be a JSON object")
        try:
            return cls(
                crawl_id=str(data["crawl_id"]),
                frontier=[FrontierItem.from_dict(i) for i in data.get("frontier") or []],
                visited=[str(u) for u in data.get("visited") or []],
                stats=CrawlStats.from_dict(data.get("stats")),
                saved_at=str(data.get("saved_at") or ""),
            )
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise ValueError(f"Malformed crawl state: {e}") from e

    def save(self, path: Path) -> None:
        self.saved_at = utc_iso()
        write_json(path, self.to_dict())

    @classmethod
    def load(cls, path: Path) -> "CrawlState":
        return cls.from_dict(read_json(path))

    @staticmethod
    def delete(path: Path) -> None:
        path.unlink(missing_ok=True)
