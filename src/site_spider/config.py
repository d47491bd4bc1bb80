from __future__ import annotations

import os
from dataclasses import asdict, dataclass, field, fields
from typing import Any

DEFAULT_USER_AGENT = "site-spider/1.0 (+https://github.com/site-spider/site-spider)"

DEFAULT_PROXY_ENDPOINT = "https://realtime.oxylabs.io/v1/queries"

# Asset files are never worth a page fetch. "**" lets them match at any depth.
DEFAULT_EXCLUDE_PATTERNS: tuple[str, ...] = (
    "**.pdf",
    "**.jpg",
    "**.jpeg",
    "**.png",
    "**.gif",
    "**.svg",
    "**.webp",
    "**.ico",
    "**.mp3",
    "**.mp4",
    "**.webm",
    "**.avi",
    "**.mov",
    "**.zip",
    "**.tar",
    "**.gz",
    "**.rar",
    "**.exe",
    "**.dmg",
    "**.css",
    "**.js",
    "**.woff",
    "**.woff2",
    "**.ttf",
    "**.eot",
)


@dataclass(frozen=True)
class CrawlConfig:
    """Resolved crawl configuration; fixed for the lifetime of a crawl."""

    seed_url: str
    max_pages: int = 50
    max_depth: int = 3
    delay_ms: int = 1000
    include_patterns: tuple[str, ...] = ()
    exclude_patterns: tuple[str, ...] = field(
        default_factory=lambda: DEFAULT_EXCLUDE_PATTERNS
    )
    respect_robots: bool = True
    follow_redirects: bool = True
    output_dir: str = "./crawls"
    user_agent: str = DEFAULT_USER_AGENT
    timeout_s: float = 30.0
    use_rendering_proxy: bool = False
    checkpoint_every: int = 10
    emit_markdown: bool = False

    def __post_init__(self) -> None:
        # Accept lists from JSON/CLI callers while keeping the dataclass hashable.
        object.__setattr__(self, "include_patterns", tuple(self.include_patterns))
        object.__setattr__(self, "exclude_patterns", tuple(self.exclude_patterns))
        if self.max_pages < 0 or self.max_depth < 0 or self.delay_ms < 0:
            raise ValueError("max_pages, max_depth and delay_ms must be >= 0")
        if self.checkpoint_every < 1:
            raise ValueError("checkpoint_every must be >= 1")

    def to_dict(self) -> dict[str, Any]:
        out = asdict(self)
        out["include_patterns"] = list(self.include_patterns)
        out["exclude_patterns"] = list(self.exclude_patterns)
        return out

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CrawlConfig":
        known = {f.name for f in fields(cls)}
        kwargs = {k: v for k, v in data.items() if k in known}
        return cls(**kwargs)


class Settings:
    """
    Environment-backed settings. The CLI loads ``.env``/``.env.local``
    through python-dotenv before reading these.
    """

    def __init__(self, environ: dict[str, str] | None = None) -> None:
        env = os.environ if environ is None else environ
        self.render_proxy_username = env.get("RENDER_PROXY_USERNAME") or env.get(
            "OXYLABS_USERNAME"
        )
        self.render_proxy_password = env.get("RENDER_PROXY_PASSWORD") or env.get(
            "OXYLABS_PASSWORD"
        )
        self.render_proxy_endpoint = env.get(
            "RENDER_PROXY_ENDPOINT", DEFAULT_PROXY_ENDPOINT
        )
        self.log_level = env.get("SITE_SPIDER_LOG_LEVEL", "INFO")

    @property
    def has_proxy_credentials(self) -> bool:
        return bool(self.render_proxy_username and self.render_proxy_password)
