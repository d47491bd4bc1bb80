from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from urllib.parse import urljoin, urlparse

import requests

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RobotsRule:
    pattern: str
    allow: bool
    matcher: re.Pattern[str]
    specificity: int


@dataclass
class RobotsGroup:
    user_agents: list[str] = field(default_factory=list)
    rules: list[RobotsRule] = field(default_factory=list)
    crawl_delay: float | None = None


def _compile_pattern(pattern: str) -> re.Pattern[str]:
    anchored = pattern.endswith("$")
    if anchored:
        pattern = pattern[:-1]
    body = ".*".join(re.escape(piece) for piece in pattern.split("*"))
    return re.compile("^" + body + ("$" if anchored else ""))


def _make_rule(pattern: str, *, allow: bool) -> RobotsRule:
    literal = pattern.replace("*", "")
    if literal.endswith("$"):
        literal = literal[:-1]
    return RobotsRule(
        pattern=pattern,
        allow=allow,
        matcher=_compile_pattern(pattern),
        specificity=len(literal),
    )


class RobotsPolicy:
    """robots.txt interpreter.

    Groups are selected per user agent: an exact (case-insensitive) token
    match, else the longest declared token contained in the agent string,
    else the ``*`` group. Without a group everything is allowed.

    Within a group the matching rule with the longest literal path wins and
    ties go to Allow. Malformed lines are skipped; parsing never raises.
    """

    def __init__(self, raw_text: str) -> None:
        self._groups: list[RobotsGroup] = []
        self._sitemaps: list[str] = []

        current: RobotsGroup | None = None
        for line in (raw_text or "").splitlines():
            if "#" in line:
                line = line.split("#", 1)[0]
            line = line.strip()
            if not line:
                continue

            key, sep, value = line.partition(":")
            if not sep:
                continue
            key = key.strip().lower()
            value = value.strip()
            if not value:
                continue

            if key == "user-agent":
                # Consecutive User-agent lines share the rules that follow.
                if current is None or current.rules or current.crawl_delay is not None:
                    current = RobotsGroup(user_agents=[value.lower()])
                    self._groups.append(current)
                else:
                    current.user_agents.append(value.lower())
            elif key in ("disallow", "allow"):
                if current is not None:
                    current.rules.append(_make_rule(value, allow=key == "allow"))
            elif key == "crawl-delay":
                if current is None:
                    continue
                try:
                    delay = float(value)
                except ValueError:
                    continue
                if delay >= 0:
                    current.crawl_delay = delay
            elif key == "sitemap":
                self._sitemaps.append(value)

    @property
    def groups(self) -> tuple[RobotsGroup, ...]:
        return tuple(self._groups)

    @property
    def sitemaps(self) -> list[str]:
        return list(self._sitemaps)

    def _select_group(self, user_agent: str) -> RobotsGroup | None:
        ua = (user_agent or "").strip().lower()

        for group in self._groups:
            if ua and ua in group.user_agents:
                return group

        best: RobotsGroup | None = None
        best_len = 0
        for group in self._groups:
            for token in group.user_agents:
                if token == "*":
                    continue
                if token in ua and len(token) > best_len:
                    best = group
                    best_len = len(token)
        if best is not None:
            return best

        for group in self._groups:
            if "*" in group.user_agents:
                return group
        return None

    def is_allowed(self, url: str, user_agent: str) -> bool:
        group = self._select_group(user_agent)
        if group is None or not group.rules:
            return True

        try:
            parsed = urlparse(url)
        except ValueError:
            return False
        path = parsed.path or "/"
        if parsed.query:
            path = f"{path}?{parsed.query}"

        best: RobotsRule | None = None
        for rule in group.rules:
            if not rule.matcher.match(path):
                continue
            if best is None or rule.specificity > best.specificity:
                best = rule
            elif rule.specificity == best.specificity and rule.allow:
                best = rule

        return True if best is None else best.allow

    def crawl_delay(self, user_agent: str) -> float | None:
        group = self._select_group(user_agent)
        return group.crawl_delay if group is not None else None


def robots_url_for(base_url: str) -> str:
    return urljoin(base_url, "/robots.txt")


def fetch_robots(
    session: requests.Session,
    base_url: str,
    *,
    user_agent: str,
    timeout_s: float = 10.0,
) -> RobotsPolicy:
    """Fetch and parse robots.txt for the origin of ``base_url``.

    Any failure yields an empty, fully permissive policy.
    """

    try:
        robots_url = robots_url_for(base_url)
    except ValueError:
        return RobotsPolicy("")

    try:
        resp = session.get(
            robots_url,
            headers={"User-Agent": user_agent},
            timeout=timeout_s,
            allow_redirects=True,
        )
    except requests.RequestException as e:
        logger.info("robots.txt unavailable (%s); allowing all", e)
        return RobotsPolicy("")

    if not 200 <= int(resp.status_code) < 300:
        logger.info(
            "robots.txt returned HTTP %s; allowing all", resp.status_code
        )
        return RobotsPolicy("")

    text = resp.content.decode("utf-8", errors="replace")
    return RobotsPolicy(text)
