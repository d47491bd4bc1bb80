from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

import requests
from dotenv import load_dotenv

from .config import DEFAULT_EXCLUDE_PATTERNS, DEFAULT_USER_AGENT, CrawlConfig, Settings
from .crawl import CrawlError, Crawler, CrawlResult, list_crawls, resume_config
from .crawl_inspect import inspect_crawl
from .logging_config import setup_logging

EXIT_OK = 0
EXIT_CRAWL_FAILED = 1
EXIT_USAGE = 2
EXIT_MISSING_FILES = 4
EXIT_INTERRUPTED = 130


def _split_patterns(value: str | None) -> tuple[str, ...] | None:
    if value is None:
        return None
    return tuple(p.strip() for p in value.split(",") if p.strip())


def _add_limit_args(p: argparse.ArgumentParser, *, defaults: bool) -> None:
    # Resume leaves these as None so the stored configuration wins.
    p.add_argument("--max-pages", type=int, default=50 if defaults else None)
    p.add_argument("--max-depth", type=int, default=3 if defaults else None)
    p.add_argument(
        "--delay",
        type=int,
        default=1000 if defaults else None,
        help="Minimum milliseconds between requests (robots.txt may raise it)",
    )
    p.add_argument("--timeout", type=float, default=30.0 if defaults else None)
    p.add_argument(
        "--checkpoint-every",
        type=int,
        default=10 if defaults else None,
        help="Write state.json + manifest.json every N processed pages",
    )
    p.add_argument(
        "--rendering-proxy",
        action="store_true",
        default=False if defaults else None,
        help="Fetch pages through the rendering proxy (JavaScript-heavy sites)",
    )
    p.add_argument(
        "--no-robots",
        dest="respect_robots",
        action="store_false",
        default=True if defaults else None,
        help="Ignore robots.txt",
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="site-spider",
        description="Crawl a website and extract its content for AI processing.",
    )
    parser.add_argument("--log-level", default=None)
    parser.add_argument("--log-file", default=None)
    sub = parser.add_subparsers(dest="cmd", required=True)

    crawl_p = sub.add_parser("crawl", help="Start a new crawl from a seed URL")
    crawl_p.add_argument("--url", "-u", required=True, help="Seed URL")
    _add_limit_args(crawl_p, defaults=True)
    crawl_p.add_argument(
        "--include",
        default=None,
        help='Comma-separated glob patterns to include, e.g. "/about/*,/team/*"',
    )
    crawl_p.add_argument(
        "--exclude",
        default=None,
        help='Comma-separated glob patterns to exclude (replaces the defaults; "" for none)',
    )
    crawl_p.add_argument("--output", "-o", type=Path, default=Path("./crawls"))
    crawl_p.add_argument("--user-agent", default=DEFAULT_USER_AGENT)
    crawl_p.add_argument("--no-redirects", action="store_true")
    crawl_p.add_argument(
        "--emit-markdown",
        action="store_true",
        help="Also write pages/<hash>.md",
    )

    resume_p = sub.add_parser(
        "resume",
        help="Resume an interrupted crawl from its state.json",
    )
    resume_p.add_argument("state_file", type=Path)
    _add_limit_args(resume_p, defaults=False)

    list_p = sub.add_parser("list", help="List recent crawls")
    list_p.add_argument("--output", "-o", type=Path, default=Path("./crawls"))

    inspect_p = sub.add_parser(
        "inspect",
        help="Summarize and validate a crawl directory",
    )
    inspect_p.add_argument("crawl_dir", type=Path)
    inspect_p.add_argument(
        "--json",
        action="store_true",
        help="Print machine-readable JSON to stdout",
    )
    inspect_p.add_argument(
        "--fail-on-missing",
        action="store_true",
        help="Return non-zero if any page artifact is missing",
    )
    return parser


def _report(result: CrawlResult) -> int:
    if not result.success:
        print(f"Crawl failed: {result.error}", file=sys.stderr)
        return EXIT_CRAWL_FAILED
    stats = result.manifest.stats if result.manifest else None
    print(
        "crawl: "
        f"id={result.crawl_id} "
        f"pages={stats.pages_successful if stats else 0} "
        f"failed={stats.pages_failed if stats else 0} "
        f"output={result.output_path}"
    )
    return EXIT_OK


def _run_crawler(crawler: Crawler, state_file: Path | None = None) -> int:
    try:
        if state_file is None:
            result = crawler.crawl()
        else:
            result = crawler.resume(state_file)
    except KeyboardInterrupt:
        print(
            "Crawl interrupted. State saved; use `site-spider resume "
            f"{crawler.state_path}` to continue.",
            file=sys.stderr,
        )
        return EXIT_INTERRUPTED
    return _report(result)


def main(argv: list[str] | None = None) -> int:
    load_dotenv()
    load_dotenv(".env.local")

    parser = _build_parser()
    args = parser.parse_args(argv)

    settings = Settings()
    setup_logging(args.log_level or settings.log_level, log_file=args.log_file)

    if args.cmd == "crawl":
        try:
            cfg = CrawlConfig(
                seed_url=args.url,
                max_pages=int(args.max_pages),
                max_depth=int(args.max_depth),
                delay_ms=int(args.delay),
                include_patterns=_split_patterns(args.include) or (),
                exclude_patterns=DEFAULT_EXCLUDE_PATTERNS
                if args.exclude is None
                else _split_patterns(args.exclude),
                respect_robots=bool(args.respect_robots),
                follow_redirects=not bool(args.no_redirects),
                output_dir=str(args.output),
                user_agent=str(args.user_agent),
                timeout_s=float(args.timeout),
                use_rendering_proxy=bool(args.rendering_proxy),
                checkpoint_every=int(args.checkpoint_every),
                emit_markdown=bool(args.emit_markdown),
            )
        except ValueError as e:
            print(str(e), file=sys.stderr)
            return EXIT_USAGE

        crawler = Crawler(cfg, session=requests.Session(), settings=settings)
        return _run_crawler(crawler)

    if args.cmd == "resume":
        try:
            cfg = resume_config(
                args.state_file,
                max_pages=args.max_pages,
                max_depth=args.max_depth,
                delay_ms=args.delay,
                timeout_s=args.timeout,
                checkpoint_every=args.checkpoint_every,
                use_rendering_proxy=args.rendering_proxy,
                respect_robots=args.respect_robots,
            )
        except (CrawlError, OSError, ValueError, TypeError) as e:
            print(str(e), file=sys.stderr)
            return EXIT_USAGE

        crawler = Crawler(cfg, session=requests.Session(), settings=settings)
        return _run_crawler(crawler, state_file=args.state_file)

    if args.cmd == "list":
        listings = list_crawls(args.output)
        if not listings:
            print("No crawls found.")
            return EXIT_OK
        for it in listings:
            if not it.readable:
                print(f"  {it.domain}/{it.name} - [error reading manifest]")
                continue
            status = "complete" if it.complete else "in-progress"
            print(f"  {it.domain}/{it.name} - {it.pages} pages [{status}]")
        return EXIT_OK

    if args.cmd == "inspect":
        try:
            inspected = inspect_crawl(args.crawl_dir)
        except (OSError, ValueError) as e:
            print(str(e), file=sys.stderr)
            return EXIT_USAGE

        if bool(args.json):
            print(json.dumps(inspected.to_dict(), indent=2))
        else:
            print(
                "inspect: "
                f"id={inspected.crawl_id} "
                f"complete={inspected.complete} "
                f"pages={inspected.pages} "
                f"errors={inspected.errors} "
                f"missing_files={inspected.missing_files}"
            )
            if inspected.pages_by_type:
                parts = " ".join(f"{k}={v}" for k, v in inspected.pages_by_type.items())
                print(f"inspect: pages_by_type: {parts}")
            if inspected.missing_paths_sample:
                print("inspect: missing_paths_sample:")
                for p in inspected.missing_paths_sample:
                    print(f"- {p}")

        if bool(args.fail_on_missing) and inspected.missing_files:
            return EXIT_MISSING_FILES
        return EXIT_OK

    return EXIT_USAGE


if __name__ == "__main__":
    raise SystemExit(main())
