"""site-spider core library.

A polite, resumable breadth-first crawler that mirrors one website into
per-page HTML/text/metadata artifacts plus a crawl manifest, ready for
downstream AI processing.

Repo rules:
- One fetch in flight per crawl; politeness delay between fetches.
- Extractors degrade to empty values, they never raise on bad markup.
"""

from __future__ import annotations

__all__ = ["__version__"]

__version__ = "0.1.0"
