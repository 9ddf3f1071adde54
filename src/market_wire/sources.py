"""Configured news origins.

Edit ``NEWS_SOURCES`` to add or remove outlets, or point ``SOURCES_PATH`` at
a JSON list of objects with the same field names as :class:`Source`.
Sources without feed endpoints are listed for completeness; the cycle skips
them because page scraping is not implemented.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from .logging_utils import get_logger
from .models import Source

log = get_logger("sources")

NEWS_SOURCES: List[Source] = [
    Source(
        id="bbc",
        name="BBC News",
        base_url="https://www.bbc.co.uk",
        feed_urls=("https://feeds.bbci.co.uk/news/rss.xml",),
    ),
    Source(
        id="nytimes",
        name="The New York Times",
        base_url="https://www.nytimes.com/section/business/dealbook",
        feed_urls=("https://rss.nytimes.com/services/xml/rss/nyt/Dealbook.xml",),
        notes="Content is sometimes paywalled; feed summaries only.",
    ),
    Source(
        id="theguardian",
        name="The Guardian",
        base_url="https://www.theguardian.com",
        feed_urls=(
            "https://www.theguardian.com/world/rss",
            "https://www.theguardian.com/us/business/rss",
            "https://www.theguardian.com/business/stock-markets/rss",
            "https://www.theguardian.com/business/economics/rss",
        ),
    ),
    Source(
        id="politico",
        name="Politico",
        base_url="https://www.politico.com",
        feed_urls=(
            "https://rss.politico.com/healthcare.xml",
            "https://rss.politico.com/energy.xml",
            "https://rss.politico.com/economy.xml",
            "https://rss.politico.com/defense.xml",
            "https://rss.politico.com/congress.xml",
        ),
    ),
    Source(
        id="cnn",
        name="CNN",
        base_url="https://edition.cnn.com/business",
        has_feed=False,
        feed_urls=("http://rss.cnn.com/rss/edition.rss",),
        feed_preferred=False,
    ),
    Source(
        id="fox",
        name="Fox News",
        base_url="https://www.foxnews.com",
        feed_urls=(
            "https://moxie.foxbusiness.com/google-publisher/latest.xml",
            "https://www.foxbusiness.com/rss.xml?tag=US Markets",
            "https://www.foxbusiness.com/rss.xml?tag=Cryptocurrency",
            "https://www.foxbusiness.com/rss.xml?tag=Stocks",
            "https://moxie.foxbusiness.com/google-publisher/economy.xml",
            "https://moxie.foxbusiness.com/google-publisher/real-estate.xml",
        ),
    ),
    Source(
        id="bloomberg",
        name="Bloomberg",
        base_url="https://www.bloomberg.com",
        # Bloomberg publishes many section feeds; this one is a placeholder.
        feed_urls=("https://www.bloomberg.com/feed/podcast/etf-report.xml",),
        page_urls=(
            "https://www.bloomberg.com/wealth",
            "https://www.bloomberg.com/economics",
            "https://www.bloomberg.com/technology",
            "https://www.bloomberg.com/industries/finance",
            "https://www.bloomberg.com/industries",
            "https://www.bloomberg.com/industries/energy",
        ),
    ),
    Source(
        id="washingtonpost",
        name="The Washington Post",
        base_url="https://www.washingtonpost.com",
        feed_urls=(
            "https://feeds.washingtonpost.com/rss/business?itid=lk_inline_manual_27",
        ),
        notes="Feed paths change occasionally; articles are often paywalled.",
    ),
]


def get_feed_sources(sources: Optional[Iterable[Source]] = None) -> List[Source]:
    """Sources that advertise a feed and list at least one endpoint."""
    pool = NEWS_SOURCES if sources is None else sources
    return [s for s in pool if s.has_feed and s.feed_urls]


def get_page_only_sources(sources: Optional[Iterable[Source]] = None) -> List[Source]:
    pool = NEWS_SOURCES if sources is None else sources
    return [s for s in pool if not s.has_feed or not s.feed_urls]


def _source_from_dict(d: Dict[str, Any]) -> Source:
    return Source(
        id=str(d["id"]),
        name=str(d.get("name") or d["id"]),
        base_url=str(d.get("base_url", "")),
        has_feed=bool(d.get("has_feed", True)),
        feed_urls=tuple(d.get("feed_urls") or ()),
        feed_preferred=bool(d.get("feed_preferred", True)),
        page_urls=tuple(d.get("page_urls") or ()),
        notes=str(d.get("notes", "")),
    )


def load_sources(path: Optional[str] = None) -> List[Source]:
    """Return the configured sources, reading ``path`` when it names a file."""
    if not path:
        return list(NEWS_SOURCES)
    p = Path(path)
    if not p.exists():
        log.warning("sources_file_missing path=%s using_builtin=1", path)
        return list(NEWS_SOURCES)
    data = json.loads(p.read_text(encoding="utf-8"))
    sources = [_source_from_dict(d) for d in data]
    log.info("sources_loaded path=%s count=%d", path, len(sources))
    return sources
