from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, FrozenSet, List, Optional, Tuple

UNKNOWN_LABEL = "UNKNOWN"


class SourceType(str, enum.Enum):
    """How an item's text was obtained; selects the admission thresholds."""

    FEED = "rss"
    PAGE = "html"


@dataclass(frozen=True)
class Source:
    """A configured news origin.

    ``feed_urls`` may be empty; such sources are skipped by the cycle since
    page scraping is not part of the pipeline.  ``page_urls`` is kept so the
    static table can describe the origin completely.
    """

    id: str
    name: str
    base_url: str
    has_feed: bool = True
    feed_urls: Tuple[str, ...] = ()
    feed_preferred: bool = True
    page_urls: Tuple[str, ...] = ()
    notes: str = ""


@dataclass(frozen=True)
class RawItem:
    """One feed entry, reduced to the fields the pipeline reads."""

    title: str
    link: str
    published: datetime
    guid: Optional[str] = None
    description: str = ""
    encoded_content: str = ""
    categories: Tuple[str, ...] = ()


@dataclass(frozen=True)
class KeywordWeight:
    keyword: str
    points: int
    category: Optional[str] = None


@dataclass(frozen=True)
class KeywordMatch:
    keyword: str
    count: int
    points: int
    category: Optional[str] = None

    @property
    def contribution(self) -> int:
        return self.count * self.points


@dataclass(frozen=True)
class ScoreResult:
    total_points: int = 0
    matches: Tuple[KeywordMatch, ...] = ()
    matched_categories: FrozenSet[str] = frozenset()

    @property
    def unique_keyword_count(self) -> int:
        return len(self.matches)

    @property
    def matched_keywords(self) -> Dict[str, KeywordMatch]:
        return {m.keyword: m for m in self.matches}

    @property
    def keywords(self) -> List[str]:
        return [m.keyword for m in self.matches]

    @property
    def relevance(self) -> int:
        """Total points capped at 100, the score reported on articles."""
        return min(self.total_points, 100)


@dataclass(frozen=True)
class EntityLabel:
    """A financial entity attached to an article by the classifier."""

    label: str
    name: str
    confidence: float
    explanation: str = ""

    @property
    def is_unknown(self) -> bool:
        return (
            self.label.upper() == UNKNOWN_LABEL or self.name.upper() == UNKNOWN_LABEL
        )

    @property
    def percent(self) -> int:
        return int(self.confidence * 100 + 0.5)


@dataclass(frozen=True)
class Article:
    id: str
    title: str
    content: str
    url: str
    source: str
    publish_date: datetime
    keywords: Tuple[str, ...] = ()
    relevance_score: int = 0
    trend: str = "bullish"
    entity_labels: Tuple[EntityLabel, ...] = ()
    is_feed: bool = True


@dataclass
class CycleStats:
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: Optional[datetime] = None
    feeds_processed: int = 0
    feeds_failed: int = 0
    sources_skipped: int = 0
    articles: int = 0
    posts: int = 0
    recorded: int = 0
    post_failures: int = 0
    compositions_declined: int = 0

    @property
    def duration_ms(self) -> float:
        end = self.finished_at or datetime.now(timezone.utc)
        return round((end - self.started_at).total_seconds() * 1000.0, 1)
