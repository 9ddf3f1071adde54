"""Per-feed pipeline: fetch, parse, dedup, score, classify, persist.

``process_feed`` returns the articles admitted from one feed endpoint.
Entry-level problems (missing fields, classifier or state-store failures)
skip that entry only.  A fetch or parse failure is recorded in the scrape
log and re-raised for the runner to log against the feed.
"""

from __future__ import annotations

from typing import List, Optional, Protocol, Sequence

from .dedup import DedupGate
from .errors import ClassificationError, FeedParseError, FetchError, PersistenceError
from .fetcher import FetchResult
from .logging_utils import get_logger
from .models import Article, EntityLabel, RawItem, SourceType
from .normalize import item_identity, normalize_content, parse_items
from .repository import ArticleRepository
from .scoring import ScoringEngine

log = get_logger("monitor")


class Fetcher(Protocol):
    async def fetch(self, url: str) -> FetchResult: ...


class Classifier(Protocol):
    async def classify(self, content: str) -> List[EntityLabel]: ...


class FeedMonitor:
    def __init__(
        self,
        fetcher: Fetcher,
        dedup: DedupGate,
        scoring: ScoringEngine,
        classifier: Classifier,
        repository: Optional[ArticleRepository] = None,
        batch_size: int = 10,
    ):
        self.fetcher = fetcher
        self.dedup = dedup
        self.scoring = scoring
        self.classifier = classifier
        self.repository = repository
        self.batch_size = batch_size

    async def process_feed(self, feed_url: str, source_id: str = "") -> List[Article]:
        try:
            result = await self.fetcher.fetch(feed_url)
            items, skipped = parse_items(result.body)
        except (FetchError, FeedParseError) as e:
            await self._log_scrape(feed_url, "failed", [str(e)])
            raise

        if not items:
            log.info("feed_empty source=%s url=%s skipped=%d", source_id, feed_url, skipped)
            return []

        key = await self.dedup.ensure_initialized(feed_url)
        articles: List[Article] = []
        seen = rejected = 0
        errors: List[str] = []

        for item in items:
            try:
                outcome = await self._process_item(key, item, feed_url, source_id)
            except Exception as e:
                # articles built so far are still persisted below
                log.warning(
                    "item_failed source=%s url=%s err=%s",
                    source_id,
                    item.link or feed_url,
                    str(e),
                )
                errors.append(f"{item.link or feed_url}: {e}")
                continue
            if outcome == "seen":
                seen += 1
            elif outcome == "rejected":
                rejected += 1
            elif isinstance(outcome, Article):
                articles.append(outcome)

        log.info(
            "feed_processed source=%s url=%s items=%d seen=%d rejected=%d skipped=%d "
            "failed=%d admitted=%d",
            source_id,
            feed_url,
            len(items),
            seen,
            rejected,
            skipped,
            len(errors),
            len(articles),
        )

        if articles:
            await self._persist(feed_url, articles, errors)
        elif errors:
            await self._log_scrape(feed_url, "failed", errors)
        return articles

    async def _process_item(self, key: str, item: RawItem, feed_url: str, source_id: str):
        """Return ``"seen"``, ``"rejected"``, an :class:`Article`, or ``None``."""
        item_id = item_identity(item)
        if await self.dedup.seen(key, item_id):
            return "seen"

        content = normalize_content(item)
        score = self.scoring.score(content)
        if not self.scoring.admits(score, SourceType.FEED):
            return "rejected"

        # marked before classification; a classifier failure drops the item
        await self.dedup.mark_seen(key, item_id)

        try:
            labels = await self.classifier.classify(content)
        except ClassificationError as e:
            log.warning(
                "entity_classification_failed source=%s url=%s item=%s err=%s",
                source_id,
                item.link or feed_url,
                item_id,
                str(e),
            )
            return None

        return Article(
            id=item_id,
            title=item.title,
            content=content,
            url=item.link or feed_url,
            source=feed_url,
            publish_date=item.published,
            keywords=tuple(score.keywords),
            relevance_score=score.relevance,
            trend=self.scoring.classify_trend(content),
            entity_labels=tuple(labels),
            is_feed=True,
        )

    async def _persist(
        self, feed_url: str, articles: Sequence[Article], errors: Optional[List[str]] = None
    ) -> None:
        if self.repository is None:
            return
        try:
            await self.repository.process_articles_in_batches(
                list(articles), batch_size=self.batch_size
            )
        except PersistenceError as e:
            log.error("articles_persist_failed url=%s count=%d err=%s", feed_url, len(articles), str(e))
            await self._log_scrape(feed_url, "failed", [str(e)])
            return
        if errors:
            await self._log_scrape(feed_url, "partial", errors)
        else:
            await self._log_scrape(feed_url, "success")

    async def _log_scrape(
        self, feed_url: str, status: str, errors: Optional[List[str]] = None
    ) -> None:
        if self.repository is None:
            return
        try:
            await self.repository.log_scraping(feed_url, status, errors)
        except PersistenceError as e:
            log.error("scrape_log_failed url=%s status=%s err=%s", feed_url, status, str(e))
