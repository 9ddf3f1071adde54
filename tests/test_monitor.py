from unittest.mock import AsyncMock, Mock

import pytest

from market_wire.dedup import DedupGate
from market_wire.errors import OriginRejectedError, PersistenceError
from market_wire.fetcher import ResilientFetcher
from market_wire.monitor import FeedMonitor
from market_wire.normalize import feed_key, item_identity, parse_items
from market_wire.repository import ArticleRepository
from market_wire.scoring import ScoringEngine

FEED_URL = "https://news.example.com/business/rss"

ADMITTED = {
    "title": "Federal Reserve holds interest rate steady",
    "link": "https://news.example.com/fed-holds",
    "guid": "story-1",
    "description": "<p>Officials said <b>inflation</b> cooled.</p>",
    "pubDate": "Wed, 01 May 2024 12:30:00 GMT",
}
REJECTED = {
    "title": "Fed hikes rates amid inflation fears",
    "link": "https://news.example.com/fed-hikes",
    "guid": "story-2",
    "pubDate": "Wed, 01 May 2024 12:45:00 GMT",
}


@pytest.fixture
def body(rss):
    return rss([ADMITTED, REJECTED])


@pytest.fixture
def repo(tmp_path):
    r = ArticleRepository(tmp_path / "articles.sqlite")
    yield r
    r.close()


def _monitor(fake_path, body, state_store, classifier, repository=None):
    fetcher = ResilientFetcher([fake_path("primary", [body])])
    return FeedMonitor(fetcher, DedupGate(state_store), ScoringEngine(), classifier, repository)


@pytest.mark.asyncio
async def test_admits_scored_item_and_rejects_the_rest(
    fake_path, body, state_store, fake_classifier, repo
):
    classifier = fake_classifier()
    monitor = _monitor(fake_path, body, state_store, classifier, repo)

    articles = await monitor.process_feed(FEED_URL, source_id="example")

    assert len(articles) == 1
    article = articles[0]
    assert article.title == ADMITTED["title"]
    assert article.url == ADMITTED["link"]
    assert article.source == FEED_URL
    assert article.relevance_score == 15
    assert set(article.keywords) == {"federal reserve", "interest rate", "inflation"}
    assert article.trend == "bullish"
    assert [lab.label for lab in article.entity_labels] == ["JPM"]
    assert article.is_feed
    assert len(classifier.calls) == 1
    assert "officials said inflation cooled." in classifier.calls[0]

    rows = await repo.recent_articles()
    assert [r["url"] for r in rows] == [ADMITTED["link"]]
    logs = await repo.scraping_logs(source=FEED_URL)
    assert [entry["status"] for entry in logs] == ["success"]


@pytest.mark.asyncio
async def test_only_admitted_items_are_marked_seen(fake_path, body, state_store, fake_classifier):
    monitor = _monitor(fake_path, body, state_store, fake_classifier())
    await monitor.process_feed(FEED_URL)

    items, _ = parse_items(body)
    ids = {i.title: item_identity(i) for i in items}
    key = feed_key(FEED_URL)
    assert await state_store.sismember(key, ids[ADMITTED["title"]])
    assert not await state_store.sismember(key, ids[REJECTED["title"]])


@pytest.mark.asyncio
async def test_second_poll_emits_nothing_new(fake_path, body, state_store, fake_classifier):
    classifier = fake_classifier()
    monitor = _monitor(fake_path, body, state_store, classifier)
    assert len(await monitor.process_feed(FEED_URL)) == 1
    assert await monitor.process_feed(FEED_URL) == []
    assert len(classifier.calls) == 1


@pytest.mark.asyncio
async def test_classifier_failure_skips_item(fake_path, body, state_store, failing_classifier, fake_classifier):
    monitor = _monitor(fake_path, body, state_store, failing_classifier)
    assert await monitor.process_feed(FEED_URL) == []

    # the item was marked before classification and is not retried
    monitor.classifier = fake_classifier()
    assert await monitor.process_feed(FEED_URL) == []


@pytest.mark.asyncio
async def test_fetch_failure_is_logged_and_raised(fake_path, state_store, fake_classifier, repo):
    fetcher = ResilientFetcher([fake_path("primary", [OriginRejectedError(FEED_URL, 503)])])
    monitor = FeedMonitor(fetcher, DedupGate(state_store), ScoringEngine(), fake_classifier(), repo)
    with pytest.raises(OriginRejectedError):
        await monitor.process_feed(FEED_URL)
    logs = await repo.scraping_logs(source=FEED_URL)
    assert logs[0]["status"] == "failed"
    assert "503" in logs[0]["errors"][0]


@pytest.mark.asyncio
async def test_empty_feed(fake_path, rss, state_store, fake_classifier):
    monitor = _monitor(fake_path, rss([]), state_store, fake_classifier())
    assert await monitor.process_feed(FEED_URL) == []
    assert not await state_store.exists(feed_key(FEED_URL))


@pytest.mark.asyncio
async def test_persistence_failure_still_returns_articles(
    fake_path, body, state_store, fake_classifier
):
    repository = Mock()
    repository.process_articles_in_batches = AsyncMock(side_effect=PersistenceError("disk full"))
    repository.log_scraping = AsyncMock()
    monitor = _monitor(fake_path, body, state_store, fake_classifier(), repository)

    articles = await monitor.process_feed(FEED_URL)
    assert len(articles) == 1
    repository.log_scraping.assert_awaited_once_with(FEED_URL, "failed", ["disk full"])


@pytest.mark.asyncio
async def test_link_falls_back_to_feed_url(fake_path, rss, state_store, fake_classifier):
    item = dict(ADMITTED)
    del item["link"]
    monitor = _monitor(fake_path, rss([item]), state_store, fake_classifier())
    articles = await monitor.process_feed(FEED_URL)
    assert articles[0].url == FEED_URL


class FlakyStore:
    """Delegates to a real store but fails one ``sismember`` call."""

    def __init__(self, store, fail_on_call):
        self.store = store
        self.fail_on_call = fail_on_call
        self.sismember_calls = 0

    def __getattr__(self, name):
        return getattr(self.store, name)

    async def sismember(self, key, member):
        self.sismember_calls += 1
        if self.sismember_calls == self.fail_on_call:
            raise ConnectionError("redis blip")
        return await self.store.sismember(key, member)


@pytest.mark.asyncio
async def test_store_error_on_one_item_keeps_earlier_articles(
    fake_path, rss, state_store, fake_classifier, repo
):
    later = dict(ADMITTED, guid="story-3", link="https://news.example.com/fed-holds-again")
    body = rss([ADMITTED, REJECTED, later])
    store = FlakyStore(state_store, fail_on_call=2)
    fetcher = ResilientFetcher([fake_path("primary", [body])])
    monitor = FeedMonitor(fetcher, DedupGate(store), ScoringEngine(), fake_classifier(), repo)

    articles = await monitor.process_feed(FEED_URL)

    assert [a.url for a in articles] == [ADMITTED["link"], later["link"]]
    rows = await repo.recent_articles()
    assert {r["url"] for r in rows} == {ADMITTED["link"], later["link"]}
    logs = await repo.scraping_logs(source=FEED_URL)
    assert logs[0]["status"] == "partial"
    assert "redis blip" in logs[0]["errors"][0]
