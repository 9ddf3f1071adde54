"""Shared fixtures: an on-disk state store, fake network paths, a fake
classifier and builders for feed documents and articles.  Nothing here
touches the network."""

from datetime import datetime, timezone
from xml.sax.saxutils import escape

import pytest
import pytest_asyncio

from market_wire.errors import ClassificationError
from market_wire.fetcher import FetchResult
from market_wire.models import Article, EntityLabel
from market_wire.state_store import SqliteStateStore


@pytest_asyncio.fixture
async def state_store(tmp_path):
    store = SqliteStateStore(tmp_path / "state.sqlite", cache_size=64)
    yield store
    await store.close()


class FakePath:
    """Network path that replays queued outcomes (results or exceptions)."""

    def __init__(self, name, outcomes):
        self.name = name
        self.outcomes = list(outcomes)
        self.calls = []
        self.closed = False

    async def get(self, url):
        self.calls.append(url)
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(outcome, BaseException):
            raise outcome
        if isinstance(outcome, str):
            return FetchResult(body=outcome, final_url=url)
        return outcome

    async def close(self):
        self.closed = True


@pytest.fixture
def fake_path():
    return FakePath


class FakeClassifier:
    def __init__(self, labels=None, error=None):
        self.labels = labels if labels is not None else [
            EntityLabel("JPM", "JPMorgan Chase & Co", 0.82, "Bank exposed to rate moves."),
        ]
        self.error = error
        self.calls = []

    async def classify(self, content):
        self.calls.append(content)
        if self.error is not None:
            raise self.error
        return list(self.labels)


@pytest.fixture
def fake_classifier():
    return FakeClassifier


@pytest.fixture
def failing_classifier():
    return FakeClassifier(error=ClassificationError("model returned garbage"))


def _item_xml(item):
    parts = [f"<title>{escape(item['title'])}</title>"] if item.get("title") is not None else []
    if item.get("link"):
        parts.append(f"<link>{escape(item['link'])}</link>")
    if item.get("guid"):
        parts.append(f"<guid isPermaLink=\"false\">{escape(item['guid'])}</guid>")
    if item.get("description"):
        parts.append(f"<description>{escape(item['description'])}</description>")
    if item.get("pubDate"):
        parts.append(f"<pubDate>{item['pubDate']}</pubDate>")
    for cat in item.get("categories", ()):
        parts.append(f"<category>{escape(cat)}</category>")
    return "<item>" + "".join(parts) + "</item>"


def build_rss(items):
    body = "".join(_item_xml(i) for i in items)
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        '<rss version="2.0"><channel><title>Test feed</title>'
        "<link>https://news.example.com</link><description>t</description>"
        f"{body}</channel></rss>"
    )


@pytest.fixture
def rss():
    return build_rss


def build_article(**overrides):
    fields = dict(
        id="abc123",
        title="Federal Reserve holds interest rate steady as inflation cools",
        content="federal reserve holds interest rate steady as inflation cools",
        url="https://news.example.com/markets/fed-holds",
        source="https://news.example.com/rss",
        publish_date=datetime(2024, 5, 1, 12, 30, tzinfo=timezone.utc),
        keywords=("federal reserve", "interest rate", "inflation"),
        relevance_score=15,
        trend="bullish",
        entity_labels=(
            EntityLabel("JPM", "JPMorgan Chase & Co", 0.82, "Bank exposed to rates."),
            EntityLabel("BAC", "Bank of America", 0.61, "Net interest margin."),
        ),
    )
    fields.update(overrides)
    return Article(**fields)


@pytest.fixture
def make_article():
    return build_article
