import json

import pytest

from market_wire.keywords import (
    BEARISH_TERMS,
    KEYWORD_WEIGHTS,
    build_keyword_weights,
    default_keyword_table,
    load_keyword_table,
)
from market_wire.models import SourceType
from market_wire.scoring import ScoringEngine
from market_wire.sources import (
    NEWS_SOURCES,
    get_feed_sources,
    get_page_only_sources,
    load_sources,
)


def test_builtin_category_points():
    points = {w.category: w.points for w in KEYWORD_WEIGHTS}
    assert points == {
        "high_impact": 10,
        "policy": 7,
        "economic": 5,
        "positions": 3,
        "business": 6,
        "general": 1,
    }


def test_build_keyword_weights_skips_blank_entries():
    weights = build_keyword_weights(
        {"a": {"points": 2, "keywords": ["x", "", "  ", "y"]}}
    )
    assert [(w.keyword, w.points, w.category) for w in weights] == [
        ("x", 2, "a"),
        ("y", 2, "a"),
    ]


def test_missing_table_file_uses_builtin(tmp_path):
    table = load_keyword_table(str(tmp_path / "nope.json"))
    assert table == default_keyword_table()


def test_blank_path_uses_builtin():
    assert load_keyword_table("") == default_keyword_table()


def test_table_override(tmp_path):
    path = tmp_path / "keywords.json"
    path.write_text(
        json.dumps(
            {
                "categories": {"custom": {"points": 8, "keywords": ["widget", "gizmo"]}},
                "thresholds": {"rss": {"minimum_score": 16, "required_keywords": 2}},
                "bullish": ["zoom"],
            }
        )
    )
    table = load_keyword_table(str(path))
    assert [w.keyword for w in table.weights] == ["widget", "gizmo"]
    assert table.thresholds[SourceType.FEED].minimum_score == 16
    # untouched sections keep their defaults
    assert table.thresholds[SourceType.PAGE].minimum_score == 60
    assert table.bearish == BEARISH_TERMS

    engine = ScoringEngine.from_table(table)
    result = engine.score("new widget and gizmo line")
    assert result.total_points == 16
    assert engine.admits(result)
    assert engine.classify_trend("shares zoom") == "bullish"


def test_malformed_table_raises(tmp_path):
    path = tmp_path / "keywords.json"
    path.write_text("{not json")
    with pytest.raises(json.JSONDecodeError):
        load_keyword_table(str(path))


class TestSources:
    def test_page_only_sources_are_split_out(self):
        feed_ids = {s.id for s in get_feed_sources()}
        page_ids = {s.id for s in get_page_only_sources()}
        assert "cnn" in page_ids
        assert "cnn" not in feed_ids
        assert feed_ids | page_ids == {s.id for s in NEWS_SOURCES}

    def test_every_feed_source_has_endpoints(self):
        for source in get_feed_sources():
            assert source.feed_urls
            assert all(u.startswith("http") for u in source.feed_urls)

    def test_load_sources_from_file(self, tmp_path):
        path = tmp_path / "sources.json"
        path.write_text(
            json.dumps(
                [
                    {"id": "wire", "feed_urls": ["https://wire.example.com/rss"]},
                    {"id": "paper", "has_feed": False},
                ]
            )
        )
        sources = load_sources(str(path))
        assert [s.id for s in sources] == ["wire", "paper"]
        assert sources[0].name == "wire"
        assert sources[0].feed_urls == ("https://wire.example.com/rss",)
        assert [s.id for s in get_feed_sources(sources)] == ["wire"]

    def test_missing_sources_file_uses_builtin(self, tmp_path):
        assert load_sources(str(tmp_path / "none.json")) == NEWS_SOURCES
