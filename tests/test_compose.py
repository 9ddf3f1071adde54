import random

import pytest

from market_wire.compose import (
    TEMPLATES,
    Compositor,
    Template,
    clean_hashtags,
    fit_hashtags,
    ticker_block_length,
    truncate_title,
)
from market_wire.models import EntityLabel

URL = "https://news.example.com/markets/fed-holds"


def _template(name):
    return next(t for t in TEMPLATES if t.name == name)


def _many_labels(n):
    return tuple(
        EntityLabel(f"TK{i:02d}", f"Company {i}", round(0.95 - i * 0.05, 2)) for i in range(n)
    )


class TestDecline:
    def test_no_labels(self, make_article):
        assert Compositor().compose(make_article(entity_labels=())) is None

    def test_primary_unknown(self, make_article):
        labels = (EntityLabel("UNKNOWN", "UNKNOWN", 0.1),)
        assert Compositor().compose(make_article(entity_labels=labels)) is None

    def test_unknown_only_matters_when_primary(self, make_article):
        labels = (
            EntityLabel("XOM", "Exxon Mobil", 0.7),
            EntityLabel("UNKNOWN", "UNKNOWN", 0.1),
        )
        assert Compositor().compose(make_article(entity_labels=labels)) is not None

    def test_labels_argument_overrides_article(self, make_article):
        text = Compositor().compose(make_article(), labels=())
        assert text is None


def test_alert_layout(make_article):
    compositor = Compositor(templates=[_template("alert")])
    text = compositor.compose(make_article())
    assert text == (
        "🚨 Federal Reserve holds interest rate steady as inflation cools\n"
        "📊 $JPM 82% | $BAC 61%\n"
        "🎯 15/100\n\n"
        f"{URL}\n\n"
        "#federalreserve #interestrate #inflation"
    )


def test_percent_rounds_half_up(make_article):
    labels = (EntityLabel("AAA", "A Corp", 0.125),)
    text = Compositor(templates=[_template("alert")]).compose(
        make_article(entity_labels=labels)
    )
    assert "$AAA 13%" in text


@pytest.mark.parametrize("template", TEMPLATES, ids=lambda t: t.name)
def test_every_template_fits_and_links(template, make_article):
    text = Compositor(templates=[template]).compose(make_article())
    assert text is not None
    assert len(text) <= 280
    assert URL in text


def test_output_never_exceeds_limit(make_article):
    long_title = " ".join(["Sweeping"] + ["regulatory crackdown on lenders"] * 20)
    article = make_article(
        title=long_title,
        entity_labels=_many_labels(9),
        keywords=tuple(f"keyword number {i}" for i in range(15)),
        relevance_score=100,
    )
    for seed in range(100):
        text = Compositor(rng=random.Random(seed)).compose(article)
        assert text is not None
        assert len(text) <= 280
        assert article.url in text


def test_fallback_when_no_template_fits(make_article):
    oversized = Template("oversized", 30, lambda a: "x" * 400)
    text = Compositor(templates=[oversized]).compose(make_article())
    assert text.startswith("$JPM 82% • Federal Reserve holds interest rate")
    assert URL in text
    assert len(text) <= 280


def test_fallback_with_very_long_url(make_article):
    url = "https://news.example.com/" + "a" * 300
    text = Compositor().compose(make_article(url=url))
    assert text is not None
    assert len(text) <= 280
    assert text.startswith("$JPM")


def test_fallback_with_long_title(make_article):
    oversized = Template("oversized", 30, lambda a: "x" * 400)
    article = make_article(title="Markets " * 80)
    text = Compositor(templates=[oversized]).compose(article)
    assert len(text) <= 280
    assert "..." in text


def test_same_seed_same_output(make_article):
    article = make_article()
    a = Compositor(rng=random.Random(11)).compose(article)
    b = Compositor(rng=random.Random(11)).compose(article)
    assert a == b


def test_candidates_respect_retry_count():
    five = Compositor(retries=5, rng=random.Random(3)).candidates()
    assert len(five) == 5
    assert len({t.name for t in five}) == 5
    every = Compositor(retries=50, rng=random.Random(3)).candidates()
    assert sorted(t.name for t in every) == sorted(t.name for t in TEMPLATES)


def test_primary_is_highest_confidence(make_article):
    labels = (
        EntityLabel("BAC", "Bank of America", 0.4),
        EntityLabel("JPM", "JPMorgan Chase & Co", 0.9),
    )
    oversized = Template("oversized", 30, lambda a: "x" * 400)
    text = Compositor(templates=[oversized]).compose(make_article(entity_labels=labels))
    assert text.startswith("$JPM 90%")


class TestTruncateTitle:
    def test_short_title_unchanged(self):
        assert truncate_title("Short title", 50) == "Short title"

    def test_cuts_at_word_boundary(self):
        title = "The quick brown fox jumps over the lazy dog"
        assert truncate_title(title, 20) == "The quick brown fox..."

    def test_cuts_mid_word_when_boundary_too_early(self):
        assert truncate_title("A Supercalifragilisticexpialidocious", 10) == "A Supercal..."


class TestHashtags:
    def test_clean_hashtags(self):
        assert clean_hashtags(["federal reserve", "#gdp", "  ", "rate  cut"]) == [
            "#federalreserve",
            "#gdp",
            "#ratecut",
        ]

    def test_fit_drops_from_the_end(self):
        assert fit_hashtags(["#aaaa", "#bbbb", "#cccc"], 11) == "#aaaa #bbbb"
        assert fit_hashtags(["#aaaa", "#bbbb"], 9) == "#aaaa"

    def test_fit_needs_minimum_space(self):
        assert fit_hashtags(["#a"], 4) == ""
        assert fit_hashtags([], 100) == ""

    def test_hashtags_dropped_when_no_room(self, make_article):
        article = make_article(keywords=("x" * 300,))
        text = Compositor(templates=[_template("alert")]).compose(article)
        assert "#" not in text
        assert len(text) <= 280


def test_ticker_block_length():
    labels = (
        EntityLabel("JPM", "JPMorgan", 0.82),
        EntityLabel("BAC", "Bank of America", 0.61),
        EntityLabel("C", "Citigroup", 0.5),
        EntityLabel("WFC", "Wells Fargo", 0.4),
    )
    assert ticker_block_length(labels) == len("$JPM 82% | $BAC 61% | $C 50%")
