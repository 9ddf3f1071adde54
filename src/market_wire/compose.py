"""Render admitted articles into length-bounded posts.

Each template has a rough fixed overhead (emoji, labels, separators) used to
budget the title before rendering.  Templates are tried in a random order;
the first rendering that fits gets as many keyword hashtags as the leftover
space allows.  If none fit, a minimal fallback is used, clamped so that
length alone never prevents a post.
"""

from __future__ import annotations

import random
import re
from dataclasses import dataclass, replace
from typing import Callable, List, Optional, Sequence

from .logging_utils import get_logger
from .models import Article, EntityLabel

log = get_logger("compose")

TWEET_LIMIT = 280
ELLIPSIS = "..."
FALLBACK_OVERHEAD = 30
MIN_TITLE = 30
MIN_FALLBACK_TITLE = 40

_WS_RE = re.compile(r"\s+")


def _pct(confidence: float) -> int:
    # half-up rounding; round() would send 0.125 -> 12
    return int(confidence * 100 + 0.5)


def _tag(label: EntityLabel) -> str:
    return f"${label.label}"


def _tag_pct(label: EntityLabel) -> str:
    return f"${label.label} {label.percent}%"


def _primary(labels: Sequence[EntityLabel]) -> EntityLabel:
    # first label wins ties
    best = labels[0]
    for lab in labels[1:]:
        if lab.confidence > best.confidence:
            best = lab
    return best


def _primary_index(labels: Sequence[EntityLabel]) -> int:
    return list(labels).index(_primary(labels))


# --- templates --------------------------------------------------------------


def _alert(a: Article) -> str:
    stocks = " | ".join(_tag_pct(s) for s in a.entity_labels)
    return f"🚨 {a.title}\n📊 {stocks}\n🎯 {a.relevance_score}/100\n\n{a.url}"


def _trend_headline(a: Article) -> str:
    labels = a.entity_labels
    idx = _primary_index(labels)
    primary = labels[idx]
    others = [s for i, s in enumerate(labels) if i != idx]
    icon = "📈" if a.trend == "bullish" else "📉"
    ripples = ""
    if others:
        ripples = "\n\n⚡ " + " ".join(_tag_pct(s) for s in others)
    return (
        f"{icon} {_tag(primary)} | {a.trend.upper()}\n\n{a.title}{ripples}"
        f"\n\n🎯 {min(a.relevance_score, 100)}/100\n\n{a.url}"
    )


def _terminal(a: Article) -> str:
    labels = a.entity_labels
    top = _primary(labels)
    others = " ".join(_tag(s) for s in labels[1:3])
    more = f"+{len(labels) - 3}" if len(labels) > 3 else ""
    return (
        f"[ALERT] {a.title}\n\nPRIMARY: {_tag_pct(top)}\nRELATED: {others} {more}"
        f"\nIMPACT: {a.relevance_score}/100\n\n{a.url}"
    )


def _news_brief(a: Article) -> str:
    tickers = ", ".join(_tag(s) for s in a.entity_labels[:3])
    return (
        f"📰 {a.title}\n\nAffected equities: {tickers}\nMarket view: {a.trend}"
        f"\nRelevance: {a.relevance_score}/100\n\n{a.url}"
    )


def _flow_alert(a: Article) -> str:
    emoji = "🐂" if a.trend == "bullish" else "🐻"
    primary = _primary(a.entity_labels)
    return (
        f"{emoji} FLOW DETECTED\n\n{a.title}\n\n{_tag(primary)} • "
        f"{primary.percent}% confidence\n{len(a.entity_labels)} tickers flagged"
        f" • Score: {a.relevance_score}\n\n{a.url}"
    )


def _analysis_brief(a: Article) -> str:
    high = [s for s in a.entity_labels if s.confidence >= 0.7]
    med = [s for s in a.entity_labels if 0.4 <= s.confidence < 0.7]
    if a.relevance_score >= 80:
        rating = "STRONG"
    elif a.relevance_score >= 60:
        rating = "MODERATE"
    else:
        rating = "WATCH"
    stocks = " ".join(_tag(s) for s in high[:2] + med[:1])
    return (
        f"📊 {rating} IMPACT\n\n{a.title}\n\nTickers: {stocks}"
        f"\nAnalysis score: {a.relevance_score}/100\n\n{a.url}"
    )


def _sentiment_watch(a: Article) -> str:
    mood = "🟢 BULLISH WATCH" if a.trend == "bullish" else "🔴 BEARISH WATCH"
    stocks = " ".join(_tag(s) for s in a.entity_labels[:4])
    return (
        f"{mood}\n\n{a.title}\n\nWatching: {stocks}"
        f"\nCommunity relevance: {a.relevance_score}\n\n{a.url}"
    )


def _position_alert(a: Article) -> str:
    lead = _primary(a.entity_labels)
    supporting = ", ".join(
        f"{_tag(s)} ({s.percent}%)" for s in a.entity_labels[1:3]
    )
    return (
        f"⚠️ POSITION WATCH\n\n{a.title}\n\nLead: {_tag_pct(lead)}"
        f"\nSecondary: {supporting}\n\n{a.url}"
    )


def _data_signal(a: Article) -> str:
    labels = a.entity_labels
    avg = _pct(sum(s.confidence for s in labels) / len(labels))
    tickers = " ".join(_tag(s) for s in labels)
    return (
        f"📡 SIGNAL: {a.trend.upper()}\n\n{a.title}\n\n{tickers}"
        f"\nAvg confidence: {avg}% | Score: {a.relevance_score}\n\n{a.url}"
    )


@dataclass(frozen=True)
class Template:
    name: str
    overhead: int
    render: Callable[[Article], str]


TEMPLATES: List[Template] = [
    Template("alert", 30, _alert),
    Template("trend_headline", 50, _trend_headline),
    Template("terminal", 60, _terminal),
    Template("news_brief", 50, _news_brief),
    Template("flow_alert", 70, _flow_alert),
    Template("analysis_brief", 50, _analysis_brief),
    Template("sentiment_watch", 50, _sentiment_watch),
    Template("position_alert", 60, _position_alert),
    Template("data_signal", 50, _data_signal),
]


# --- helpers ----------------------------------------------------------------


def truncate_title(title: str, max_length: int) -> str:
    """Cut ``title`` to ``max_length`` and append an ellipsis.

    Cuts at the last space when that keeps more than 70% of the allowed
    length, otherwise mid-word.
    """
    if len(title) <= max_length:
        return title
    cut = title[:max_length]
    last_space = cut.rfind(" ")
    if last_space > max_length * 0.7:
        return cut[:last_space] + ELLIPSIS
    return cut + ELLIPSIS


def clean_hashtags(keywords: Sequence[str]) -> List[str]:
    tags = []
    for k in keywords:
        k = _WS_RE.sub("", k.strip())
        if not k:
            continue
        tags.append(k if k.startswith("#") else f"#{k}")
    return tags


def fit_hashtags(hashtags: Sequence[str], available: int) -> str:
    """Space-joined hashtags, dropping from the end until they fit."""
    if not hashtags or available < 5:
        return ""
    tags = list(hashtags)
    result = " ".join(tags)
    while len(result) > available and tags:
        tags.pop()
        result = " ".join(tags)
    return result


def ticker_block_length(labels: Sequence[EntityLabel], top_n: int = 3) -> int:
    return len(" | ".join(_tag_pct(s) for s in labels[:top_n]))


class Compositor:
    """Stateless per call; ``rng`` only drives template order."""

    def __init__(
        self,
        limit: int = TWEET_LIMIT,
        retries: int = 5,
        rng: Optional[random.Random] = None,
        templates: Optional[Sequence[Template]] = None,
    ):
        self.limit = limit
        self.retries = retries
        self.rng = rng or random.Random()
        self.templates = list(TEMPLATES if templates is None else templates)

    def _with_hashtags(self, text: str, hashtags: Sequence[str]) -> str:
        tags = fit_hashtags(hashtags, self.limit - len(text) - 2)
        if tags:
            return f"{text}\n\n{tags}"
        return text

    def candidates(self) -> List[Template]:
        order = list(self.templates)
        self.rng.shuffle(order)
        return order[: self.retries]

    def compose(
        self,
        article: Article,
        labels: Optional[Sequence[EntityLabel]] = None,
    ) -> Optional[str]:
        """Return post text no longer than ``limit``, or None.

        None means there is nothing worth posting: no entity labels, or the
        best one is the UNKNOWN sentinel.
        """
        labels = tuple(article.entity_labels if labels is None else labels)
        if not labels or _primary(labels).is_unknown:
            log.info("compose_declined reason=no_entities id=%s", article.id)
            return None
        article = replace(article, entity_labels=labels)

        hashtags = clean_hashtags(article.keywords)
        url_space = len(article.url) + 4
        ticker_space = ticker_block_length(labels)
        min_hashtag_space = min(20, len(" ".join(hashtags)))

        for tpl in self.candidates():
            max_title = (
                self.limit - url_space - ticker_space - tpl.overhead - min_hashtag_space
            )
            title = truncate_title(article.title, max(max_title, MIN_TITLE))
            text = tpl.render(replace(article, title=title))
            if len(text) <= self.limit:
                log.debug("compose_template_fit template=%s len=%d", tpl.name, len(text))
                return self._with_hashtags(text, hashtags)
            log.debug("compose_template_overflow template=%s len=%d", tpl.name, len(text))

        return self._fallback(article, labels, hashtags, url_space)

    def _fallback(
        self,
        article: Article,
        labels: Sequence[EntityLabel],
        hashtags: Sequence[str],
        url_space: int,
    ) -> str:
        primary = _primary(labels)
        prefix = f"{_tag_pct(primary)} • "
        suffix = f"\n\n{article.url}"
        budget = self.limit - url_space - FALLBACK_OVERHEAD - 20
        title = truncate_title(article.title, max(budget, MIN_FALLBACK_TITLE))
        text = prefix + title + suffix

        if len(text) > self.limit:
            # very long URL: give the title whatever is left, else drop it
            room = self.limit - len(prefix) - len(suffix) - len(ELLIPSIS)
            if room > 0:
                text = prefix + article.title[:room] + ELLIPSIS + suffix
            else:
                text = (prefix.rstrip(" •") + suffix)[: self.limit]
        log.info("compose_fallback id=%s len=%d", article.id, len(text))
        return self._with_hashtags(text, hashtags)
