"""Weighted keyword scoring, threshold gating and trend classification."""

from __future__ import annotations

import re
from typing import Dict, Iterable, List, Optional, Pattern, Sequence, Tuple

from .keywords import (
    BEARISH_TERMS,
    BULLISH_TERMS,
    CONTENT_THRESHOLDS,
    KEYWORD_WEIGHTS,
    AdmissionThreshold,
    KeywordTable,
)
from .models import KeywordMatch, KeywordWeight, ScoreResult, SourceType
from .normalize import strip_invisible

BULLISH = "bullish"
BEARISH = "bearish"


def word_pattern(keyword: str) -> Pattern[str]:
    """Whole-word, case-insensitive pattern for a literal keyword."""
    return re.compile(r"\b" + re.escape(keyword) + r"\b", re.IGNORECASE)


def count_terms(patterns: Iterable[Pattern[str]], content: str) -> int:
    return sum(len(p.findall(content)) for p in patterns)


class ScoringEngine:
    """Scores normalised content against a keyword table.

    Patterns are compiled once per engine; ``score`` keeps no state between
    calls, so the same content always yields the same result.
    """

    def __init__(
        self,
        weights: Optional[Sequence[KeywordWeight]] = None,
        thresholds: Optional[Dict[SourceType, AdmissionThreshold]] = None,
        bullish: Sequence[str] = BULLISH_TERMS,
        bearish: Sequence[str] = BEARISH_TERMS,
    ):
        weights = KEYWORD_WEIGHTS if weights is None else weights
        self.thresholds = dict(CONTENT_THRESHOLDS if thresholds is None else thresholds)
        self._compiled: List[Tuple[KeywordWeight, Pattern[str]]] = [
            (w, word_pattern(w.keyword)) for w in weights if w.keyword and w.keyword.strip()
        ]
        self._bullish = [word_pattern(t) for t in bullish]
        self._bearish = [word_pattern(t) for t in bearish]

    @classmethod
    def from_table(cls, table: KeywordTable) -> "ScoringEngine":
        return cls(
            weights=table.weights,
            thresholds=table.thresholds,
            bullish=table.bullish,
            bearish=table.bearish,
        )

    def score(self, content: str) -> ScoreResult:
        if not content or not content.strip():
            return ScoreResult()
        text = strip_invisible(content)

        total = 0
        # keyword -> [count, points, category]; first entry fixes points/category
        merged: Dict[str, List] = {}
        categories = set()
        for weight, pattern in self._compiled:
            found = len(pattern.findall(text))
            if not found:
                continue
            total += found * weight.points
            if weight.keyword in merged:
                merged[weight.keyword][0] += found
            else:
                merged[weight.keyword] = [found, weight.points, weight.category]
                if weight.category:
                    categories.add(weight.category)

        matches = tuple(
            KeywordMatch(keyword=kw, count=c, points=p, category=cat)
            for kw, (c, p, cat) in merged.items()
        )
        return ScoreResult(
            total_points=total,
            matches=matches,
            matched_categories=frozenset(categories),
        )

    def admits(self, result: ScoreResult, source_type: SourceType = SourceType.FEED) -> bool:
        threshold = self.thresholds[source_type]
        return (
            result.total_points >= threshold.minimum_score
            and result.unique_keyword_count >= threshold.required_keywords
        )

    def classify_trend(self, content: str) -> str:
        """``bearish`` only when bearish terms strictly outnumber bullish ones.

        Ties, including no signal at all, resolve to ``bullish``.
        """
        text = strip_invisible(content or "")
        bullish = count_terms(self._bullish, text)
        bearish = count_terms(self._bearish, text)
        return BEARISH if bearish > bullish else BULLISH
