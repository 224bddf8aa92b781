"""Per-criterion similarity scores.

Pure functions comparing two values and returning a score in [0.0, 1.0]:

- Date proximity (bank settlement usually takes 0-3 days)
- Amount proximity (relative difference against the larger amount)
- Text similarity (1 - normalized Levenshtein distance, via rapidfuzz)

Malformed inputs never raise: an unparseable date or a non-numeric amount
scores 0.0 for that criterion.
"""

from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from rapidfuzz.distance import Levenshtein

from .config import DEFAULT_AMOUNT_BUCKETS, DEFAULT_DATE_BUCKETS, MatchingConfig
from .domain.value_objects import ScoreBreakdown
from .utils.coercion import parse_date, to_decimal

DEFAULT_WEIGHTS: tuple[float, float, float] = (0.4, 0.5, 0.1)


def days_apart(d1: Any, d2: Any) -> int | None:
    """Absolute number of days between two dates, None if either is unparseable."""
    first = parse_date(d1)
    second = parse_date(d2)
    if first is None or second is None:
        return None
    return abs((first - second).days)


def date_score(
    d1: Any,
    d2: Any,
    buckets: Sequence[tuple[int, float]] = DEFAULT_DATE_BUCKETS,
) -> float:
    """Score date proximity.

    Default scoring:
    - Same day → 1.0
    - ±1 day → 0.9
    - ±3 days → 0.7
    - Further apart, or unparseable → 0.0

    Args:
        d1: First date (date, datetime or string)
        d2: Second date
        buckets: Ascending (max days apart, score) pairs

    Returns:
        Date score (0.0-1.0)
    """
    diff = days_apart(d1, d2)
    if diff is None:
        return 0.0

    for max_days, score in buckets:
        if diff <= max_days:
            return score
    return 0.0


def amount_difference_percent(a1: Any, a2: Any) -> Decimal | None:
    """Relative difference of the absolute amounts, in percent of the larger one."""
    first = to_decimal(a1)
    second = to_decimal(a2)
    if first is None or second is None:
        return None

    first, second = abs(first), abs(second)
    larger = max(first, second)
    if larger == 0:
        return Decimal("0")
    return abs(first - second) / larger * 100


def amount_score(
    a1: Any,
    a2: Any,
    buckets: Sequence[tuple[float, float]] = DEFAULT_AMOUNT_BUCKETS,
) -> float:
    """Score amount proximity on absolute values.

    Default scoring:
    - Exact match → 1.0
    - Within 1% → 0.95
    - Within 5% → 0.7
    - Beyond, or non-numeric → 0.0

    Zero never matches anything but zero.

    Args:
        a1: First amount
        a2: Second amount
        buckets: Ascending (max % difference, score) pairs

    Returns:
        Amount score (0.0-1.0)
    """
    pct_diff = amount_difference_percent(a1, a2)
    if pct_diff is None:
        return 0.0
    if pct_diff == 0:
        return 1.0
    if to_decimal(a1) == 0 or to_decimal(a2) == 0:
        return 0.0

    for max_pct, score in buckets:
        if pct_diff <= Decimal(str(max_pct)):
            return score
    return 0.0


def text_score(s1: str | None, s2: str | None) -> float:
    """Score text similarity as 1 - normalized Levenshtein distance.

    Both strings are trimmed and lowercased first. Two empty strings are
    identical (1.0).
    """
    first = str(s1 or "").strip().lower()
    second = str(s2 or "").strip().lower()
    if not first and not second:
        return 1.0
    return 1.0 - Levenshtein.normalized_distance(first, second)


def weighted_score(
    date_s: float,
    amount_s: float,
    text_s: float,
    weights: tuple[float, float, float] = DEFAULT_WEIGHTS,
) -> float:
    """Combine the three criteria into one confidence.

    Default formula: 0.4·date + 0.5·amount + 0.1·text. Rounded to 6 decimals
    so that classification against thresholds is stable, and clamped to
    [0.0, 1.0].
    """
    date_weight, amount_weight, text_weight = weights
    confidence = date_s * date_weight + amount_s * amount_weight + text_s * text_weight
    return round(max(0.0, min(1.0, confidence)), 6)


@dataclass(frozen=True)
class SimilarityScorer:
    """Scoring functions bound to one configuration's bands and weights."""

    date_buckets: tuple[tuple[int, float], ...] = DEFAULT_DATE_BUCKETS
    amount_buckets: tuple[tuple[float, float], ...] = DEFAULT_AMOUNT_BUCKETS
    weights: tuple[float, float, float] = DEFAULT_WEIGHTS

    @classmethod
    def from_config(cls, config: MatchingConfig) -> "SimilarityScorer":
        return cls(
            date_buckets=config.date_buckets,
            amount_buckets=config.amount_buckets,
            weights=config.weights,
        )

    def date(self, d1: Any, d2: Any) -> float:
        return date_score(d1, d2, self.date_buckets)

    def amount(self, a1: Any, a2: Any) -> float:
        return amount_score(a1, a2, self.amount_buckets)

    def text(self, s1: str | None, s2: str | None) -> float:
        return text_score(s1, s2)

    def combine(self, date_s: float, amount_s: float, text_s: float) -> ScoreBreakdown:
        """Build the full breakdown with the weighted confidence."""
        return ScoreBreakdown(
            date_score=date_s,
            amount_score=amount_s,
            description_score=text_s,
            confidence=weighted_score(date_s, amount_s, text_s, self.weights),
        )
