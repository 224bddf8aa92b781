"""Base interface shared by the two matchers.

Both matchers score every left-hand record against every still-available
right-hand record, keep the best candidate, and classify it with the same
thresholds. Assignment is greedy in input order: a record consumed by one
match is never offered to a later one.
"""

from abc import ABC, abstractmethod
from collections.abc import Iterable, Sequence
from typing import Any, TypeVar

from ..config import MatchingConfig, get_matching_config
from ..domain.enums import MatchClassification
from ..domain.value_objects import ScoreBreakdown
from ..scoring import SimilarityScorer

T = TypeVar("T")


def classify(
    confidence: float,
    auto_threshold: float = 0.8,
    suggested_threshold: float = 0.6,
) -> MatchClassification:
    """Three-way split shared by bank reconciliation and invoice matching.

    - confidence ≥ auto_threshold → AUTO
    - suggested_threshold ≤ confidence < auto_threshold → SUGGESTED
    - below → UNMATCHED
    """
    if confidence >= auto_threshold:
        return MatchClassification.AUTO
    if confidence >= suggested_threshold:
        return MatchClassification.SUGGESTED
    return MatchClassification.UNMATCHED


def best_candidate(
    scored: Iterable[tuple[T, ScoreBreakdown]],
) -> tuple[T, ScoreBreakdown] | None:
    """Highest-confidence candidate; ties go to the earliest one in input order."""
    best: tuple[T, ScoreBreakdown] | None = None
    for candidate, scores in scored:
        if best is None or scores.confidence > best[1].confidence:
            best = (candidate, scores)
    return best


class BaseMatcher(ABC):
    """Abstract base class for the matchers.

    Subclasses implement match(), which must be a pure function of its inputs
    and of the configuration: no state survives between calls.
    """

    def __init__(self, config: MatchingConfig | None = None) -> None:
        self.config = config or get_matching_config()
        self.scorer = SimilarityScorer.from_config(self.config)

    @abstractmethod
    def match(self, left: Sequence[Any], right: Sequence[Any]) -> Any:
        """Pair records of ``left`` with records of ``right``."""

    def classify(self, confidence: float) -> MatchClassification:
        return classify(
            confidence,
            auto_threshold=self.config.auto_threshold,
            suggested_threshold=self.config.suggested_threshold,
        )

    def _build_match_reason(self, scores: ScoreBreakdown, prefix: str) -> str:
        """Human-readable explanation listing the strong criteria."""
        components = []
        if scores.amount_score >= 0.7:
            components.append(f"amount {scores.amount_score:.0%}")
        if scores.date_score >= 0.7:
            components.append(f"date {scores.date_score:.0%}")
        if scores.description_score >= 0.7:
            components.append(f"desc {scores.description_score:.0%}")

        if components:
            return f"{prefix} ({', '.join(components)}) → {scores.confidence:.0%}"
        return f"{prefix}: {scores.confidence:.0%} weighted score"

    def __repr__(self) -> str:
        return (
            f"<{self.__class__.__name__}("
            f"weights=[date:{self.config.date_weight:.0%}, "
            f"amt:{self.config.amount_weight:.0%}, "
            f"text:{self.config.text_weight:.0%}], "
            f"auto={self.config.auto_threshold:.0%}, "
            f"suggested={self.config.suggested_threshold:.0%})>"
        )
