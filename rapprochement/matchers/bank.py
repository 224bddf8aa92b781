"""Bank reconciliation: manual transactions against bank-imported ones.

Confidence = 0.4·date + 0.5·amount + 0.1·description (configurable weights).
Amount is the strongest and least noisy signal; bank labels are often
truncated, so the description only breaks ties.
"""

from collections.abc import Mapping, Sequence
from typing import Any

from ..domain.enums import MatchClassification, TransactionSource, TransactionStatus
from ..domain.models import Transaction, as_transaction
from ..domain.value_objects import (
    BankReconciliationResult,
    MatchValidation,
    ReconciliationMatch,
    ScoreBreakdown,
)
from ..scoring import days_apart
from ..utils.logging import get_logger
from .base import BaseMatcher, best_candidate

logger = get_logger(__name__)

_EXCLUDED_STATUSES = (TransactionStatus.RECONCILED, TransactionStatus.DUPLICATE)


def _available(
    records: Sequence[Transaction | Mapping[str, Any]],
    wrong_source: TransactionSource,
) -> list[Transaction]:
    """Transactions still open for reconciliation on one side.

    Records without a source are accepted on either side.
    """
    return [
        tx
        for tx in map(as_transaction, records)
        if tx.status not in _EXCLUDED_STATUSES and tx.source != wrong_source
    ]


class BankReconciliationMatcher(BaseMatcher):
    """Pair each manual transaction with its best still-unmatched bank transaction.

    Algorithm:
    1. Drop transactions already reconciled (or flagged duplicate)
    2. For each manual transaction, in input order:
       a. Score it against every bank transaction not consumed yet
       b. Keep the best candidate (ties → earliest bank transaction)
       c. confidence ≥ auto_threshold → auto match; ≥ suggested_threshold →
          suggestion; otherwise the manual transaction stays unmatched
       d. A matched bank transaction is consumed and never offered again
    3. Bank transactions never consumed are returned as unmatched

    Example:
        >>> matcher = BankReconciliationMatcher()
        >>> result = matcher.match(manual_transactions, bank_transactions)
        >>> [m.bank_transaction.id for m in result.auto_matches]
    """

    def match(
        self,
        left: Sequence[Transaction | Mapping[str, Any]],
        right: Sequence[Transaction | Mapping[str, Any]],
    ) -> BankReconciliationResult:
        """Reconcile manual transactions (left) with bank transactions (right).

        Args:
            left: Manual transactions
            right: Bank-imported transactions

        Returns:
            BankReconciliationResult with auto matches, suggestions and leftovers
        """
        manual = _available(left, TransactionSource.BANK_IMPORT)
        bank = _available(right, TransactionSource.MANUAL)

        auto_matches: list[ReconciliationMatch] = []
        suggested_matches: list[ReconciliationMatch] = []
        unmatched_manual: list[Transaction] = []
        matched_bank_ids: set[str] = set()

        for manual_tx in manual:
            candidates = (
                (bank_tx, self.score_pair(manual_tx, bank_tx))
                for bank_tx in bank
                if bank_tx.id not in matched_bank_ids
            )
            best = best_candidate(candidates)
            if best is None:
                unmatched_manual.append(manual_tx)
                continue

            bank_tx, scores = best
            classification = self.classify(scores.confidence)
            if classification == MatchClassification.UNMATCHED:
                unmatched_manual.append(manual_tx)
                continue

            match = ReconciliationMatch(
                manual_transaction=manual_tx,
                bank_transaction=bank_tx,
                scores=scores,
                classification=classification,
                match_reason=self._build_match_reason(scores, "Bank reconciliation"),
            )
            if classification == MatchClassification.AUTO:
                auto_matches.append(match)
            else:
                suggested_matches.append(match)
            matched_bank_ids.add(bank_tx.id)

        unmatched_bank = [tx for tx in bank if tx.id not in matched_bank_ids]

        logger.info(
            "bank_reconciliation_completed",
            manual_count=len(manual),
            bank_count=len(bank),
            auto_matches=len(auto_matches),
            suggested_matches=len(suggested_matches),
            unmatched_manual=len(unmatched_manual),
            unmatched_bank=len(unmatched_bank),
        )

        return BankReconciliationResult(
            auto_matches=tuple(auto_matches),
            suggested_matches=tuple(suggested_matches),
            unmatched_manual=tuple(unmatched_manual),
            unmatched_bank=tuple(unmatched_bank),
        )

    def score_pair(self, manual_tx: Transaction, bank_tx: Transaction) -> ScoreBreakdown:
        """Score one manual/bank pair."""
        return self.scorer.combine(
            self.scorer.date(manual_tx.date, bank_tx.date),
            self.scorer.amount(manual_tx.amount, bank_tx.amount),
            self.scorer.text(manual_tx.description, bank_tx.bank_label),
        )


def validate_match(match: ReconciliationMatch) -> MatchValidation:
    """Check a reconciliation match before a human confirms it.

    Warns when the two sides disagree on direction (income vs expense), when
    the dates are more than a settlement delay apart, and when the amounts are
    not within 1%. The match is valid only if both sides share a direction and
    neither the date nor the amount score is zero.
    """
    manual_tx = match.manual_transaction
    bank_tx = match.bank_transaction
    warnings: list[str] = []

    same_type = manual_tx.type == bank_tx.type
    if not same_type:
        warnings.append(
            f"Transaction types differ ({manual_tx.type or 'unknown'} vs "
            f"{bank_tx.type or 'unknown'})"
        )

    if match.date_score < 0.7:
        gap = days_apart(manual_tx.date, bank_tx.date)
        if gap is None:
            warnings.append("Date missing or unparseable on one side")
        else:
            warnings.append(f"Large date gap: {gap} days")

    if match.amount_score < 0.95:
        if manual_tx.amount is not None and bank_tx.amount is not None:
            diff = abs(abs(manual_tx.amount) - abs(bank_tx.amount))
            warnings.append(f"Amount gap: {diff:.2f}€")
        else:
            warnings.append("Amount missing or non-numeric on one side")

    valid = same_type and match.date_score > 0 and match.amount_score > 0
    return MatchValidation(valid=valid, warnings=tuple(warnings))
