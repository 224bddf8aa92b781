"""Invoice matching: outstanding supplier invoices against expense transactions."""

from collections.abc import Mapping, Sequence
from decimal import Decimal
from typing import Any

from ..config import MatchingConfig
from ..domain.enums import MatchClassification, TransactionStatus
from ..domain.models import Invoice, Transaction, as_invoice, as_transaction
from ..domain.value_objects import InvoiceMatch, InvoiceMatchingResult, ScoreBreakdown
from ..learning.history import (
    SupplierHistory,
    index_histories,
    normalize_supplier_name,
    pattern_bonus,
)
from ..scoring import text_score
from ..utils.coercion import normalize_text
from ..utils.logging import get_logger
from .base import BaseMatcher, best_candidate

logger = get_logger(__name__)

VAT_TOTAL_TOLERANCE = Decimal("0.01")

# Description score when the invoice names no supplier
NEUTRAL_DESCRIPTION_SCORE = 0.5


class InvoiceMatcher(BaseMatcher):
    """Pair each outstanding invoice with the expense transaction that paid it.

    Scores are the shared date/amount/text criteria, except that the
    description score looks for the supplier name inside the bank label and
    adds a bonus learned from the supplier's history.

    Classification:
    - Best candidate below suggested_threshold → invoice stays unmatched
    - confidence ≥ auto_threshold and consistent VAT → auto match
    - anything else kept → suggestion

    Example:
        >>> matcher = InvoiceMatcher(supplier_histories=histories)
        >>> result = matcher.match(invoices, transactions)
        >>> for m in result.auto_matched:
        ...     print(m.invoice.id, m.transaction.id, f"{m.confidence:.0%}")
    """

    def __init__(
        self,
        config: MatchingConfig | None = None,
        supplier_histories: Any = None,
    ) -> None:
        super().__init__(config)
        self.histories: dict[str, SupplierHistory] = index_histories(supplier_histories)

    def match(
        self,
        left: Sequence[Invoice | Mapping[str, Any]],
        right: Sequence[Transaction | Mapping[str, Any]],
    ) -> InvoiceMatchingResult:
        """Match invoices (left) against transactions (right).

        Args:
            left: Invoices; only pending and validated ones are considered
            right: Transactions; only expenses not flagged duplicate are considered

        Returns:
            InvoiceMatchingResult, matches sorted by confidence descending
        """
        invoices = [inv for inv in map(as_invoice, left) if inv.status.is_outstanding]
        transactions = [
            tx
            for tx in map(as_transaction, right)
            if tx.is_expense and tx.status != TransactionStatus.DUPLICATE
        ]

        auto_matched: list[InvoiceMatch] = []
        suggestions: list[InvoiceMatch] = []
        unmatched_invoices: list[Invoice] = []
        matched_tx_ids: set[str] = set()

        for invoice in invoices:
            history = self.histories.get(normalize_supplier_name(invoice.supplier_name))
            candidates = []
            for tx in transactions:
                if tx.id in matched_tx_ids:
                    continue
                bonus = pattern_bonus(history, tx, self.config)
                candidates.append(((tx, bonus), self.score_pair(invoice, tx, bonus)))

            best = best_candidate(candidates)
            if best is None or best[1].confidence < self.config.suggested_threshold:
                unmatched_invoices.append(invoice)
                continue

            (tx, bonus), scores = best
            vat_consistent = self.is_vat_consistent(invoice, tx)
            classification = self.classify(scores.confidence)
            if classification == MatchClassification.AUTO and not vat_consistent:
                classification = MatchClassification.SUGGESTED
                logger.info(
                    "invoice_match_demoted",
                    invoice_id=invoice.id,
                    transaction_id=tx.id,
                    confidence=scores.confidence,
                    reason="vat_inconsistent",
                )

            match = self._build_match(invoice, tx, scores, classification, bonus, vat_consistent)
            if classification == MatchClassification.AUTO:
                auto_matched.append(match)
            else:
                suggestions.append(match)
            matched_tx_ids.add(tx.id)

        unmatched_transactions = [tx for tx in transactions if tx.id not in matched_tx_ids]

        # sorted() is stable: equal confidences keep input order
        auto_matched = sorted(auto_matched, key=lambda m: m.confidence, reverse=True)
        suggestions = sorted(suggestions, key=lambda m: m.confidence, reverse=True)

        logger.info(
            "invoice_matching_completed",
            invoices=len(invoices),
            transactions=len(transactions),
            auto_matched=len(auto_matched),
            suggestions=len(suggestions),
            unmatched_invoices=len(unmatched_invoices),
            unmatched_transactions=len(unmatched_transactions),
        )

        return InvoiceMatchingResult(
            auto_matched=tuple(auto_matched),
            suggestions=tuple(suggestions),
            unmatched_invoices=tuple(unmatched_invoices),
            unmatched_transactions=tuple(unmatched_transactions),
        )

    def score_pair(self, invoice: Invoice, tx: Transaction, bonus: float = 0.0) -> ScoreBreakdown:
        """Score one invoice/transaction pair, learned bonus included."""
        description = min(1.0, description_score(invoice.supplier_name, tx.description) + bonus)
        return self.scorer.combine(
            self.scorer.date(invoice.invoice_date, tx.date),
            self.scorer.amount(invoice.total_amount, tx.amount),
            description,
        )

    def is_vat_consistent(self, invoice: Invoice, tx: Transaction) -> bool:
        """Whether the VAT data allow an automatic confirmation.

        - The invoice's HT + VAT must equal its total (±0.01)
        - When both sides carry a VAT rate, they must agree within
          vat_rate_tolerance percentage points

        Missing VAT data is not an inconsistency.
        """
        expected = invoice.expected_total
        if expected is not None and invoice.total_amount is not None:
            if abs(expected - invoice.total_amount) > VAT_TOTAL_TOLERANCE:
                return False

        invoice_rate = invoice.effective_vat_rate
        if invoice_rate is not None and tx.vat_rate is not None:
            if abs(invoice_rate - tx.vat_rate) > self.config.vat_rate_tolerance:
                return False
        return True

    def _build_match(
        self,
        invoice: Invoice,
        tx: Transaction,
        scores: ScoreBreakdown,
        classification: MatchClassification,
        bonus: float,
        vat_consistent: bool,
    ) -> InvoiceMatch:
        matched_fields = [
            name
            for name, score in (
                ("amount", scores.amount_score),
                ("date", scores.date_score),
                ("description", scores.description_score),
            )
            if score >= 0.9
        ]
        if bonus > 0:
            matched_fields.append("supplier_history")

        reason = self._build_match_reason(scores, "Invoice match")
        if not vat_consistent:
            reason += " [VAT inconsistent]"

        amount_diff = None
        if invoice.total_amount is not None and tx.amount is not None:
            amount_diff = abs(abs(invoice.total_amount) - abs(tx.amount))

        return InvoiceMatch(
            invoice=invoice,
            transaction=tx,
            scores=scores,
            classification=classification,
            match_reason=reason,
            matched_fields=tuple(matched_fields),
            learned_bonus=bonus,
            vat_consistent=vat_consistent,
            amount_diff=amount_diff,
        )


def description_score(supplier_name: str | None, description: str | None) -> float:
    """How well a bank label names the invoice's supplier (before learning).

    - Supplier name found in the label → 1.0
    - Label found in the supplier name → 0.9
    - Otherwise text similarity of the two
    - No supplier name → 0.5 (neutral)
    """
    supplier = normalize_text(supplier_name)
    if not supplier:
        return NEUTRAL_DESCRIPTION_SCORE

    label = normalize_text(description)
    if label:
        if supplier in label:
            return 1.0
        if label in supplier:
            return 0.9

    return text_score(supplier, label)
