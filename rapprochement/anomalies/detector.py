"""Anomaly detection over transactions, invoices and the matches just produced.

Every rule runs independently, so one record may raise several anomalies.
The detector only reports: it never changes matches or records.
"""

from collections import defaultdict
from collections.abc import Iterable, Mapping, Sequence
from datetime import date
from decimal import Decimal
from typing import Any

from ..config import MatchingConfig, resolve_config
from ..domain.enums import AnomalySeverity, AnomalyType, InvoiceStatus, TransactionStatus
from ..domain.models import Invoice, Transaction, as_invoice, as_transaction
from ..domain.value_objects import (
    Anomaly,
    AnomalyDetectionResult,
    InvoiceMatch,
    MatchedPair,
)
from ..learning.history import normalize_supplier_name
from ..scoring import text_score
from ..utils.logging import get_logger

logger = get_logger(__name__)

VAT_TOTAL_TOLERANCE = Decimal("0.01")
CENTS = Decimal("0.01")

UNCATEGORIZED = "uncategorized"


def _money(value: Decimal | None) -> str:
    return f"{value:.2f}€" if value is not None else "n/a"


class AnomalyDetector:
    """Flag duplicates, orphans, amount/VAT gaps, incoherent dates and outliers.

    Rules:
    - duplicate_transaction (warning): unmatched, same date and amount,
      near-identical description
    - duplicate_invoice (warning, critical on a reused invoice number)
    - transaction_without_invoice (info): unmatched material expense
    - invoice_without_transaction (warning): validated, unmatched, overdue
    - amount_gap / vat_gap (critical): on matched pairs
    - incoherent_date (warning): payment well before the invoice date;
      (info) on a missing or unparseable date
    - unusually_large_amount (info): far above the category's trailing average

    Example:
        >>> detector = AnomalyDetector()
        >>> result = detector.detect(transactions, invoices, matched_pairs)
        >>> result.stats
        {'total': 2, 'critical': 0, 'warning': 1, 'info': 1}
    """

    def __init__(self, config: MatchingConfig | Mapping[str, Any] | None = None) -> None:
        self.config = resolve_config(config)

    def detect(
        self,
        transactions: Sequence[Transaction | Mapping[str, Any]],
        invoices: Sequence[Invoice | Mapping[str, Any]],
        matched_pairs: Iterable[MatchedPair | InvoiceMatch | Mapping[str, Any]] = (),
        as_of: date | None = None,
    ) -> AnomalyDetectionResult:
        """Run every rule and return the deduplicated, severity-sorted anomalies.

        Args:
            transactions: All transactions of the run
            invoices: All invoices of the run
            matched_pairs: Invoice/transaction pairs just produced (auto and suggested)
            as_of: Reference date for overdue invoices (default: today)

        Returns:
            AnomalyDetectionResult with counts by severity
        """
        txs = [as_transaction(t) for t in transactions]
        invs = [as_invoice(i) for i in invoices]
        pairs = [MatchedPair.coerce(p) for p in matched_pairs]
        as_of = as_of or date.today()

        matched_tx_ids = {p.transaction_id for p in pairs}
        matched_invoice_ids = {p.invoice_id for p in pairs}

        found: list[Anomaly] = [
            *self.duplicate_transactions(txs, matched_tx_ids),
            *self.duplicate_invoices(invs),
            *self.transactions_without_invoice(txs, matched_tx_ids),
            *self.invoices_without_transaction(invs, matched_invoice_ids, as_of),
            *self.matched_pair_gaps(txs, invs, pairs),
            *self.missing_dates(txs, invs),
            *self.unusually_large_amounts(txs),
        ]

        anomalies = sort_by_severity(deduplicate(found))
        stats = severity_stats(anomalies)

        logger.info("anomaly_detection_completed", detected=len(found), **stats)
        return AnomalyDetectionResult(anomalies=tuple(anomalies), stats=stats)

    # ------------------------------------------------------------------
    # Duplicates
    # ------------------------------------------------------------------

    def duplicate_transactions(
        self, txs: Sequence[Transaction], matched_tx_ids: set[str]
    ) -> list[Anomaly]:
        """Unmatched transactions sharing date and amount with a similar label.

        The first occurrence is the reference; every later copy is flagged.
        """
        anomalies = []
        groups: dict[tuple[date, Decimal], list[Transaction]] = defaultdict(list)

        for tx in txs:
            if tx.id in matched_tx_ids or tx.date is None or tx.abs_amount is None:
                continue
            earlier = groups[(tx.date, tx.abs_amount)]
            original = next(
                (
                    other
                    for other in earlier
                    if other.id != tx.id
                    and text_score(other.description, tx.description)
                    >= self.config.duplicate_text_threshold
                ),
                None,
            )
            if original is not None:
                anomalies.append(
                    Anomaly(
                        type=AnomalyType.DUPLICATE_TRANSACTION,
                        severity=AnomalySeverity.WARNING,
                        description=(
                            f'Possible duplicate: "{tx.description}" '
                            f"({_money(tx.amount)}) on {tx.date.isoformat()}"
                        ),
                        transaction_id=tx.id,
                        amount=tx.amount,
                        related_id=original.id,
                    )
                )
            earlier.append(tx)

        return anomalies

    def duplicate_invoices(self, invs: Sequence[Invoice]) -> list[Anomaly]:
        """Invoices billed twice by the same supplier.

        - Same invoice number from the same supplier → critical
        - Same invoice date and total (numbers, when both present, near-identical)
          → warning
        """
        anomalies = []
        by_number: dict[tuple[str, str], Invoice] = {}
        by_amount: dict[tuple[str, date, Decimal], list[Invoice]] = defaultdict(list)

        for inv in invs:
            supplier = normalize_supplier_name(inv.supplier_name)
            if not supplier:
                continue
            number = (inv.invoice_number or "").strip().upper()

            if number:
                first = by_number.get((supplier, number))
                if first is not None and first.id != inv.id:
                    anomalies.append(
                        Anomaly(
                            type=AnomalyType.DUPLICATE_INVOICE,
                            severity=AnomalySeverity.CRITICAL,
                            description=(
                                f"Duplicate invoice: no. {inv.invoice_number} "
                                f"from {inv.supplier_name}"
                            ),
                            invoice_id=inv.id,
                            amount=inv.total_amount,
                            related_id=first.id,
                        )
                    )
                by_number.setdefault((supplier, number), inv)

            if inv.invoice_date is None or inv.total_amount is None:
                continue
            earlier = by_amount[(supplier, inv.invoice_date, inv.total_amount)]
            original = next(
                (other for other in earlier if self._same_invoice_number(other, inv)), None
            )
            if original is not None:
                anomalies.append(
                    Anomaly(
                        type=AnomalyType.DUPLICATE_INVOICE,
                        severity=AnomalySeverity.WARNING,
                        description=(
                            f"Possible duplicate invoice: {inv.supplier_name} "
                            f"{_money(inv.total_amount)} on {inv.invoice_date.isoformat()}"
                        ),
                        invoice_id=inv.id,
                        amount=inv.total_amount,
                        related_id=original.id,
                    )
                )
            earlier.append(inv)

        return anomalies

    def _same_invoice_number(self, first: Invoice, second: Invoice) -> bool:
        if first.id == second.id:
            return False
        if not first.invoice_number or not second.invoice_number:
            return True
        return (
            text_score(first.invoice_number, second.invoice_number)
            >= self.config.duplicate_text_threshold
        )

    # ------------------------------------------------------------------
    # Orphans
    # ------------------------------------------------------------------

    def transactions_without_invoice(
        self, txs: Sequence[Transaction], matched_tx_ids: set[str]
    ) -> list[Anomaly]:
        threshold = self.config.materiality_threshold
        return [
            Anomaly(
                type=AnomalyType.TRANSACTION_WITHOUT_INVOICE,
                severity=AnomalySeverity.INFO,
                description=(
                    f'Expense of {_money(tx.abs_amount)} without invoice: "{tx.description}"'
                    + (f" on {tx.date.isoformat()}" if tx.date else "")
                ),
                transaction_id=tx.id,
                amount=tx.amount,
            )
            for tx in txs
            if tx.is_expense
            and tx.id not in matched_tx_ids
            and tx.status != TransactionStatus.DUPLICATE
            and tx.abs_amount is not None
            and tx.abs_amount >= threshold
        ]

    def invoices_without_transaction(
        self, invs: Sequence[Invoice], matched_invoice_ids: set[str], as_of: date
    ) -> list[Anomaly]:
        """Validated invoices still unpaid after their payment window."""
        anomalies = []
        for inv in invs:
            if inv.status != InvoiceStatus.VALIDATED or inv.id in matched_invoice_ids:
                continue
            deadline = inv.payment_deadline(self.config.max_payment_window_days)
            if deadline is None or deadline >= as_of:
                continue
            overdue = (as_of - deadline).days
            anomalies.append(
                Anomaly(
                    type=AnomalyType.INVOICE_WITHOUT_TRANSACTION,
                    severity=AnomalySeverity.WARNING,
                    description=(
                        f"Validated invoice not reconciled: "
                        f"{inv.supplier_name or inv.invoice_number or 'n/a'} "
                        f"{_money(inv.total_amount)}, {overdue} days past due"
                    ),
                    invoice_id=inv.id,
                    amount=inv.total_amount,
                )
            )
        return anomalies

    # ------------------------------------------------------------------
    # Matched pairs
    # ------------------------------------------------------------------

    def matched_pair_gaps(
        self,
        txs: Sequence[Transaction],
        invs: Sequence[Invoice],
        pairs: Sequence[MatchedPair],
    ) -> list[Anomaly]:
        """Amount gaps, VAT gaps and incoherent dates on matched pairs.

        Pairs referencing an unknown record are ignored.
        """
        tx_by_id = {tx.id: tx for tx in txs}
        inv_by_id = {inv.id: inv for inv in invs}

        anomalies = []
        for pair in pairs:
            tx = tx_by_id.get(pair.transaction_id)
            inv = inv_by_id.get(pair.invoice_id)
            if tx is None or inv is None:
                continue

            gap = self._amount_gap(inv, tx)
            if gap is not None:
                anomalies.append(gap)

            vat = self._vat_gap(inv, tx)
            if vat is not None:
                anomalies.append(vat)

            if inv.invoice_date is not None and tx.date is not None:
                days_before = (inv.invoice_date - tx.date).days
                if days_before > self.config.date_incoherence_days:
                    anomalies.append(
                        Anomaly(
                            type=AnomalyType.INCOHERENT_DATE,
                            severity=AnomalySeverity.WARNING,
                            description=(
                                f"Payment on {tx.date.isoformat()} is {days_before} days "
                                f"before invoice date {inv.invoice_date.isoformat()}"
                            ),
                            transaction_id=tx.id,
                            invoice_id=inv.id,
                        )
                    )
        return anomalies

    def _amount_gap(self, inv: Invoice, tx: Transaction) -> Anomaly | None:
        if inv.total_amount is None or tx.abs_amount is None:
            return None
        expected = abs(inv.total_amount)
        gap = abs(expected - tx.abs_amount)
        tolerance = max(
            expected * self.config.amount_tolerance_percent / 100,
            self.config.amount_tolerance_absolute,
        )
        if gap <= tolerance:
            return None
        return Anomaly(
            type=AnomalyType.AMOUNT_GAP,
            severity=AnomalySeverity.CRITICAL,
            description=(
                f"Amount gap on matched pair: paid {_money(tx.abs_amount)}, "
                f"invoiced {_money(expected)} (gap {_money(gap)})"
            ),
            transaction_id=tx.id,
            invoice_id=inv.id,
            amount=tx.abs_amount,
            expected_amount=expected,
            gap=gap,
        )

    def _vat_gap(self, inv: Invoice, tx: Transaction) -> Anomaly | None:
        expected = inv.expected_total
        if expected is None or inv.total_amount is None:
            return None
        gap = abs(expected - inv.total_amount)
        if gap <= VAT_TOTAL_TOLERANCE:
            return None
        return Anomaly(
            type=AnomalyType.VAT_GAP,
            severity=AnomalySeverity.CRITICAL,
            description=(
                f"VAT gap on invoice {inv.invoice_number or inv.id}: "
                f"HT {_money(inv.amount_excl_tax)} + VAT {_money(inv.vat_amount)} "
                f"≠ total {_money(inv.total_amount)}"
            ),
            transaction_id=tx.id,
            invoice_id=inv.id,
            amount=inv.total_amount,
            expected_amount=expected,
            gap=gap,
        )

    def missing_dates(self, txs: Sequence[Transaction], invs: Sequence[Invoice]) -> list[Anomaly]:
        """Records whose date is missing or could not be parsed."""
        anomalies = [
            Anomaly(
                type=AnomalyType.INCOHERENT_DATE,
                severity=AnomalySeverity.INFO,
                description=f'Transaction "{tx.description}" has no valid date',
                transaction_id=tx.id,
                amount=tx.amount,
            )
            for tx in txs
            if tx.date is None
        ]
        anomalies.extend(
            Anomaly(
                type=AnomalyType.INCOHERENT_DATE,
                severity=AnomalySeverity.INFO,
                description=f"Invoice {inv.invoice_number or inv.id} has no valid invoice date",
                invoice_id=inv.id,
                amount=inv.total_amount,
            )
            for inv in invs
            if inv.invoice_date is None
        )
        return anomalies

    # ------------------------------------------------------------------
    # Outliers
    # ------------------------------------------------------------------

    def unusually_large_amounts(self, txs: Sequence[Transaction]) -> list[Anomaly]:
        """Amounts far above the trailing average of their category.

        Transactions are walked in date order per category (undated ones
        last); each is compared with the average of up to ``outlier_window``
        previous amounts of the same category.
        """
        config = self.config
        multiplier = Decimal(str(config.outlier_multiplier))

        by_category: dict[str, list[Transaction]] = defaultdict(list)
        for tx in txs:
            if tx.abs_amount is not None:
                by_category[(tx.category or UNCATEGORIZED).strip().lower()].append(tx)

        anomalies = []
        for category, members in by_category.items():
            members = sorted(members, key=lambda t: (t.date is None, t.date or date.min))
            history: list[Decimal] = []
            for tx in members:
                amount = tx.abs_amount
                trailing = history[-config.outlier_window :]
                if len(trailing) >= config.outlier_min_samples:
                    average = sum(trailing, Decimal("0")) / len(trailing)
                    if amount > multiplier * average and amount >= config.outlier_min_amount:
                        average = average.quantize(CENTS)
                        anomalies.append(
                            Anomaly(
                                type=AnomalyType.UNUSUALLY_LARGE_AMOUNT,
                                severity=AnomalySeverity.INFO,
                                description=(
                                    f"Unusual amount {_money(amount)} in {category} "
                                    f"(trailing average {_money(average)}): "
                                    f'"{tx.description}"'
                                ),
                                transaction_id=tx.id,
                                amount=tx.amount,
                                expected_amount=average,
                                gap=amount - average,
                            )
                        )
                history.append(amount)

        return anomalies


def deduplicate(anomalies: Iterable[Anomaly]) -> list[Anomaly]:
    """One anomaly per (type, transaction, invoice), keeping the most severe.

    The survivor takes the position of the first occurrence.
    """
    kept: dict[tuple[str, str, str], Anomaly] = {}
    for anomaly in anomalies:
        current = kept.get(anomaly.dedup_key)
        if current is None or anomaly.severity.rank < current.severity.rank:
            kept[anomaly.dedup_key] = anomaly
    return list(kept.values())


def sort_by_severity(anomalies: Iterable[Anomaly]) -> list[Anomaly]:
    """Critical first, then warning, then info; stable within a severity."""
    return sorted(anomalies, key=lambda a: a.severity.rank)


def severity_stats(anomalies: Sequence[Anomaly]) -> dict[str, int]:
    stats = {"total": len(anomalies)}
    for severity in AnomalySeverity:
        stats[severity.value] = sum(1 for a in anomalies if a.severity == severity)
    return stats
