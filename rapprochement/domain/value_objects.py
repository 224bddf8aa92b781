"""Value objects produced by the matching engine.

Value Objects in DDD:
- Immutable (frozen dataclasses)
- No identity (equality based on attributes)
- Carry the full score breakdown so every decision can be explained
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from ..exceptions import ValidationError
from .enums import AnomalySeverity, AnomalyType, MatchClassification
from .models import Invoice, Transaction

if TYPE_CHECKING:
    from ..learning.history import SupplierHistory


@dataclass(frozen=True)
class ScoreBreakdown:
    """Per-criterion scores and their weighted combination (all 0.0-1.0)."""

    date_score: float
    amount_score: float
    description_score: float
    confidence: float

    def __post_init__(self) -> None:
        for name in ("date_score", "amount_score", "description_score", "confidence"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"{name} must be between 0.0 and 1.0, got {value}")

    def to_dict(self) -> dict[str, float]:
        return {
            "date_score": self.date_score,
            "amount_score": self.amount_score,
            "description_score": self.description_score,
            "confidence": self.confidence,
        }


@dataclass(frozen=True)
class ReconciliationMatch:
    """A manual transaction paired with a bank-imported transaction."""

    manual_transaction: Transaction
    bank_transaction: Transaction
    scores: ScoreBreakdown
    classification: MatchClassification
    match_reason: str = ""

    @property
    def confidence(self) -> float:
        return self.scores.confidence

    @property
    def date_score(self) -> float:
        return self.scores.date_score

    @property
    def amount_score(self) -> float:
        return self.scores.amount_score

    @property
    def description_score(self) -> float:
        return self.scores.description_score

    def to_dict(self) -> dict[str, Any]:
        return {
            "manual_transaction_id": self.manual_transaction.id,
            "bank_transaction_id": self.bank_transaction.id,
            "classification": self.classification.value,
            "match_reason": self.match_reason,
            **self.scores.to_dict(),
        }


@dataclass(frozen=True)
class MatchValidation:
    """Sanity check of a reconciliation match before a human confirms it."""

    valid: bool
    warnings: tuple[str, ...] = ()


@dataclass(frozen=True)
class InvoiceMatch:
    """A supplier invoice paired with the transaction that (probably) paid it.

    Attributes:
        invoice: The invoice
        transaction: The expense transaction
        scores: Score breakdown (description score includes the learned bonus)
        classification: AUTO or SUGGESTED
        match_reason: Human-readable explanation
        matched_fields: Criteria that scored high
        learned_bonus: Bonus added from the supplier history
        vat_consistent: False when VAT data disagree (never auto-confirmed)
        amount_diff: |invoice total| - |transaction amount|, absolute
    """

    invoice: Invoice
    transaction: Transaction
    scores: ScoreBreakdown
    classification: MatchClassification
    match_reason: str = ""
    matched_fields: tuple[str, ...] = ()
    learned_bonus: float = 0.0
    vat_consistent: bool = True
    amount_diff: Decimal | None = None

    @property
    def confidence(self) -> float:
        return self.scores.confidence

    def as_pair(self) -> "MatchedPair":
        return MatchedPair(invoice_id=self.invoice.id, transaction_id=self.transaction.id)

    def to_dict(self) -> dict[str, Any]:
        return {
            "invoice_id": self.invoice.id,
            "transaction_id": self.transaction.id,
            "classification": self.classification.value,
            "match_reason": self.match_reason,
            "matched_fields": list(self.matched_fields),
            "learned_bonus": self.learned_bonus,
            "vat_consistent": self.vat_consistent,
            "amount_diff": str(self.amount_diff) if self.amount_diff is not None else None,
            **self.scores.to_dict(),
        }


@dataclass(frozen=True)
class MatchedPair:
    """Invoice/transaction id pair handed to the anomaly detector."""

    invoice_id: str
    transaction_id: str

    @classmethod
    def coerce(cls, value: "MatchedPair | InvoiceMatch | Mapping[str, Any]") -> "MatchedPair":
        """Accept pairs, invoice matches, or rows keyed ``facture_id``/``invoice_id``."""
        if isinstance(value, MatchedPair):
            return value
        if isinstance(value, InvoiceMatch):
            return value.as_pair()
        if isinstance(value, Mapping):
            invoice_id = value.get("invoice_id", value.get("facture_id"))
            transaction_id = value.get("transaction_id")
            if invoice_id is not None and transaction_id is not None:
                return cls(invoice_id=str(invoice_id), transaction_id=str(transaction_id))
        raise ValidationError("Matched pair needs an invoice id and a transaction id", value=value)


@dataclass(frozen=True)
class BankReconciliationResult:
    """Outcome of reconciling manual transactions against bank imports."""

    auto_matches: tuple[ReconciliationMatch, ...] = ()
    suggested_matches: tuple[ReconciliationMatch, ...] = ()
    unmatched_manual: tuple[Transaction, ...] = ()
    unmatched_bank: tuple[Transaction, ...] = ()

    @property
    def transactions_to_reconcile(self) -> list[str]:
        """Ids the caller should move to ``reconciled`` (auto matches only)."""
        ids: list[str] = []
        for match in self.auto_matches:
            ids.extend((match.manual_transaction.id, match.bank_transaction.id))
        return ids

    def stats(self) -> dict[str, int]:
        """Reconciliation statistics, including the auto-match rate in percent."""
        total_manual = (
            len(self.auto_matches) + len(self.suggested_matches) + len(self.unmatched_manual)
        )
        total_bank = len(self.auto_matches) + len(self.suggested_matches) + len(self.unmatched_bank)
        auto_rate = len(self.auto_matches) / total_manual * 100 if total_manual else 0

        return {
            "total_manual": total_manual,
            "total_bank": total_bank,
            "auto_matched": len(self.auto_matches),
            "suggested": len(self.suggested_matches),
            "unmatched_manual": len(self.unmatched_manual),
            "unmatched_bank": len(self.unmatched_bank),
            "auto_match_rate": round(auto_rate),
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "auto_matches": [m.to_dict() for m in self.auto_matches],
            "suggested_matches": [m.to_dict() for m in self.suggested_matches],
            "unmatched_manual": [t.id for t in self.unmatched_manual],
            "unmatched_bank": [t.id for t in self.unmatched_bank],
            "stats": self.stats(),
        }


@dataclass(frozen=True)
class InvoiceMatchingResult:
    """Outcome of matching supplier invoices against transactions."""

    auto_matched: tuple[InvoiceMatch, ...] = ()
    suggestions: tuple[InvoiceMatch, ...] = ()
    unmatched_invoices: tuple[Invoice, ...] = ()
    unmatched_transactions: tuple[Transaction, ...] = ()

    def matched_pairs(self, include_suggestions: bool = True) -> list[MatchedPair]:
        """Pairs to hand to the anomaly detector."""
        matches = self.auto_matched + self.suggestions if include_suggestions else self.auto_matched
        return [m.as_pair() for m in matches]

    def to_dict(self) -> dict[str, Any]:
        return {
            "auto_matched": [m.to_dict() for m in self.auto_matched],
            "suggestions": [m.to_dict() for m in self.suggestions],
            "unmatched_invoices": [i.id for i in self.unmatched_invoices],
            "unmatched_transactions": [t.id for t in self.unmatched_transactions],
        }


@dataclass(frozen=True)
class Anomaly:
    """A detected inconsistency in the financial data."""

    type: AnomalyType
    severity: AnomalySeverity
    description: str
    transaction_id: str | None = None
    invoice_id: str | None = None
    amount: Decimal | None = None
    expected_amount: Decimal | None = None
    gap: Decimal | None = None
    related_id: str | None = None

    @property
    def dedup_key(self) -> tuple[str, str, str]:
        return (self.type.value, self.transaction_id or "", self.invoice_id or "")

    def to_dict(self) -> dict[str, Any]:
        """Serialize with both English keys and the French column names."""

        def _fmt(value: Decimal | None) -> str | None:
            return str(value) if value is not None else None

        return {
            "type": self.type.value,
            "severity": self.severity.value,
            "severite": self.severity.value,
            "description": self.description,
            "transaction_id": self.transaction_id,
            "invoice_id": self.invoice_id,
            "facture_id": self.invoice_id,
            "related_id": self.related_id,
            "amount": _fmt(self.amount),
            "montant": _fmt(self.amount),
            "expected_amount": _fmt(self.expected_amount),
            "montant_attendu": _fmt(self.expected_amount),
            "gap": _fmt(self.gap),
            "ecart": _fmt(self.gap),
        }


@dataclass(frozen=True)
class AnomalyDetectionResult:
    """Flat anomaly list plus counts by severity."""

    anomalies: tuple[Anomaly, ...] = ()
    stats: Mapping[str, int] = field(default_factory=dict)

    def of_type(self, anomaly_type: AnomalyType) -> list[Anomaly]:
        return [a for a in self.anomalies if a.type == anomaly_type]

    def to_dict(self) -> dict[str, Any]:
        return {
            "anomalies": [a.to_dict() for a in self.anomalies],
            "stats": dict(self.stats),
        }


@dataclass(frozen=True)
class MatchingRun:
    """Everything one full run produces, for the caller to persist."""

    matching: InvoiceMatchingResult
    anomalies: AnomalyDetectionResult
    histories: Mapping[str, "SupplierHistory"] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "matching": self.matching.to_dict(),
            "anomalies": self.anomalies.to_dict(),
            "supplier_histories": [h.to_dict() for h in self.histories.values()],
        }
