"""Domain enums for the reconciliation and matching engine."""

from enum import Enum


class TransactionSource(str, Enum):
    """Where a transaction was recorded."""

    MANUAL = "manual"  # Entered by hand in the bookkeeping UI
    BANK_IMPORT = "bank_import"  # Imported from a bank statement

    def __str__(self) -> str:
        return self.value


class TransactionType(str, Enum):
    """Direction of money."""

    INCOME = "income"
    EXPENSE = "expense"

    def __str__(self) -> str:
        return self.value


class TransactionStatus(str, Enum):
    """Transaction lifecycle status.

    The engine never changes it; it only recommends RECONCILED for auto matches.
    """

    ACTIVE = "active"
    RECONCILED = "reconciled"
    DUPLICATE = "duplicate"
    PENDING = "pending"

    def __str__(self) -> str:
        return self.value


class InvoiceStatus(str, Enum):
    """Supplier invoice status.

    Lifecycle:
        DRAFT → PENDING → VALIDATED → PAID
    """

    DRAFT = "draft"
    PENDING = "pending"
    VALIDATED = "validated"
    PAID = "paid"

    def __str__(self) -> str:
        return self.value

    @property
    def is_outstanding(self) -> bool:
        """Whether the invoice still waits for its payment."""
        return self in (InvoiceStatus.PENDING, InvoiceStatus.VALIDATED)


class MatchClassification(str, Enum):
    """Outcome of a scored pairing, shared by both matchers."""

    AUTO = "auto"  # Accepted without human review
    SUGGESTED = "suggested"  # Shown to a human for confirmation
    UNMATCHED = "unmatched"  # Below the suggestion threshold

    def __str__(self) -> str:
        return self.value


class AnomalyType(str, Enum):
    """Kinds of inconsistencies reported by the anomaly detector."""

    DUPLICATE_TRANSACTION = "duplicate_transaction"
    DUPLICATE_INVOICE = "duplicate_invoice"
    TRANSACTION_WITHOUT_INVOICE = "transaction_without_invoice"
    INVOICE_WITHOUT_TRANSACTION = "invoice_without_transaction"
    VAT_GAP = "vat_gap"
    AMOUNT_GAP = "amount_gap"
    INCOHERENT_DATE = "incoherent_date"
    UNUSUALLY_LARGE_AMOUNT = "unusually_large_amount"

    def __str__(self) -> str:
        return self.value


class AnomalySeverity(str, Enum):
    """Anomaly severity, most severe first."""

    CRITICAL = "critical"
    WARNING = "warning"
    INFO = "info"

    def __str__(self) -> str:
        return self.value

    @property
    def rank(self) -> int:
        """Sort key: 0 for critical, 2 for info."""
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {
    AnomalySeverity.CRITICAL: 0,
    AnomalySeverity.WARNING: 1,
    AnomalySeverity.INFO: 2,
}
