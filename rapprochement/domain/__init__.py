"""Domain layer: input records, enums and result value objects."""

__all__ = [
    "Transaction",
    "Invoice",
    "TransactionSource",
    "TransactionType",
    "TransactionStatus",
    "InvoiceStatus",
    "MatchClassification",
    "AnomalyType",
    "AnomalySeverity",
    "ScoreBreakdown",
    "ReconciliationMatch",
    "MatchValidation",
    "InvoiceMatch",
    "MatchedPair",
    "BankReconciliationResult",
    "InvoiceMatchingResult",
    "Anomaly",
    "AnomalyDetectionResult",
    "MatchingRun",
]

from .enums import (
    AnomalySeverity,
    AnomalyType,
    InvoiceStatus,
    MatchClassification,
    TransactionSource,
    TransactionStatus,
    TransactionType,
)
from .models import Invoice, Transaction
from .value_objects import (
    Anomaly,
    AnomalyDetectionResult,
    BankReconciliationResult,
    InvoiceMatch,
    InvoiceMatchingResult,
    MatchedPair,
    MatchingRun,
    MatchValidation,
    ReconciliationMatch,
    ScoreBreakdown,
)
