"""Reconciliation and matching engine for small-business bookkeeping.

This package implements:
- Bank reconciliation (manual entries vs bank imports)
- Invoice-to-payment matching with supplier learning
- Anomaly detection (duplicates, orphans, amount/VAT gaps, outliers)
- Prometheus metrics and structured logging

Records go in and results come out as immutable values; persistence is the
caller's job.
"""

__version__ = "0.1.0"

__all__ = [
    "__version__",
    # Entry points
    "reconcile_bank",
    "match_invoices",
    "detect_anomalies",
    "update_supplier_history",
    "run_matching",
    # Components
    "AnomalyDetector",
    "BankReconciliationMatcher",
    "InvoiceMatcher",
    "MatchingConfig",
    "SimilarityScorer",
    "SupplierHistory",
    "get_matching_config",
    # Records
    "Invoice",
    "Transaction",
    "Anomaly",
    "AnomalySeverity",
    "AnomalyType",
    "MatchClassification",
    # Errors
    "ConfigurationError",
    "MatchingError",
    "RapprochementError",
    "ValidationError",
]

from .anomalies import AnomalyDetector
from .config import MatchingConfig, get_matching_config
from .domain import (
    Anomaly,
    AnomalySeverity,
    AnomalyType,
    Invoice,
    MatchClassification,
    Transaction,
)
from .engine import (
    detect_anomalies,
    match_invoices,
    reconcile_bank,
    run_matching,
    update_supplier_history,
)
from .exceptions import ConfigurationError, MatchingError, RapprochementError, ValidationError
from .learning import SupplierHistory
from .matchers import BankReconciliationMatcher, InvoiceMatcher
from .scoring import SimilarityScorer
