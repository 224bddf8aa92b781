"""Engine entry points.

Thin functions over the matchers and the detector. They accept dataclasses or
plain caller rows, resolve the configuration, and add logging and metrics
around each operation. Nothing here touches storage: the caller persists
whatever it decides to keep.
"""

from collections.abc import Iterable, Mapping
from datetime import date
from typing import Any

from .anomalies.detector import AnomalyDetector
from .config import MatchingConfig, resolve_config
from .domain.value_objects import (
    AnomalyDetectionResult,
    BankReconciliationResult,
    InvoiceMatchingResult,
    MatchedPair,
    MatchingRun,
)
from .exceptions import MatchingError
from .learning import history as learning
from .learning.history import SupplierHistory, index_histories
from .matchers.bank import BankReconciliationMatcher
from .matchers.invoice import InvoiceMatcher
from .metrics import (
    record_anomaly,
    record_match,
    record_unmatched,
    track_matching_duration,
    update_supplier_histories_count,
)
from .utils.logging import LogPerformance, get_logger

logger = get_logger(__name__)

ConfigLike = MatchingConfig | Mapping[str, Any] | None


def _records(value: Any, name: str) -> list[Any]:
    """Materialize an input collection; None is an empty one.

    Raises:
        MatchingError: If a single record or a string is passed instead of a collection
    """
    if value is None:
        return []
    if isinstance(value, (str, bytes, Mapping)) or not isinstance(value, Iterable):
        raise MatchingError(
            f"{name} must be a collection of records",
            context={"argument": name, "received": type(value).__name__},
        )
    return list(value)


def reconcile_bank(
    manual_transactions: Iterable[Any],
    bank_transactions: Iterable[Any],
    config: ConfigLike = None,
) -> BankReconciliationResult:
    """Pair manual transactions with bank-imported ones.

    Raises:
        ConfigurationError: If ``config`` overrides are invalid
        MatchingError: If an argument is not a collection
    """
    matcher = BankReconciliationMatcher(resolve_config(config))
    manual = _records(manual_transactions, "manual_transactions")
    bank = _records(bank_transactions, "bank_transactions")

    with track_matching_duration("reconcile_bank"), LogPerformance("reconcile_bank", logger):
        result = matcher.match(manual, bank)

    for match in result.auto_matches + result.suggested_matches:
        record_match("bank", match.classification.value, match.confidence)
    record_unmatched("manual", len(result.unmatched_manual))
    record_unmatched("bank", len(result.unmatched_bank))
    return result


def match_invoices(
    invoices: Iterable[Any],
    transactions: Iterable[Any],
    config: ConfigLike = None,
    supplier_histories: Any = None,
) -> InvoiceMatchingResult:
    """Pair outstanding invoices with the expense transactions that paid them.

    Args:
        invoices: Invoices (dataclasses or rows)
        transactions: Transactions (dataclasses or rows)
        config: MatchingConfig, mapping of overrides, or None for defaults
        supplier_histories: Histories as a mapping, an iterable, or storage rows

    Raises:
        ConfigurationError: If ``config`` overrides are invalid
        MatchingError: If an argument is not a collection
    """
    matcher = InvoiceMatcher(resolve_config(config), supplier_histories=supplier_histories)
    invoice_rows = _records(invoices, "invoices")
    transaction_rows = _records(transactions, "transactions")

    with track_matching_duration("match_invoices"), LogPerformance("match_invoices", logger):
        result = matcher.match(invoice_rows, transaction_rows)

    for match in result.auto_matched + result.suggestions:
        record_match("invoice", match.classification.value, match.confidence)
    record_unmatched("invoice", len(result.unmatched_invoices))
    record_unmatched("transaction", len(result.unmatched_transactions))
    return result


def detect_anomalies(
    transactions: Iterable[Any],
    invoices: Iterable[Any],
    matched_pairs: Iterable[Any] = (),
    config: ConfigLike = None,
    as_of: date | None = None,
) -> AnomalyDetectionResult:
    """Flag inconsistencies in the data and in the matches just produced.

    Raises:
        ConfigurationError: If ``config`` overrides are invalid
        MatchingError: If an argument is not a collection
    """
    detector = AnomalyDetector(resolve_config(config))
    tx_rows = _records(transactions, "transactions")
    invoice_rows = _records(invoices, "invoices")
    pairs = _records(matched_pairs, "matched_pairs")

    with track_matching_duration("detect_anomalies"), LogPerformance("detect_anomalies", logger):
        result = detector.detect(tx_rows, invoice_rows, pairs, as_of=as_of)

    for anomaly in result.anomalies:
        record_anomaly(anomaly.type.value, anomaly.severity.value)
    return result


def update_supplier_history(
    histories: Any,
    supplier_name: str | None,
    description: str | None,
    amount: Any,
    **kwargs: Any,
) -> dict[str, SupplierHistory]:
    """Learn from one confirmed match; returns a new histories mapping.

    Keyword arguments (``account``, ``now``, ``capacity``) are passed through.
    """
    return learning.update_supplier_history(
        index_histories(histories), supplier_name, description, amount, **kwargs
    )


def run_matching(
    transactions: Iterable[Any],
    invoices: Iterable[Any],
    supplier_histories: Any = None,
    config: ConfigLike = None,
    as_of: date | None = None,
) -> MatchingRun:
    """Full run: match invoices, detect anomalies, learn from auto matches.

    Anomalies are detected over both auto and suggested pairs. Histories only
    learn from auto matches, since suggestions are not confirmed yet.

    Returns:
        MatchingRun with the matching result, the anomalies and the updated histories
    """
    resolved = resolve_config(config)
    histories = index_histories(supplier_histories)
    tx_rows = _records(transactions, "transactions")
    invoice_rows = _records(invoices, "invoices")

    with track_matching_duration("run_matching"), LogPerformance("run_matching", logger):
        matching = match_invoices(invoice_rows, tx_rows, resolved, histories)
        pairs: list[MatchedPair] = matching.matched_pairs(include_suggestions=True)
        anomalies = detect_anomalies(tx_rows, invoice_rows, pairs, resolved, as_of)
        updated = learning.learn_from_matches(
            histories, matching.auto_matched, capacity=resolved.history_capacity
        )

    update_supplier_histories_count(len(updated))
    logger.info(
        "matching_run_completed",
        auto_matched=len(matching.auto_matched),
        suggestions=len(matching.suggestions),
        anomalies=len(anomalies.anomalies),
        supplier_histories=len(updated),
    )
    return MatchingRun(matching=matching, anomalies=anomalies, histories=updated)
