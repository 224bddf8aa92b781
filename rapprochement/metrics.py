"""Prometheus metrics instrumentation for the matching engine.

Provides metrics collection for monitoring match rates, confidence
distribution, anomaly volumes and matching duration.
"""

import os
from typing import Any

from prometheus_client import Counter, Gauge, Histogram, start_http_server

from .utils.logging import get_logger

logger = get_logger(__name__)

# ============================================================================
# Metric Definitions
# ============================================================================

# Counter: Matches produced
matches_total = Counter(
    "rapprochement_matches_total",
    "Total number of matches produced",
    ["kind", "classification"],  # labels: bank/invoice, auto/suggested
)

# Counter: Records left unmatched
unmatched_records_total = Counter(
    "rapprochement_unmatched_records_total",
    "Total number of records left unmatched after a run",
    ["record_type"],  # labels: manual/bank/invoice/transaction
)

# Histogram: Matching confidence scores
matching_confidence_scores = Histogram(
    "rapprochement_matching_confidence_scores",
    "Distribution of matching confidence scores",
    ["kind"],
    buckets=(0.0, 0.5, 0.6, 0.7, 0.75, 0.8, 0.85, 0.9, 0.95, 1.0),
)

# Counter: Anomalies detected
anomalies_detected_total = Counter(
    "rapprochement_anomalies_detected_total",
    "Total number of anomalies detected",
    ["type", "severity"],
)

# Gauge: Supplier histories known after the last run
supplier_histories_count = Gauge(
    "rapprochement_supplier_histories_count",
    "Number of supplier histories after the last run",
)

# Histogram: Matching processing duration
matching_processing_duration_seconds = Histogram(
    "rapprochement_matching_processing_duration_seconds",
    "Time taken by a matching operation",
    ["operation"],  # labels: reconcile_bank/match_invoices/detect_anomalies/run_matching
    buckets=(0.01, 0.05, 0.1, 0.5, 1.0, 2.0, 5.0),
)

# Counter: CLI command executions
cli_command_executions_total = Counter(
    "rapprochement_cli_command_executions_total",
    "Total number of CLI command executions",
    ["command", "status"],  # labels: reconcile/match/anomalies/run, success/failure
)


# ============================================================================
# Metrics Server
# ============================================================================


def start_metrics_server(port: int | None = None) -> bool:
    """Start Prometheus metrics HTTP server when PROMETHEUS_ENABLED=true.

    Args:
        port: Port to expose metrics on (default: METRICS_PORT or 8000)

    Returns:
        True if the server was started
    """
    if os.getenv("PROMETHEUS_ENABLED", "false").lower() != "true":
        return False

    port = port or int(os.getenv("METRICS_PORT", "8000"))
    try:
        start_http_server(port)
    except OSError as e:
        # Port already in use, skip
        logger.warning("metrics_server_not_started", port=port, error=str(e))
        return False

    logger.info("metrics_server_started", port=port)
    return True


# ============================================================================
# Convenience Functions
# ============================================================================


def record_match(kind: str, classification: str, confidence: float) -> None:
    """Record one produced match.

    Args:
        kind: bank or invoice
        classification: auto or suggested
        confidence: Confidence score (0.0-1.0)
    """
    matches_total.labels(kind=kind, classification=classification).inc()
    matching_confidence_scores.labels(kind=kind).observe(confidence)


def record_unmatched(record_type: str, count: int) -> None:
    if count:
        unmatched_records_total.labels(record_type=record_type).inc(count)


def record_anomaly(anomaly_type: str, severity: str) -> None:
    anomalies_detected_total.labels(type=anomaly_type, severity=severity).inc()


def update_supplier_histories_count(count: int) -> None:
    supplier_histories_count.set(count)


def record_cli_command(command: str, status: str = "success") -> None:
    """Record CLI command execution.

    Args:
        command: Command name (reconcile, match, anomalies, run)
        status: Execution status (success, failure)
    """
    cli_command_executions_total.labels(command=command, status=status).inc()


# ============================================================================
# Context Managers for Duration Tracking
# ============================================================================


class track_matching_duration:
    """Context manager to track matching processing duration."""

    def __init__(self, operation: str):
        self.operation = operation
        self.timer: Any = None

    def __enter__(self) -> "track_matching_duration":
        self.timer = matching_processing_duration_seconds.labels(operation=self.operation).time()
        self.timer.__enter__()
        return self

    def __exit__(self, *args: Any) -> None:
        if self.timer:
            self.timer.__exit__(*args)
