"""Anomaly detection."""

from .detector import AnomalyDetector, deduplicate, severity_stats, sort_by_severity

__all__ = ["AnomalyDetector", "deduplicate", "severity_stats", "sort_by_severity"]
