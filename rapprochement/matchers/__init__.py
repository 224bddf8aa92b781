"""Matchers pairing transactions with bank imports and invoices with payments."""

from .bank import BankReconciliationMatcher, validate_match
from .base import BaseMatcher, best_candidate, classify
from .invoice import InvoiceMatcher, description_score

__all__ = [
    "BankReconciliationMatcher",
    "BaseMatcher",
    "InvoiceMatcher",
    "best_candidate",
    "classify",
    "description_score",
    "validate_match",
]
