"""Supplier learning: histories built from confirmed matches."""

from .history import (
    SupplierHistory,
    index_histories,
    learn_from_matches,
    normalize_supplier_name,
    pattern_bonus,
    update_supplier_history,
)
from .patterns import description_fragment, extract_ibans, normalize_iban

__all__ = [
    "SupplierHistory",
    "description_fragment",
    "extract_ibans",
    "index_histories",
    "learn_from_matches",
    "normalize_iban",
    "normalize_supplier_name",
    "pattern_bonus",
    "update_supplier_history",
]
