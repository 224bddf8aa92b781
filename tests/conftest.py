"""
Pytest configuration and global fixtures.

This module provides shared fixtures used across all tests.
"""

from collections.abc import Callable, Generator
from decimal import Decimal
from typing import Any

import pytest

from rapprochement import config as config_module
from rapprochement.config import MatchingConfig
from rapprochement.domain.enums import InvoiceStatus, TransactionSource
from rapprochement.domain.models import Invoice, Transaction


@pytest.fixture(autouse=True)
def reset_config_singleton() -> Generator[None, None, None]:
    """Each test starts without a cached default configuration."""
    config_module._config = None
    yield
    config_module._config = None


@pytest.fixture
def matching_config() -> MatchingConfig:
    """Default configuration, independent of the environment."""
    return MatchingConfig()


@pytest.fixture
def make_transaction() -> Callable[..., Transaction]:
    """Factory for transactions with sensible defaults (a 100€ expense)."""

    def _make(
        id: str = "tx-1",
        date: Any = "2026-03-01",
        description: str = "",
        amount: Any = "-100.00",
        **kwargs: Any,
    ) -> Transaction:
        return Transaction(id=id, date=date, description=description, amount=amount, **kwargs)

    return _make


@pytest.fixture
def make_bank_transaction(make_transaction) -> Callable[..., Transaction]:
    """Factory for bank-imported transactions."""

    def _make(**kwargs: Any) -> Transaction:
        kwargs.setdefault("source", TransactionSource.BANK_IMPORT)
        return make_transaction(**kwargs)

    return _make


@pytest.fixture
def make_invoice() -> Callable[..., Invoice]:
    """Factory for pending supplier invoices (100€ from ACME)."""

    def _make(
        id: str = "inv-1",
        supplier_name: str | None = "ACME",
        invoice_date: Any = "2026-03-01",
        total_amount: Any = Decimal("100.00"),
        status: Any = InvoiceStatus.PENDING,
        **kwargs: Any,
    ) -> Invoice:
        return Invoice(
            id=id,
            supplier_name=supplier_name,
            invoice_date=invoice_date,
            total_amount=total_amount,
            status=status,
            **kwargs,
        )

    return _make
