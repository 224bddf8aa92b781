"""Input records consumed by the matching engine.

Transactions and invoices belong to the caller's store. During a run the
engine treats them as immutable values, so both are frozen dataclasses.
Construction is lenient: unparseable dates and non-numeric amounts become
``None`` and simply score as worst case.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from enum import Enum
from typing import Any, TypeVar

from ..exceptions import ValidationError
from ..utils.coercion import parse_date, to_decimal
from .enums import InvoiceStatus, TransactionSource, TransactionStatus, TransactionType

E = TypeVar("E", bound=Enum)

# Row keys used by the original French schema, mapped to field names
_TRANSACTION_ALIASES = {
    "libelle": "description",
    "montant": "amount",
    "statut": "status",
    "categorie": "category",
    "iban": "counterparty_iban",
    "taux_tva": "vat_rate",
}

_INVOICE_ALIASES = {
    "nom_fournisseur": "supplier_name",
    "fournisseur": "supplier_name",
    "date_facture": "invoice_date",
    "montant_ttc": "total_amount",
    "montant_ht": "amount_excl_tax",
    "tva": "vat_amount",
    "taux_tva": "vat_rate",
    "numero_facture": "invoice_number",
    "date_echeance": "due_date",
    "statut": "status",
    "validation_status": "status",
}

_INVOICE_STATUS_ALIASES = {
    "brouillon": InvoiceStatus.DRAFT,
    "en_attente": InvoiceStatus.PENDING,
    "validee": InvoiceStatus.VALIDATED,
    "payee": InvoiceStatus.PAID,
}


def _coerce_enum(enum_cls: type[E], value: Any, default: E | None) -> E | None:
    if isinstance(value, enum_cls):
        return value
    if value is None:
        return default
    try:
        return enum_cls(str(value).strip().lower())
    except ValueError:
        return default


def _rename(row: Mapping[str, Any], aliases: Mapping[str, str]) -> dict[str, Any]:
    data: dict[str, Any] = {}
    for key, value in row.items():
        target = aliases.get(key, key)
        # Explicit English keys win over aliases
        if target in data and key != target:
            continue
        data[target] = value
    return data


def _optional_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _require_id(row: Mapping[str, Any], kind: str) -> str:
    record_id = row.get("id")
    if record_id is None or str(record_id).strip() == "":
        raise ValidationError(f"{kind} record without id", field="id", value=dict(row))
    return str(record_id)


@dataclass(frozen=True)
class Transaction:
    """A financial movement, either typed by hand or imported from a bank.

    Attributes:
        id: Caller's identifier
        date: Value date (None when unparseable)
        description: Label as entered or as printed by the bank
        amount: Signed amount (None when not numeric)
        type: INCOME/EXPENSE; derived from the amount sign when omitted
        source: MANUAL or BANK_IMPORT (None when the caller does not say)
        status: Lifecycle status in the caller's store
        original_description: Raw bank label, preferred for text scoring
        category: Bookkeeping category, groups the outlier statistics
        counterparty_iban: IBAN of the other party, if the bank provides it
        vat_rate: VAT rate implied by the transaction metadata (percent)
    """

    id: str
    date: date | None
    description: str
    amount: Decimal | None
    type: TransactionType | None = None
    source: TransactionSource | None = None
    status: TransactionStatus = TransactionStatus.ACTIVE
    original_description: str | None = None
    category: str | None = None
    counterparty_iban: str | None = None
    vat_rate: Decimal | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "id", str(self.id))
        object.__setattr__(self, "date", parse_date(self.date))
        object.__setattr__(self, "description", _optional_text(self.description) or "")
        for field_name in ("original_description", "category", "counterparty_iban"):
            object.__setattr__(self, field_name, _optional_text(getattr(self, field_name)))
        object.__setattr__(self, "amount", to_decimal(self.amount))
        object.__setattr__(self, "vat_rate", to_decimal(self.vat_rate))
        object.__setattr__(
            self, "source", _coerce_enum(TransactionSource, self.source, None)
        )
        object.__setattr__(
            self, "status", _coerce_enum(TransactionStatus, self.status, TransactionStatus.ACTIVE)
        )

        tx_type = _coerce_enum(TransactionType, self.type, None)
        if tx_type is None and self.amount is not None:
            tx_type = TransactionType.EXPENSE if self.amount < 0 else TransactionType.INCOME
        object.__setattr__(self, "type", tx_type)

    @classmethod
    def from_dict(cls, row: Mapping[str, Any]) -> "Transaction":
        """Build a transaction from a caller row (English or French keys).

        Raises:
            ValidationError: If the row has no id
        """
        data = _rename(row, _TRANSACTION_ALIASES)
        return cls(
            id=_require_id(data, "Transaction"),
            date=data.get("date"),
            description=data.get("description") or "",
            amount=data.get("amount"),
            type=data.get("type"),
            source=data.get("source"),
            status=data.get("status"),
            original_description=data.get("original_description"),
            category=data.get("category"),
            counterparty_iban=data.get("counterparty_iban"),
            vat_rate=data.get("vat_rate"),
        )

    @property
    def abs_amount(self) -> Decimal | None:
        """Unsigned amount, the value every comparison uses."""
        return abs(self.amount) if self.amount is not None else None

    @property
    def is_expense(self) -> bool:
        return self.type == TransactionType.EXPENSE

    @property
    def bank_label(self) -> str:
        """Text to compare on the bank side."""
        return self.original_description or self.description

    def __repr__(self) -> str:
        return (
            f"<Transaction(id={self.id}, date={self.date}, "
            f"amount={self.amount}, source='{self.source}')>"
        )


@dataclass(frozen=True)
class Invoice:
    """A supplier bill waiting to be paired with the payment that settled it.

    Attributes:
        id: Caller's identifier
        supplier_name: Supplier as printed on the bill
        invoice_date: Issue date (None when unparseable)
        total_amount: Amount including tax (TTC)
        status: DRAFT/PENDING/VALIDATED/PAID
        invoice_number: Supplier's invoice number
        amount_excl_tax: Amount before tax (HT)
        vat_amount: Declared VAT amount
        vat_rate: Declared VAT rate (percent)
        due_date: Payment due date, when known
    """

    id: str
    supplier_name: str | None
    invoice_date: date | None
    total_amount: Decimal | None
    status: InvoiceStatus = InvoiceStatus.PENDING
    invoice_number: str | None = None
    amount_excl_tax: Decimal | None = None
    vat_amount: Decimal | None = None
    vat_rate: Decimal | None = None
    due_date: date | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "id", str(self.id))
        for field_name in ("supplier_name", "invoice_number"):
            object.__setattr__(self, field_name, _optional_text(getattr(self, field_name)))
        object.__setattr__(self, "invoice_date", parse_date(self.invoice_date))
        object.__setattr__(self, "due_date", parse_date(self.due_date))
        for field_name in ("total_amount", "amount_excl_tax", "vat_amount", "vat_rate"):
            object.__setattr__(self, field_name, to_decimal(getattr(self, field_name)))

        status = self.status
        if isinstance(status, str) and status.strip().lower() in _INVOICE_STATUS_ALIASES:
            status = _INVOICE_STATUS_ALIASES[status.strip().lower()]
        object.__setattr__(
            self, "status", _coerce_enum(InvoiceStatus, status, InvoiceStatus.PENDING)
        )

    @classmethod
    def from_dict(cls, row: Mapping[str, Any]) -> "Invoice":
        """Build an invoice from a caller row (English or French keys).

        ``created_at`` stands in for a missing invoice date, as the bookkeeping
        UI does.

        Raises:
            ValidationError: If the row has no id
        """
        data = _rename(row, _INVOICE_ALIASES)
        return cls(
            id=_require_id(data, "Invoice"),
            supplier_name=data.get("supplier_name"),
            invoice_date=data.get("invoice_date") or data.get("created_at"),
            total_amount=data.get("total_amount"),
            status=data.get("status"),
            invoice_number=data.get("invoice_number"),
            amount_excl_tax=data.get("amount_excl_tax"),
            vat_amount=data.get("vat_amount"),
            vat_rate=data.get("vat_rate"),
            due_date=data.get("due_date"),
        )

    @property
    def expected_total(self) -> Decimal | None:
        """HT + VAT, when both are declared."""
        if self.amount_excl_tax is None or self.vat_amount is None:
            return None
        return self.amount_excl_tax + self.vat_amount

    @property
    def effective_vat_rate(self) -> Decimal | None:
        """Declared VAT rate, or the one implied by VAT / HT."""
        if self.vat_rate is not None:
            return self.vat_rate
        if self.vat_amount is not None and self.amount_excl_tax:
            return (self.vat_amount / self.amount_excl_tax * 100).quantize(Decimal("0.01"))
        return None

    def payment_deadline(self, window_days: int) -> date | None:
        """Due date, or the invoice date plus the payment window."""
        if self.due_date is not None:
            return self.due_date
        if self.invoice_date is None:
            return None
        return self.invoice_date + timedelta(days=window_days)

    def __repr__(self) -> str:
        return (
            f"<Invoice(id={self.id}, supplier='{self.supplier_name}', "
            f"total={self.total_amount}, status='{self.status.value}')>"
        )


def as_transaction(value: "Transaction | Mapping[str, Any]") -> Transaction:
    """Accept either a Transaction or a caller row."""
    if isinstance(value, Transaction):
        return value
    if isinstance(value, Mapping):
        return Transaction.from_dict(value)
    raise ValidationError(
        "Expected a Transaction or a mapping", value=type(value).__name__, field="transaction"
    )


def as_invoice(value: "Invoice | Mapping[str, Any]") -> Invoice:
    """Accept either an Invoice or a caller row."""
    if isinstance(value, Invoice):
        return value
    if isinstance(value, Mapping):
        return Invoice.from_dict(value)
    raise ValidationError(
        "Expected an Invoice or a mapping", value=type(value).__name__, field="invoice"
    )
