"""Per-supplier payment history learned from confirmed matches.

Each confirmed invoice/transaction auto-match teaches the engine how that
supplier shows up on the bank statement: the stable part of the bank label,
the IBAN it pays from or to, and the usual amount. The invoice matcher turns
that knowledge into a bonus on the description score.

Histories are immutable values. Every update returns a new mapping and the
caller decides when to persist it.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

from ..config import MatchingConfig, get_matching_config
from ..domain.models import Transaction
from ..domain.value_objects import InvoiceMatch
from ..exceptions import ValidationError
from ..utils.coercion import normalize_text, to_decimal
from ..utils.logging import get_logger
from .patterns import description_fragment, extract_ibans, normalize_iban, push_recent

logger = get_logger(__name__)

DEFAULT_CAPACITY = 10


def normalize_supplier_name(name: str | None) -> str:
    """Key under which a supplier's history is stored.

    Example:
        >>> normalize_supplier_name("  Électricité de France, S.A. ")
        'electricite de france s a'
    """
    return normalize_text(name)


@dataclass(frozen=True)
class SupplierHistory:
    """What the engine has learned about one supplier.

    Attributes:
        supplier_normalized: Normalized supplier name (the key)
        supplier_name: Display form, as first seen
        transaction_patterns: Description fragments, oldest first
        iban_patterns: Account fragments, oldest first
        avg_amount: Running mean of the matched amounts
        match_count: Number of confirmed matches learned from
        amount_count: Matches that carried an amount (the weight of avg_amount)
        last_matched_at: Time of the last update
        id: Caller's row identifier, when the history was loaded from storage
    """

    supplier_normalized: str
    supplier_name: str = ""
    transaction_patterns: tuple[str, ...] = ()
    iban_patterns: tuple[str, ...] = ()
    avg_amount: Decimal = Decimal("0")
    match_count: int = 0
    amount_count: int = 0
    last_matched_at: datetime | None = None
    id: str | None = None

    @classmethod
    def from_dict(cls, row: Mapping[str, Any]) -> "SupplierHistory":
        """Build a history from a storage row.

        Raises:
            ValidationError: If the row names no supplier
        """
        supplier_name = str(row.get("supplier_name") or "")
        normalized = normalize_supplier_name(row.get("supplier_normalized") or supplier_name)
        if not normalized:
            raise ValidationError(
                "Supplier history row without supplier name", field="supplier_name", value=dict(row)
            )

        last = row.get("last_matched_at")
        if isinstance(last, str):
            try:
                last = datetime.fromisoformat(last.replace("Z", "+00:00"))
            except ValueError:
                last = None
        elif not isinstance(last, datetime):
            last = None

        match_count = _count(row.get("match_count"))
        return cls(
            supplier_normalized=normalized,
            supplier_name=supplier_name or normalized,
            transaction_patterns=tuple(str(p) for p in row.get("transaction_patterns") or ()),
            iban_patterns=tuple(normalize_iban(str(p)) for p in row.get("iban_patterns") or ()),
            avg_amount=to_decimal(row.get("avg_amount")) or Decimal("0"),
            match_count=match_count,
            amount_count=(
                _count(row["amount_count"]) if row.get("amount_count") is not None else match_count
            ),
            last_matched_at=last,
            id=str(row["id"]) if row.get("id") is not None else None,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to a storage row."""
        return {
            "id": self.id,
            "supplier_name": self.supplier_name,
            "supplier_normalized": self.supplier_normalized,
            "transaction_patterns": list(self.transaction_patterns),
            "iban_patterns": list(self.iban_patterns),
            "avg_amount": str(self.avg_amount),
            "match_count": self.match_count,
            "amount_count": self.amount_count,
            "last_matched_at": self.last_matched_at.isoformat() if self.last_matched_at else None,
        }


def _count(value: Any) -> int:
    """Stored counter, 0 when missing or not a non-negative number."""
    number = to_decimal(value)
    if number is None or number < 0:
        return 0
    return int(number)


def index_histories(
    histories: Iterable["SupplierHistory | Mapping[str, Any]"] | Mapping[str, Any] | None,
) -> dict[str, SupplierHistory]:
    """Key histories by normalized supplier name.

    Accepts a mapping (its values are used), an iterable of histories or of
    storage rows, or None. When two entries share a key the last one wins.
    """
    if histories is None:
        return {}
    values = histories.values() if isinstance(histories, Mapping) else histories

    indexed: dict[str, SupplierHistory] = {}
    for item in values:
        history = item if isinstance(item, SupplierHistory) else SupplierHistory.from_dict(item)
        indexed[history.supplier_normalized] = history
    return indexed


def update_supplier_history(
    histories: Mapping[str, SupplierHistory],
    supplier_name: str | None,
    description: str | None,
    amount: Any,
    *,
    account: str | None = None,
    now: datetime | None = None,
    capacity: int = DEFAULT_CAPACITY,
) -> dict[str, SupplierHistory]:
    """Learn from one confirmed match.

    Creates the supplier's history on first sight, otherwise merges the new
    fragments into its bounded buffers and updates the running mean amount.
    The input mapping is never modified.

    Args:
        histories: Current histories keyed by normalized supplier name
        supplier_name: Supplier as printed on the invoice
        description: Bank label of the paying transaction
        amount: Matched amount (sign ignored)
        account: Counterparty IBAN, when the bank provides it
        now: Timestamp to record (defaults to the current UTC time)
        capacity: Size of each pattern buffer

    Returns:
        New mapping with the supplier's history created or updated
    """
    updated = dict(histories)
    key = normalize_supplier_name(supplier_name)
    if not key:
        logger.debug("supplier_history_skipped", reason="no_supplier_name")
        return updated

    now = now or datetime.now(UTC)
    fragment = description_fragment(description)
    ibans = extract_ibans(description)
    if account:
        ibans.add(normalize_iban(account))
    accounts = sorted(ibans)
    value = to_decimal(amount)
    value = abs(value) if value is not None else None

    existing = updated.get(key)
    if existing is None:
        history = SupplierHistory(
            supplier_normalized=key,
            supplier_name=str(supplier_name).strip(),
            avg_amount=value if value is not None else Decimal("0"),
            match_count=1,
            amount_count=1 if value is not None else 0,
            last_matched_at=now,
        )
        history = _merge_fragments(history, fragment, accounts, capacity)
    else:
        avg_amount = existing.avg_amount
        amount_count = existing.amount_count
        if value is not None:
            total = existing.avg_amount * amount_count + value
            amount_count += 1
            avg_amount = (total / amount_count).quantize(Decimal("0.01"))
        history = _merge_fragments(
            replace(
                existing,
                avg_amount=avg_amount,
                match_count=existing.match_count + 1,
                amount_count=amount_count,
                last_matched_at=now,
            ),
            fragment,
            accounts,
            capacity,
        )

    updated[key] = history
    logger.debug(
        "supplier_history_updated",
        supplier=key,
        match_count=history.match_count,
        patterns=len(history.transaction_patterns),
        accounts=len(history.iban_patterns),
    )
    return updated


def _merge_fragments(
    history: SupplierHistory, fragment: str, accounts: list[str], capacity: int
) -> SupplierHistory:
    patterns = push_recent(history.transaction_patterns, fragment, capacity)
    ibans = history.iban_patterns
    for iban in accounts:
        ibans = push_recent(ibans, iban, capacity)
    return replace(history, transaction_patterns=patterns, iban_patterns=ibans)


def learn_from_matches(
    histories: Mapping[str, SupplierHistory],
    matches: Iterable[InvoiceMatch],
    *,
    now: datetime | None = None,
    capacity: int = DEFAULT_CAPACITY,
) -> dict[str, SupplierHistory]:
    """Apply every match of a run, in order. Invoices without supplier are skipped."""
    updated = dict(histories)
    for match in matches:
        updated = update_supplier_history(
            updated,
            match.invoice.supplier_name,
            match.transaction.bank_label,
            match.transaction.amount,
            account=match.transaction.counterparty_iban,
            now=now,
            capacity=capacity,
        )
    return updated


def pattern_bonus(
    history: SupplierHistory | None,
    transaction: Transaction,
    config: MatchingConfig | None = None,
) -> float:
    """Description-score bonus a transaction earns from a supplier's history.

    - ``learned_pattern_bonus`` when the transaction label contains a learned
      description fragment
    - ``learned_account_bonus`` when its counterparty IBAN (or an IBAN in its
      label) is a learned account

    The sum is capped at 1.0.
    """
    if history is None:
        return 0.0
    config = config or get_matching_config()

    texts = [transaction.description]
    if transaction.original_description:
        texts.append(transaction.original_description)

    bonus = 0.0
    fragments = [description_fragment(text) for text in texts]
    if any(
        pattern and f" {pattern} " in f" {fragment} "
        for pattern in history.transaction_patterns
        for fragment in fragments
    ):
        bonus += config.learned_pattern_bonus

    accounts = set().union(*(extract_ibans(text) for text in texts))
    if transaction.counterparty_iban:
        accounts.add(normalize_iban(transaction.counterparty_iban))
    if accounts.intersection(history.iban_patterns):
        bonus += config.learned_account_bonus

    return min(1.0, bonus)
