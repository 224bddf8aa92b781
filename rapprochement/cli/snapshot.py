"""JSON snapshot files consumed and produced by the CLI.

A snapshot is one JSON object exported from the bookkeeping store:

    {
        "transactions": [...],
        "invoices": [...],              # or "factures"
        "supplier_histories": [...],    # optional
        "matched_pairs": [...]          # optional, for the anomalies command
    }
"""

import json
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, TypeVar

from ..config import MatchingConfig
from ..domain.enums import TransactionSource
from ..domain.models import Invoice, Transaction
from ..domain.value_objects import MatchedPair
from ..exceptions import RapprochementError, SnapshotError
from ..learning.history import SupplierHistory, index_histories

T = TypeVar("T")

_SECTION_ALIASES = {
    "invoices": ("invoices", "factures"),
    "supplier_histories": ("supplier_histories", "historiques_fournisseurs"),
}


@dataclass(frozen=True)
class Snapshot:
    """Records loaded from a snapshot file."""

    transactions: tuple[Transaction, ...] = ()
    invoices: tuple[Invoice, ...] = ()
    supplier_histories: dict[str, SupplierHistory] = field(default_factory=dict)
    matched_pairs: tuple[MatchedPair, ...] | None = None

    @property
    def manual_transactions(self) -> list[Transaction]:
        """Transactions not marked as bank imports."""
        return [t for t in self.transactions if t.source != TransactionSource.BANK_IMPORT]

    @property
    def bank_transactions(self) -> list[Transaction]:
        return [t for t in self.transactions if t.source == TransactionSource.BANK_IMPORT]


def _read_json(path: Path) -> Any:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except OSError as e:
        raise SnapshotError(f"Cannot read {path}", path=str(path), original_error=e) from e
    except json.JSONDecodeError as e:
        raise SnapshotError(
            f"Invalid JSON in {path}: {e.msg} (line {e.lineno})",
            path=str(path),
            original_error=e,
        ) from e


def _section(data: dict[str, Any], name: str, path: Path) -> list[Any] | None:
    for key in _SECTION_ALIASES.get(name, (name,)):
        if key in data:
            rows = data[key]
            if not isinstance(rows, list):
                raise SnapshotError(
                    f"Section '{key}' must be a list", path=str(path), section=key
                )
            return rows
    return None


def _convert(rows: list[Any], factory: Callable[[Any], T], section: str, path: Path) -> list[T]:
    converted = []
    for index, row in enumerate(rows):
        if not isinstance(row, dict):
            raise SnapshotError(
                f"Entry {index} of '{section}' is not an object",
                path=str(path),
                section=section,
            )
        try:
            converted.append(factory(row))
        except RapprochementError as e:
            raise SnapshotError(
                f"Entry {index} of '{section}' is invalid: {e.message}",
                path=str(path),
                section=section,
                original_error=e,
            ) from e
    return converted


def load_snapshot(path: Path) -> Snapshot:
    """Load and convert a snapshot file.

    Raises:
        SnapshotError: If the file is unreadable, not JSON, or holds invalid records
    """
    data = _read_json(path)
    if not isinstance(data, dict):
        raise SnapshotError("Snapshot must be a JSON object", path=str(path))

    transactions = _convert(
        _section(data, "transactions", path) or [], Transaction.from_dict, "transactions", path
    )
    invoices = _convert(_section(data, "invoices", path) or [], Invoice.from_dict, "invoices", path)
    histories = _convert(
        _section(data, "supplier_histories", path) or [],
        SupplierHistory.from_dict,
        "supplier_histories",
        path,
    )

    pair_rows = _section(data, "matched_pairs", path)
    pairs = None
    if pair_rows is not None:
        pairs = tuple(_convert(pair_rows, MatchedPair.coerce, "matched_pairs", path))

    return Snapshot(
        transactions=tuple(transactions),
        invoices=tuple(invoices),
        supplier_histories=index_histories(histories),
        matched_pairs=pairs,
    )


def load_config_file(path: Path) -> MatchingConfig:
    """Load MatchingConfig overrides from a JSON object.

    Raises:
        SnapshotError: If the file is unreadable or not a JSON object
        ConfigurationError: If the overrides are invalid
    """
    data = _read_json(path)
    if not isinstance(data, dict):
        raise SnapshotError("Config file must be a JSON object", path=str(path))
    return MatchingConfig.from_mapping(data)


def write_json(path: Path, payload: Any) -> None:
    """Write results as indented UTF-8 JSON.

    Raises:
        SnapshotError: If the file cannot be written
    """
    try:
        path.write_text(
            json.dumps(payload, indent=2, ensure_ascii=False, default=str) + "\n",
            encoding="utf-8",
        )
    except OSError as e:
        raise SnapshotError(f"Cannot write {path}", path=str(path), original_error=e) from e
