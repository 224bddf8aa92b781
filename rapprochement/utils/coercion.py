"""Lenient coercion of caller-supplied values.

Bad values become ``None`` instead of raising, so one malformed record only
lowers its own scores instead of aborting the whole batch.
"""

import re
import unicodedata
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any

_DATE_FORMATS = ("%Y-%m-%d", "%d/%m/%Y", "%d-%m-%Y", "%Y/%m/%d")
_PUNCTUATION = re.compile(r"[^\w\s]", re.UNICODE)
_WHITESPACE = re.compile(r"\s+")


def parse_date(value: Any) -> date | None:
    """Return a ``date`` for dates, datetimes and common string formats.

    ISO datetimes ("2026-03-01T10:00:00Z") are truncated to their date part.
    Anything else returns None.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None

    text = value.strip()
    if not text:
        return None

    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        pass

    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return None


def to_decimal(value: Any) -> Decimal | None:
    """Convert numbers and numeric strings to Decimal; None when not numeric.

    Accepts a comma as decimal separator ("150,00").
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value if value.is_finite() else None
    if isinstance(value, str):
        value = value.strip().replace(" ", "").replace(",", ".")
        if not value:
            return None
    try:
        result = Decimal(str(value))
    except (TypeError, ValueError, InvalidOperation):
        return None
    return result if result.is_finite() else None


def strip_accents(text: str) -> str:
    """Remove diacritics ("Société" → "Societe")."""
    decomposed = unicodedata.normalize("NFKD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def normalize_text(text: Any) -> str:
    """Lowercase, strip diacritics and punctuation, collapse whitespace."""
    if not text:
        return ""
    text = strip_accents(str(text)).lower()
    text = _PUNCTUATION.sub(" ", text).replace("_", " ")
    return _WHITESPACE.sub(" ", text).strip()
