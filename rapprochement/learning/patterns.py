"""Pattern extraction for supplier learning.

Two kinds of fragments are learned from confirmed matches:

- Description fragments: the normalized bank label without its reference-like
  tokens ("PRLV EDF REF 88213" → "prlv edf ref")
- Account fragments: IBANs, uppercase without spaces

Both live in small bounded buffers ordered oldest → newest.
"""

import re

from ..utils.coercion import normalize_text

# Compact form, or printed in groups of four
IBAN_PATTERN = re.compile(
    r"\b[A-Z]{2}\d{2}(?:[A-Z0-9]{11,30}|(?: [A-Z0-9]{4}){2,7}(?: \d{1,3})?)\b",
    re.IGNORECASE,
)


def normalize_iban(value: str | None) -> str:
    """Uppercase and drop whitespace ("fr76 3000 6000" → "FR7630006000")."""
    if not value:
        return ""
    return re.sub(r"\s+", "", str(value)).upper()


def extract_ibans(text: str | None) -> set[str]:
    """All IBAN-looking strings in ``text``, normalized."""
    if not text:
        return set()
    return {normalize_iban(match) for match in IBAN_PATTERN.findall(str(text))}


def description_fragment(description: str | None) -> str:
    """Stable part of a bank label: normalized, without tokens containing digits."""
    tokens = normalize_text(description).split()
    return " ".join(token for token in tokens if not any(ch.isdigit() for ch in token))


def push_recent(patterns: tuple[str, ...], fragment: str, capacity: int) -> tuple[str, ...]:
    """Append ``fragment`` to a bounded LRU buffer.

    A fragment already present moves to the newest position; when the buffer
    overflows the oldest fragments are evicted.
    """
    if not fragment:
        return patterns
    refreshed = tuple(p for p in patterns if p != fragment) + (fragment,)
    return refreshed[-capacity:] if capacity > 0 else ()
