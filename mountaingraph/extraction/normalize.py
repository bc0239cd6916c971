"""Normalization of identifiers and type vocabularies."""

from __future__ import annotations

import re
from typing import Any, Iterable, Optional

_NON_DIGITS = re.compile(r"\D")


def normalize_ein(value: Any) -> Optional[str]:
    """Return the 9-digit tax identifier in ``value`` or ``None``.

    Every non-digit character is stripped first, so "12-3456789" becomes
    "123456789". Anything that does not leave exactly nine digits is dropped.
    """
    if value is None or isinstance(value, bool):
        return None
    digits = _NON_DIGITS.sub("", str(value))
    return digits if len(digits) == 9 else None


def _match_vocabulary(value: Any, vocabulary: Iterable[str]) -> Optional[str]:
    raw = str(value or "").strip()
    if not raw:
        return None
    folded = raw.casefold().replace(" ", "_")
    for allowed in vocabulary:
        if allowed.casefold() == raw.casefold() or allowed.casefold() == folded:
            return allowed
    return None


def normalize_entity_type(value: Any, vocabulary: Iterable[str], default: str = "Other") -> str:
    """Map a model-provided entity type onto the allowed vocabulary."""
    return _match_vocabulary(value, vocabulary) or default


def normalize_relationship_type(
    value: Any, vocabulary: Iterable[str], default: str = "ASSOCIATED_WITH"
) -> str:
    """Map a model-provided relationship type onto the allowed vocabulary."""
    return _match_vocabulary(value, vocabulary) or default


_LEDGER_KEYWORDS = (
    ("Contract", ("contract",)),
    ("Grant", ("grant",)),
    ("Employment", ("employee", "comp", "salary")),
    ("Board", ("board", "officer", "trustee")),
)


def map_ledger_edge_type(raw_type: Any) -> str:
    """Map a free-form ledger edge type onto Contract, Grant, Employment, Board or Other.

    Keywords are matched as case-insensitive substrings in rule order, so
    "officer" and "KeyEmployee" land on Board and Employment.
    """
    norm = str(raw_type or "").lower()
    for edge_type, keywords in _LEDGER_KEYWORDS:
        if any(keyword in norm for keyword in keywords):
            return edge_type
    return "Other"
