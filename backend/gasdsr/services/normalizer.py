# Overview: Canonical item-name keys used for every join in the reconciliation engine.

from __future__ import annotations

import re

_WHITESPACE_RE = re.compile(r"\s+")

# Key returned for names that cannot identify an item
UNIDENTIFIED = ""


def normalize_name(raw) -> str:
    """
    Canonicalize an item display name into a lookup key.

    Trims, collapses internal whitespace runs to one space and lowercases.
    Strings and numbers are accepted; anything else (None, dicts, bools)
    yields the empty key, which callers treat as unidentified.

    This is the only equality used between names coming from sales,
    cylinder transactions, refills, the catalog and persisted entries.
    """
    if isinstance(raw, bool) or not isinstance(raw, (str, int, float)):
        return UNIDENTIFIED
    return _WHITESPACE_RE.sub(" ", str(raw)).strip().lower()


def is_identified(key: str) -> bool:
    return bool(key)
