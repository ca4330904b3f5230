from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any

from gasdsr.time_utils import parse_business_date, format_business_date


# Upper bound for any single stock figure; keeps typos like 1e12 out of reports
MAX_QUANTITY = 1_000_000


class ValidationError(ValueError):
    """400-level input problem."""


def parse_user_quantity(value: Any, field: str = "quantity") -> int:
    """
    Strictly validate a quantity typed in by a user.

    Accepts non-negative integers, integral floats and plain digit strings.
    Rejects booleans, decimals, scientific notation, blanks and negatives.
    """
    if value is None:
        raise ValidationError(f"{field} is required")

    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")

    if isinstance(value, int):
        qty = value
    elif isinstance(value, float):
        if not math.isfinite(value) or not value.is_integer():
            raise ValidationError(f"{field} must be a whole number")
        qty = int(value)
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer")
        # Reject scientific notation (e.g., "1e15", "1E10")
        if "e" in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)")
        if "." in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)")
        try:
            qty = int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    else:
        raise ValidationError(f"{field} must be an integer")

    if qty < 0:
        raise ValidationError(f"{field} must be >= 0")
    if qty > MAX_QUANTITY:
        raise ValidationError(f"{field} cannot exceed {MAX_QUANTITY}")
    return qty


def coerce_movement_quantity(value: Any) -> int:
    """
    Lenient coercion for quantities read from transaction snapshots.

    Missing, non-numeric, NaN and negative values count as 0; fractions are
    floored. Snapshots come from upstream systems, so bad values are
    neutralised instead of rejected.
    """
    if value is None or isinstance(value, bool):
        return 0
    try:
        qty = float(value)
    except (TypeError, ValueError):
        return 0
    if not math.isfinite(qty) or qty <= 0:
        return 0
    return int(math.floor(qty))


def parse_date_param(value: Any, field: str = "date") -> str:
    """Validate a YYYY-MM-DD parameter and return it in canonical form."""
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError(f"{field} is required")
    try:
        return format_business_date(parse_business_date(value))
    except ValueError:
        raise ValidationError(f"{field} must be a date in YYYY-MM-DD format")


@dataclass(frozen=True)
class EntryValidationPolicy:
    """
    Central policy for daily stock entry payloads:
    - quantity_fields: numeric wire fields a client may set
    - required: fields that must be present on every upsert
    """
    quantity_fields: frozenset[str]
    required: frozenset[str] = frozenset({"date", "itemName"})


ENTRY_POLICY = EntryValidationPolicy(
    quantity_fields=frozenset({
        "openingFull", "openingEmpty",
        "refilled", "cylinderSales", "gasSales", "deposits", "returns",
        "fullCylinderSales", "emptyCylinderSales",
        "fullPurchase", "emptyPurchase",
        "transferGas", "transferEmpty", "receivedGas", "receivedEmpty",
        "closingFull", "closingEmpty",
    }),
)


def validate_entry_payload(payload: Any, policy: EntryValidationPolicy = ENTRY_POLICY) -> dict:
    """
    Validate + normalize a partial daily stock entry in wire form.

    Returns a cleaned patch containing only recognised keys. Numeric fields
    that are omitted (or null) are left out so the merge keeps the previous
    value.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    missing = [f for f in sorted(policy.required) if payload.get(f) in (None, "")]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    patch: dict = {"date": parse_date_param(payload["date"])}

    item_name = payload["itemName"]
    if not isinstance(item_name, (str, int)) or not str(item_name).strip():
        raise ValidationError("itemName cannot be blank")
    patch["itemName"] = str(item_name).strip()

    for key in ("employeeId", "itemId"):
        value = payload.get(key)
        if value not in (None, ""):
            patch[key] = str(value).strip()

    for key in sorted(policy.quantity_fields):
        if payload.get(key) is None:
            continue
        patch[key] = parse_user_quantity(payload[key], key)

    if "openingLocked" in payload and payload["openingLocked"] is not None:
        if not isinstance(payload["openingLocked"], bool):
            raise ValidationError("openingLocked must be a boolean")
        patch["openingLocked"] = payload["openingLocked"]

    return patch
