# Overview: Value types shared by the aggregation, reconciliation and reservation services.

"""
Stock record types.

Items are read-only catalog references. Transaction records are read-only
snapshots of what happened during a day. DailyStockEntry is the reconciled
row for one item on one date within one scope (admin scope when
employee_id is None, per-employee scope otherwise).

Wire form (JSON) uses camelCase keys; see DailyStockEntry.to_dict.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date, datetime
from enum import Enum
from typing import Any, Optional, Union

from gasdsr.time_utils import format_business_date, parse_business_date
from gasdsr.validation import coerce_movement_quantity
from .normalizer import normalize_name


class Category(str, Enum):
    GAS = "gas"
    CYLINDER = "cylinder"


class CylinderStatus(str, Enum):
    EMPTY = "empty"
    FULL = "full"


class CylinderSize(str, Enum):
    LARGE = "large"
    SMALL = "small"


class TransferDirection(str, Enum):
    OUT = "out"
    IN = "in"


def parse_category(value: Any) -> Category:
    try:
        return Category(str(value).strip().lower())
    except ValueError:
        raise ValueError(f"unknown category: {value!r}")


def parse_cylinder_status(value: Any, default: CylinderStatus | None = None) -> CylinderStatus | None:
    """
    Parse a cylinder status. "full_to_empty" (customer takes a full cylinder
    and hands back an empty one) draws from the full pool, so it maps to FULL.
    """
    if value is None or value == "":
        return default
    s = str(value).strip().lower()
    if s == "full_to_empty":
        return CylinderStatus.FULL
    try:
        return CylinderStatus(s)
    except ValueError:
        raise ValueError(f"unknown cylinder status: {value!r}")


@dataclass(frozen=True)
class ItemRef:
    """Reference to a catalog item by stable id and/or display name."""
    id: Optional[str] = None
    name: Optional[str] = None

    @property
    def key(self) -> str:
        return normalize_name(self.name)

    @property
    def is_empty(self) -> bool:
        return not self.id and not self.key

    def matches(self, other: Optional["ItemRef"]) -> bool:
        """Same item: by id when both sides carry one, otherwise by normalized name."""
        if other is None:
            return False
        if self.id and other.id:
            return self.id == other.id
        return bool(self.key) and self.key == other.key

    @classmethod
    def from_value(cls, value: Any, name: Any = None) -> Optional["ItemRef"]:
        """
        Build a ref from an ItemRef, a {"_id"/"id", "name"} mapping or a bare id.
        An explicit name overrides a name found in the mapping.
        """
        if isinstance(value, ItemRef):
            ref = value
        elif isinstance(value, dict):
            raw_id = value.get("_id", value.get("id"))
            ref = cls(
                id=str(raw_id) if raw_id not in (None, "") else None,
                name=value.get("name") if isinstance(value.get("name"), str) else None,
            )
        elif value not in (None, ""):
            ref = cls(id=str(value))
        else:
            ref = cls()

        if isinstance(name, str) and name.strip():
            ref = replace(ref, name=name)
        return None if ref.is_empty else ref


@dataclass(frozen=True)
class Item:
    id: str
    name: str
    category: Category
    cylinder_size: Optional[CylinderSize] = None
    cylinder_status: Optional[CylinderStatus] = None

    @property
    def key(self) -> str:
        return normalize_name(self.name)

    @property
    def ref(self) -> ItemRef:
        return ItemRef(id=self.id, name=self.name)

    @classmethod
    def from_dict(cls, data: dict) -> "Item":
        raw_id = data.get("_id", data.get("id"))
        size = data.get("cylinderSize")
        return cls(
            id=str(raw_id) if raw_id not in (None, "") else "",
            name=str(data.get("name") or ""),
            category=parse_category(data.get("category", "cylinder")),
            cylinder_size=CylinderSize(size) if size in ("large", "small") else None,
            cylinder_status=parse_cylinder_status(data.get("cylinderStatus")),
        )


# ---------------------------------------------------------------------------
# Transaction records (read-only snapshots)
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class GasSaleLine:
    item: ItemRef
    quantity: int
    occurred_at: Optional[datetime]
    # Full cylinder the gas is dispensed from, if known
    cylinder: Optional[ItemRef] = None


@dataclass(frozen=True)
class CylinderSaleLine:
    item: ItemRef
    quantity: int
    cylinder_status: CylinderStatus
    occurred_at: Optional[datetime]
    # Gas product swapped in when a full cylinder is sold
    gas: Optional[ItemRef] = None


@dataclass(frozen=True)
class RefillRecord:
    cylinder: ItemRef
    quantity: int
    occurred_at: Optional[datetime]


@dataclass(frozen=True)
class DepositRecord:
    item: ItemRef
    quantity: int
    occurred_at: Optional[datetime]


@dataclass(frozen=True)
class ReturnRecord:
    item: ItemRef
    quantity: int
    occurred_at: Optional[datetime]


@dataclass(frozen=True)
class PurchaseRecord:
    item: ItemRef
    quantity: int
    cylinder_status: CylinderStatus
    occurred_at: Optional[datetime]


@dataclass(frozen=True)
class TransferRecord:
    item: ItemRef
    quantity: int
    cylinder_status: CylinderStatus
    direction: TransferDirection
    occurred_at: Optional[datetime]


TransactionRecord = Union[
    GasSaleLine,
    CylinderSaleLine,
    RefillRecord,
    DepositRecord,
    ReturnRecord,
    PurchaseRecord,
    TransferRecord,
]


@dataclass(frozen=True)
class CartLine:
    """One unsaved line of a sale being built. Never persisted."""
    category: Category
    item: ItemRef
    quantity: int
    cylinder_status: Optional[CylinderStatus] = None
    linked_cylinder: Optional[ItemRef] = None
    linked_gas: Optional[ItemRef] = None

    @property
    def effective_status(self) -> CylinderStatus:
        return self.cylinder_status or CylinderStatus.EMPTY


# ---------------------------------------------------------------------------
# Daily stock entry
# ---------------------------------------------------------------------------

# attribute -> wire key, for every movement counter (default 0)
MOVEMENT_FIELDS = {
    "refilled": "refilled",
    "cylinder_sales": "cylinderSales",
    "gas_sales": "gasSales",
    "deposits": "deposits",
    "returns": "returns",
    "full_cylinder_sales": "fullCylinderSales",
    "empty_cylinder_sales": "emptyCylinderSales",
    "full_purchase": "fullPurchase",
    "empty_purchase": "emptyPurchase",
    "transfer_gas": "transferGas",
    "transfer_empty": "transferEmpty",
    "received_gas": "receivedGas",
    "received_empty": "receivedEmpty",
}

# attribute -> wire key, for balances that may be absent
BALANCE_FIELDS = {
    "opening_full": "openingFull",
    "opening_empty": "openingEmpty",
    "closing_full": "closingFull",
    "closing_empty": "closingEmpty",
}


@dataclass(frozen=True)
class DailyStockEntry:
    date: date
    item_name: str
    item_id: Optional[str] = None
    employee_id: Optional[str] = None

    # None = not set for this day yet
    opening_full: Optional[int] = None
    opening_empty: Optional[int] = None
    # True when the opening was entered explicitly; rollover never overwrites it
    opening_locked: bool = False

    refilled: int = 0
    cylinder_sales: int = 0
    gas_sales: int = 0
    deposits: int = 0
    returns: int = 0
    full_cylinder_sales: int = 0
    empty_cylinder_sales: int = 0
    full_purchase: int = 0
    empty_purchase: int = 0
    transfer_gas: int = 0
    transfer_empty: int = 0
    received_gas: int = 0
    received_empty: int = 0

    # None until the day is reconciled
    closing_full: Optional[int] = None
    closing_empty: Optional[int] = None

    pending_sync: bool = field(default=False, compare=False)

    @property
    def item_key(self) -> str:
        return normalize_name(self.item_name)

    @property
    def scope_key(self) -> tuple[str, str, str]:
        """Merge identity: (date, normalized item name, employee id or "")."""
        return (format_business_date(self.date), self.item_key, self.employee_id or "")

    @property
    def has_opening(self) -> bool:
        return self.opening_full is not None or self.opening_empty is not None

    @property
    def is_closed(self) -> bool:
        return self.closing_full is not None and self.closing_empty is not None

    def to_dict(self) -> dict:
        data = {
            "date": format_business_date(self.date),
            "itemName": self.item_name,
            "itemId": self.item_id,
            "employeeId": self.employee_id,
            "openingLocked": self.opening_locked,
        }
        for attr, wire in BALANCE_FIELDS.items():
            data[wire] = getattr(self, attr)
        for attr, wire in MOVEMENT_FIELDS.items():
            data[wire] = getattr(self, attr)
        if self.pending_sync:
            data["pendingSync"] = True
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "DailyStockEntry":
        """Lenient read of a wire/cached record (trusted source, already validated once)."""
        kwargs: dict[str, Any] = {
            "date": parse_business_date(data.get("date")),
            "item_name": str(data.get("itemName") or "").strip(),
            "item_id": _optional_str(data.get("itemId")),
            "employee_id": _optional_str(data.get("employeeId")),
            "opening_locked": bool(data.get("openingLocked", False)),
            "pending_sync": bool(data.get("pendingSync", False)),
        }
        for attr, wire in BALANCE_FIELDS.items():
            value = data.get(wire)
            kwargs[attr] = coerce_movement_quantity(value) if value is not None else None
        for attr, wire in MOVEMENT_FIELDS.items():
            kwargs[attr] = coerce_movement_quantity(data.get(wire))
        return cls(**kwargs)


def _optional_str(value: Any) -> Optional[str]:
    if value in (None, ""):
        return None
    return str(value)


def apply_patch(existing: Optional[DailyStockEntry], patch: dict) -> DailyStockEntry:
    """
    Merge a validated partial wire record into an entry (last write wins).

    Omitted fields keep their previous values. Opening balances supplied
    with openingLocked=False (rollover writes) are dropped when the existing
    opening is locked.
    """
    if existing is None:
        existing = DailyStockEntry(
            date=parse_business_date(patch["date"]),
            item_name=patch["itemName"],
            employee_id=_optional_str(patch.get("employeeId")),
        )

    updates: dict[str, Any] = {"item_name": patch.get("itemName") or existing.item_name}
    if patch.get("itemId"):
        updates["item_id"] = str(patch["itemId"])

    for attr, wire in MOVEMENT_FIELDS.items():
        if patch.get(wire) is not None:
            updates[attr] = patch[wire]

    for attr in ("closing_full", "closing_empty"):
        wire = BALANCE_FIELDS[attr]
        if patch.get(wire) is not None:
            updates[attr] = patch[wire]

    touches_opening = patch.get("openingFull") is not None or patch.get("openingEmpty") is not None
    if touches_opening:
        lock = patch.get("openingLocked", True)
        if not (lock is False and existing.opening_locked):
            for attr in ("opening_full", "opening_empty"):
                wire = BALANCE_FIELDS[attr]
                if patch.get(wire) is not None:
                    updates[attr] = patch[wire]
            updates["opening_locked"] = bool(lock)
    elif "openingLocked" in patch:
        updates["opening_locked"] = bool(patch["openingLocked"])

    return replace(existing, **updates)


@dataclass(frozen=True)
class UpsertResult:
    """Outcome of a store write. persisted=False means only the local mirror has it."""
    entry: DailyStockEntry
    persisted: bool = True
    message: Optional[str] = None

    @property
    def stale(self) -> bool:
        return not self.persisted
