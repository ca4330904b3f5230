# Overview: Soft stock reservations implied by unsaved cart lines.

"""
Reservation calculator for sale entry.

WHY: Each cart line is checked against the authoritative available stock
when it is entered, but nothing is deducted until the sale is submitted.
Without subtracting what other lines in the same cart already claim, three
lines can each fit under the ceiling and still oversell together.

Pools and who draws from them:
- gas item G:            gas lines for G, full-cylinder lines whose linked gas is G
- cylinder C, full:      full cylinder lines for C, gas lines dispensed from C
- cylinder C, empty:     empty cylinder lines for C (a line with no status is empty)

The calculator only reads the cart and the inventory snapshot; it never
touches persisted entries.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Optional, Sequence

from gasdsr.validation import ValidationError, coerce_movement_quantity, parse_user_quantity
from .stock_records import CartLine, Category, CylinderStatus, ItemRef, parse_category, parse_cylinder_status


class StockInsufficientError(Exception):
    """Raised when a requested cart quantity exceeds available minus reserved stock."""

    def __init__(
        self,
        item_name: str,
        stock_type: str,
        available: int,
        reserved: int,
        required: int,
    ):
        self.item_name = item_name
        self.stock_type = stock_type
        self.available = available
        self.reserved = reserved
        self.remaining = available - reserved
        self.required = required
        super().__init__(
            f"Insufficient {stock_type} stock for {item_name}. "
            f"Available: {available}, Reserved: {reserved}, "
            f"Remaining: {self.remaining}, Required: {required}"
        )

    def to_dict(self) -> dict:
        return {
            "error": str(self),
            "itemName": self.item_name,
            "stockType": self.stock_type,
            "available": self.available,
            "reserved": self.reserved,
            "remaining": self.remaining,
            "required": self.required,
        }


@dataclass(frozen=True)
class StockLevels:
    """Authoritative availability of one item from the inventory snapshot."""
    gas: int = 0
    full: int = 0
    empty: int = 0


@dataclass
class InventorySnapshot:
    """Stock levels by item id, with normalized name as fallback."""
    by_id: dict[str, StockLevels] = field(default_factory=dict)
    by_key: dict[str, StockLevels] = field(default_factory=dict)

    def add(self, ref: ItemRef, levels: StockLevels) -> None:
        if ref.id:
            self.by_id[ref.id] = levels
        if ref.key:
            self.by_key[ref.key] = levels

    def levels(self, ref: ItemRef) -> StockLevels:
        if ref.id and ref.id in self.by_id:
            return self.by_id[ref.id]
        return self.by_key.get(ref.key, StockLevels())

    def available(self, ref: ItemRef, category: Category, status: Optional[CylinderStatus] = None) -> int:
        levels = self.levels(ref)
        if category is Category.GAS:
            return levels.gas
        if category is Category.CYLINDER:
            return levels.full if status is CylinderStatus.FULL else levels.empty
        raise TypeError(f"unhandled category: {category!r}")

    @classmethod
    def from_rows(cls, rows: Iterable[dict]) -> "InventorySnapshot":
        """
        Build from inventory rows: {"productId"/"_id", "productName"/"name",
        "currentStock", "availableFull", "availableEmpty"}.
        """
        snapshot = cls()
        for row in rows or []:
            if not isinstance(row, dict):
                continue
            ref = ItemRef.from_value(
                row.get("productId", row.get("_id", row.get("id"))),
                name=row.get("productName", row.get("name")),
            )
            if ref is None:
                continue
            snapshot.add(ref, StockLevels(
                gas=coerce_movement_quantity(row.get("currentStock")),
                full=coerce_movement_quantity(row.get("availableFull")),
                empty=coerce_movement_quantity(row.get("availableEmpty")),
            ))
        return snapshot


def _line_quantity(line: CartLine) -> int:
    try:
        qty = int(line.quantity)
    except (TypeError, ValueError):
        return 0
    return max(0, qty)


def _contribution(
    line: CartLine,
    item: ItemRef,
    category: Category,
    status: Optional[CylinderStatus],
) -> int:
    qty = _line_quantity(line)

    if category is Category.GAS:
        if line.category is Category.GAS:
            return qty if line.item.matches(item) else 0
        if line.category is Category.CYLINDER:
            if line.effective_status is CylinderStatus.FULL and item.matches(line.linked_gas):
                return qty
            return 0
        raise TypeError(f"unhandled cart line category: {line.category!r}")

    if category is Category.CYLINDER:
        wanted = status or CylinderStatus.EMPTY
        if line.category is Category.CYLINDER:
            if line.item.matches(item) and line.effective_status is wanted:
                return qty
            return 0
        if line.category is Category.GAS:
            if wanted is CylinderStatus.FULL and item.matches(line.linked_cylinder):
                return qty
            return 0
        raise TypeError(f"unhandled cart line category: {line.category!r}")

    raise TypeError(f"unhandled category: {category!r}")


def reserved(
    cart: Sequence[CartLine],
    item: ItemRef,
    category: Category,
    cylinder_status: Optional[CylinderStatus] = None,
    *,
    exclude_index: Optional[int] = None,
) -> int:
    """
    Units of an item's pool already claimed by lines in the cart.

    Args:
        cart: Unsaved cart lines
        item: Item whose pool is queried
        category: GAS for a gas pool, CYLINDER for a cylinder pool
        cylinder_status: FULL or EMPTY for cylinder pools (default EMPTY)
        exclude_index: Line being edited; its own quantity is not a reservation
    """
    return sum(
        _contribution(line, item, category, cylinder_status)
        for index, line in enumerate(cart)
        if index != exclude_index
    )


def available_stock(
    authoritative: int,
    cart: Sequence[CartLine],
    item: ItemRef,
    category: Category,
    cylinder_status: Optional[CylinderStatus] = None,
    *,
    exclude_index: Optional[int] = None,
) -> int:
    """Authoritative availability minus the cart's soft reservations (may go negative)."""
    return authoritative - reserved(cart, item, category, cylinder_status, exclude_index=exclude_index)


def _stock_type(category: Category, status: Optional[CylinderStatus]) -> str:
    if category is Category.GAS:
        return "Gas"
    return "Full Cylinders" if status is CylinderStatus.FULL else "Empty Cylinders"


def check_quantity(
    requested: int,
    authoritative: int,
    cart: Sequence[CartLine],
    item: ItemRef,
    category: Category,
    cylinder_status: Optional[CylinderStatus] = None,
    *,
    exclude_index: Optional[int] = None,
) -> int:
    """
    Ensure ``requested`` units fit in the pool. Returns the remaining units
    before this request; raises StockInsufficientError otherwise.
    """
    held = reserved(cart, item, category, cylinder_status, exclude_index=exclude_index)
    remaining = authoritative - held
    if requested > remaining:
        raise StockInsufficientError(
            item_name=item.name or item.id or "item",
            stock_type=_stock_type(category, cylinder_status),
            available=authoritative,
            reserved=held,
            required=requested,
        )
    return remaining


@dataclass(frozen=True)
class PoolCheck:
    item: ItemRef
    category: Category
    cylinder_status: Optional[CylinderStatus]
    available: int
    reserved: int
    required: int

    @property
    def remaining(self) -> int:
        return self.available - self.reserved

    def to_dict(self) -> dict:
        return {
            "itemName": self.item.name,
            "itemId": self.item.id,
            "category": self.category.value,
            "cylinderStatus": self.cylinder_status.value if self.cylinder_status else None,
            "available": self.available,
            "reserved": self.reserved,
            "remaining": self.remaining,
            "required": self.required,
        }


def pools_for(line: CartLine) -> list[tuple[ItemRef, Category, Optional[CylinderStatus]]]:
    """Every pool a cart line draws from."""
    if line.category is Category.GAS:
        pools = [(line.item, Category.GAS, None)]
        if line.linked_cylinder is not None:
            pools.append((line.linked_cylinder, Category.CYLINDER, CylinderStatus.FULL))
        return pools
    if line.category is Category.CYLINDER:
        pools = [(line.item, Category.CYLINDER, line.effective_status)]
        if line.effective_status is CylinderStatus.FULL and line.linked_gas is not None:
            pools.append((line.linked_gas, Category.GAS, None))
        return pools
    raise TypeError(f"unhandled cart line category: {line.category!r}")


def validate_line(
    cart: Sequence[CartLine],
    line: CartLine,
    inventory: InventorySnapshot,
    *,
    edit_index: Optional[int] = None,
) -> list[PoolCheck]:
    """
    Check a new (or edited) line against every pool it draws from.

    Raises StockInsufficientError on the first pool that cannot cover the
    line; the line must then not be added.
    """
    checks = []
    requested = _line_quantity(line)
    for ref, category, status in pools_for(line):
        authoritative = inventory.available(ref, category, status)
        held = reserved(cart, ref, category, status, exclude_index=edit_index)
        check_quantity(requested, authoritative, cart, ref, category, status, exclude_index=edit_index)
        checks.append(PoolCheck(ref, category, status, authoritative, held, requested))
    return checks


def add_line(
    cart: Sequence[CartLine],
    line: CartLine,
    inventory: InventorySnapshot,
    *,
    edit_index: Optional[int] = None,
) -> list[CartLine]:
    """Return a new cart with the line added (or replacing ``edit_index``) once it passes validation."""
    validate_line(cart, line, inventory, edit_index=edit_index)
    updated = list(cart)
    if edit_index is not None and 0 <= edit_index < len(updated):
        updated[edit_index] = line
    else:
        updated.append(line)
    return updated


def parse_cart_line(data: dict) -> CartLine:
    """
    Build a cart line from its JSON form. Quantities are user input, so
    they are validated strictly (ValidationError on bad values).
    """
    if not isinstance(data, dict):
        raise ValidationError("cart line must be an object")
    try:
        category = parse_category(data.get("category"))
        status = parse_cylinder_status(data.get("cylinderStatus"))
    except ValueError as e:
        raise ValidationError(str(e))

    item = ItemRef.from_value(data.get("productId", data.get("product")), name=data.get("productName"))
    if item is None:
        raise ValidationError("cart line requires productId or productName")

    return CartLine(
        category=category,
        item=item,
        quantity=parse_user_quantity(data.get("quantity"), "quantity"),
        cylinder_status=status if category is Category.CYLINDER else None,
        linked_cylinder=ItemRef.from_value(data.get("cylinderProductId"), name=data.get("cylinderName")),
        linked_gas=ItemRef.from_value(data.get("gasProductId"), name=data.get("gasName")),
    )
