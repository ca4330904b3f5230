# Overview: Aggregates one business day of transactions into per-item movement totals.

"""
Transaction aggregation for daily stock reconciliation.

Attribution rules:
- Gas sale: counts against the full cylinder it was dispensed from when the
  line names one, otherwise against the gas item itself.
- Cylinder sale: counts as a cylinder sale of that item (plus the full/empty
  breakdown). The gas swapped in with a full cylinder is NOT counted as a gas
  sale; the cylinder's own entry already carries that consumption.
- Refill / deposit / return / purchase / transfer: counted against the item.

Records outside the business day window are ignored. Records whose item
cannot be identified (empty normalized name and no catalog match for the id)
are skipped and counted, never lumped together.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, fields
from datetime import date, tzinfo
from itertools import chain
from typing import Iterable, Optional

from gasdsr.time_utils import day_window, to_aware_utc
from gasdsr.validation import coerce_movement_quantity
from .normalizer import is_identified
from .stock_records import (
    CylinderSaleLine,
    CylinderStatus,
    DepositRecord,
    GasSaleLine,
    Item,
    ItemRef,
    PurchaseRecord,
    RefillRecord,
    ReturnRecord,
    TransactionRecord,
    TransferDirection,
    TransferRecord,
)

logger = logging.getLogger(__name__)


@dataclass
class DailyTotals:
    """Movement totals for one item over one business day."""
    item_name: str = ""
    item_id: Optional[str] = None

    refilled: int = 0
    gas_sales: int = 0
    cylinder_sales: int = 0
    full_cylinder_sales: int = 0
    empty_cylinder_sales: int = 0
    deposits: int = 0
    returns: int = 0
    full_purchase: int = 0
    empty_purchase: int = 0
    transfer_gas: int = 0
    transfer_empty: int = 0
    received_gas: int = 0
    received_empty: int = 0

    def add(self, movement: str, quantity: int) -> None:
        setattr(self, movement, getattr(self, movement) + quantity)

    def movements(self) -> dict[str, int]:
        return {f.name: getattr(self, f.name) for f in fields(self) if f.name not in ("item_name", "item_id")}


@dataclass
class AggregationResult:
    day: date
    by_key: dict[str, DailyTotals] = field(default_factory=dict)
    # Parallel map keyed by stable item id, for lookups when names drift
    by_id: dict[str, DailyTotals] = field(default_factory=dict)
    id_keys: dict[str, set[str]] = field(default_factory=dict)
    skipped: int = 0

    def lookup(self, ref: ItemRef) -> Optional[DailyTotals]:
        """Totals for an item: normalized name first, stable id as fallback."""
        totals = self.by_key.get(ref.key) if ref.key else None
        if totals is None and ref.id:
            totals = self.by_id.get(ref.id)
        return totals

    def keys_for(self, ref: ItemRef) -> set[str]:
        """Every name key whose totals a lookup of ``ref`` accounts for."""
        if ref.key and ref.key in self.by_key:
            return {ref.key}
        if ref.id:
            return set(self.id_keys.get(ref.id, ()))
        return set()


def _movements(record: TransactionRecord) -> list[tuple[ItemRef, str]]:
    """(item, movement counter) pairs a record contributes to."""
    if isinstance(record, GasSaleLine):
        target = record.cylinder if record.cylinder is not None and not record.cylinder.is_empty else record.item
        return [(target, "gas_sales")]
    if isinstance(record, CylinderSaleLine):
        breakdown = "full_cylinder_sales" if record.cylinder_status is CylinderStatus.FULL else "empty_cylinder_sales"
        return [(record.item, "cylinder_sales"), (record.item, breakdown)]
    if isinstance(record, RefillRecord):
        return [(record.cylinder, "refilled")]
    if isinstance(record, DepositRecord):
        return [(record.item, "deposits")]
    if isinstance(record, ReturnRecord):
        return [(record.item, "returns")]
    if isinstance(record, PurchaseRecord):
        movement = "full_purchase" if record.cylinder_status is CylinderStatus.FULL else "empty_purchase"
        return [(record.item, movement)]
    if isinstance(record, TransferRecord):
        full = record.cylinder_status is CylinderStatus.FULL
        if record.direction is TransferDirection.OUT:
            return [(record.item, "transfer_gas" if full else "transfer_empty")]
        return [(record.item, "received_gas" if full else "received_empty")]
    raise TypeError(f"unsupported transaction record: {type(record).__name__}")


def _resolve(ref: ItemRef, catalog: dict[str, Item]) -> ItemRef:
    """Fill in a missing name from the catalog when the ref only has an id."""
    if ref.key or not ref.id:
        return ref
    item = catalog.get(ref.id)
    return item.ref if item is not None else ref


def aggregate(
    day: date,
    sales: Iterable[TransactionRecord] = (),
    cylinder_transactions: Iterable[TransactionRecord] = (),
    refills: Iterable[TransactionRecord] = (),
    *,
    tz: str | tzinfo | None = None,
    items: Iterable[Item] = (),
) -> AggregationResult:
    """
    Aggregate one business day of transactions per normalized item name.

    Args:
        day: Business date to aggregate
        sales: Gas and cylinder sale lines
        cylinder_transactions: Deposits, returns, purchases and transfers
        refills: Refill records
        tz: Business time zone used for the day window
        items: Catalog, used to name refs that only carry an id

    Returns:
        AggregationResult with totals by name key and by item id
    """
    start, end = day_window(day, tz)
    catalog = {item.id: item for item in items if item.id}
    result = AggregationResult(day=day)

    for record in chain(sales, cylinder_transactions, refills):
        occurred_at = record.occurred_at
        if occurred_at is None or not (start <= to_aware_utc(occurred_at) < end):
            continue

        quantity = coerce_movement_quantity(record.quantity)
        unidentified = False
        for raw_ref, movement in _movements(record):
            ref = _resolve(raw_ref, catalog)
            key = ref.key
            if not is_identified(key):
                unidentified = True
                continue
            if quantity <= 0:
                continue

            totals = result.by_key.setdefault(key, DailyTotals(item_name=ref.name or key, item_id=ref.id))
            if totals.item_id is None and ref.id:
                totals.item_id = ref.id
            totals.add(movement, quantity)

            if ref.id:
                by_id = result.by_id.setdefault(ref.id, DailyTotals(item_name=ref.name or key, item_id=ref.id))
                by_id.add(movement, quantity)
                result.id_keys.setdefault(ref.id, set()).add(key)

        if unidentified:
            result.skipped += 1
            logger.debug("Skipped unidentified %s on %s", type(record).__name__, day)

    if result.skipped:
        logger.warning("Aggregation for %s skipped %d record(s) with no identifiable item", day, result.skipped)

    return result
