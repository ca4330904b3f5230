# Overview: Turns raw JSON transaction snapshots into typed transaction records.

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, tzinfo
from typing import Any, Iterable

from gasdsr.time_utils import local_midnight, parse_business_date, parse_iso_datetime, to_aware_utc
from gasdsr.validation import coerce_movement_quantity
from .stock_records import (
    Category,
    CylinderSaleLine,
    CylinderStatus,
    DepositRecord,
    GasSaleLine,
    ItemRef,
    PurchaseRecord,
    RefillRecord,
    ReturnRecord,
    TransactionRecord,
    TransferDirection,
    TransferRecord,
    parse_category,
    parse_cylinder_status,
)

logger = logging.getLogger(__name__)

_TIMESTAMP_KEYS = ("occurredAt", "createdAt", "timestamp")


@dataclass
class TransactionSnapshot:
    """Scoped, read-only transaction inputs for one aggregation run."""
    sales: list[TransactionRecord] = field(default_factory=list)
    cylinder_transactions: list[TransactionRecord] = field(default_factory=list)
    refills: list[TransactionRecord] = field(default_factory=list)


def record_time(row: dict, tz: str | tzinfo | None) -> datetime | None:
    """
    Timestamp of a raw record as an aware UTC datetime.

    ISO timestamps win; records that only carry a "date" (daily roll-up rows)
    are placed at local midnight of that date. A key holding an unparseable
    string is skipped in favour of the next one. Naive timestamps are UTC.
    Nothing usable -> None, which the aggregator treats as outside every day.
    """
    for key in _TIMESTAMP_KEYS:
        value = row.get(key)
        if isinstance(value, datetime):
            return to_aware_utc(value)
        if isinstance(value, str) and value.strip():
            try:
                return parse_iso_datetime(value)
            except ValueError:
                continue

    if row.get("date"):
        try:
            return local_midnight(parse_business_date(row["date"]), tz)
        except ValueError:
            return None
    return None


def _ref(row: dict, id_keys: Iterable[str], name_keys: Iterable[str]) -> ItemRef:
    value = next((row[k] for k in id_keys if row.get(k) not in (None, "")), None)
    name = next((row[k] for k in name_keys if isinstance(row.get(k), str) and row[k].strip()), None)
    return ItemRef.from_value(value, name=name) or ItemRef()


def _optional_ref(row: dict, id_key: str, name_key: str) -> ItemRef | None:
    return ItemRef.from_value(row.get(id_key), name=row.get(name_key))


def parse_sales(sales: Iterable[dict], tz: str | tzinfo | None) -> list[TransactionRecord]:
    """Flatten sale documents into gas and cylinder sale lines."""
    records: list[TransactionRecord] = []
    for sale in sales or []:
        if not isinstance(sale, dict):
            continue
        occurred_at = record_time(sale, tz)
        for line in sale.get("items") or []:
            if not isinstance(line, dict):
                continue
            product = line.get("product")
            item = _ref(line, ("product", "productId"), ("productName",))
            raw_category = line.get("category") or (product.get("category") if isinstance(product, dict) else None)
            try:
                category = parse_category(raw_category)
                status = parse_cylinder_status(line.get("cylinderStatus"), default=CylinderStatus.EMPTY)
            except ValueError as e:
                logger.debug("Skipping sale line: %s", e)
                continue

            quantity = coerce_movement_quantity(line.get("quantity"))
            if category is Category.GAS:
                records.append(GasSaleLine(
                    item=item,
                    quantity=quantity,
                    occurred_at=occurred_at,
                    cylinder=_optional_ref(line, "cylinderProductId", "cylinderName"),
                ))
            elif category is Category.CYLINDER:
                records.append(CylinderSaleLine(
                    item=item,
                    quantity=quantity,
                    cylinder_status=status,
                    occurred_at=occurred_at,
                    gas=_optional_ref(line, "gasProductId", "gasName"),
                ))
            else:
                raise TypeError(f"unhandled category: {category!r}")
    return records


def parse_cylinder_transactions(rows: Iterable[dict], tz: str | tzinfo | None) -> list[TransactionRecord]:
    """
    Deposit/return rows. Accepts either typed rows ({"type": "deposit", "quantity": n})
    or daily roll-up rows carrying depositQuantity/returnQuantity.
    """
    records: list[TransactionRecord] = []
    for row in rows or []:
        if not isinstance(row, dict):
            continue
        occurred_at = record_time(row, tz)
        item = _ref(row, ("cylinderProductId", "product", "productId"), ("cylinderName", "productName"))

        kind = str(row.get("type") or "").strip().lower()
        if kind == "deposit":
            records.append(DepositRecord(item, coerce_movement_quantity(row.get("quantity")), occurred_at))
        elif kind == "return":
            records.append(ReturnRecord(item, coerce_movement_quantity(row.get("quantity")), occurred_at))
        elif kind:
            logger.debug("Skipping cylinder transaction of unknown type %r", kind)
        else:
            if row.get("depositQuantity") is not None:
                records.append(DepositRecord(item, coerce_movement_quantity(row["depositQuantity"]), occurred_at))
            if row.get("returnQuantity") is not None:
                records.append(ReturnRecord(item, coerce_movement_quantity(row["returnQuantity"]), occurred_at))
    return records


def parse_refills(rows: Iterable[dict], tz: str | tzinfo | None) -> list[TransactionRecord]:
    records: list[TransactionRecord] = []
    for row in rows or []:
        if not isinstance(row, dict):
            continue
        quantity = row.get("todayRefill", row.get("quantity"))
        records.append(RefillRecord(
            cylinder=_ref(row, ("cylinderProductId", "productId"), ("cylinderName", "productName")),
            quantity=coerce_movement_quantity(quantity),
            occurred_at=record_time(row, tz),
        ))
    return records


def parse_purchases(rows: Iterable[dict], tz: str | tzinfo | None) -> list[TransactionRecord]:
    records: list[TransactionRecord] = []
    for row in rows or []:
        if not isinstance(row, dict):
            continue
        try:
            status = parse_cylinder_status(row.get("cylinderStatus"), default=CylinderStatus.EMPTY)
        except ValueError as e:
            logger.debug("Skipping purchase: %s", e)
            continue
        records.append(PurchaseRecord(
            item=_ref(row, ("product", "productId"), ("productName",)),
            quantity=coerce_movement_quantity(row.get("quantity")),
            cylinder_status=status,
            occurred_at=record_time(row, tz),
        ))
    return records


def parse_transfers(rows: Iterable[dict], tz: str | tzinfo | None) -> list[TransactionRecord]:
    records: list[TransactionRecord] = []
    for row in rows or []:
        if not isinstance(row, dict):
            continue
        try:
            status = parse_cylinder_status(row.get("cylinderStatus"), default=CylinderStatus.EMPTY)
            direction = TransferDirection(str(row.get("direction") or "").strip().lower())
        except ValueError as e:
            logger.debug("Skipping transfer: %s", e)
            continue
        records.append(TransferRecord(
            item=_ref(row, ("product", "productId"), ("productName",)),
            quantity=coerce_movement_quantity(row.get("quantity")),
            cylinder_status=status,
            direction=direction,
            occurred_at=record_time(row, tz),
        ))
    return records


def parse_snapshot(payload: dict[str, Any], tz: str | tzinfo | None) -> TransactionSnapshot:
    """Parse a full snapshot payload; purchases and transfers travel with cylinder transactions."""
    payload = payload or {}
    return TransactionSnapshot(
        sales=parse_sales(payload.get("sales") or [], tz),
        cylinder_transactions=(
            parse_cylinder_transactions(payload.get("cylinderTransactions") or [], tz)
            + parse_purchases(payload.get("purchases") or [], tz)
            + parse_transfers(payload.get("transfers") or [], tz)
        ),
        refills=parse_refills(payload.get("refills") or [], tz),
    )
