# backend/gasdsr/services/stock_entry_service.py
"""
Daily stock entry store backed by the database.

MERGE RULE: entries are identified by (date, normalized item name,
employee id). An upsert carries a partial wire record; omitted numeric
fields keep their previous values (last write wins per field).

SCOPES: employee_id NULL is the admin scope. Queries filter with IS NULL
explicitly, so admin rows never leak into an employee listing and vice
versa.

Callers own the transaction: functions here flush, routes commit.
"""
from __future__ import annotations

import logging
from datetime import date
from typing import Iterable, Optional

from sqlalchemy.exc import IntegrityError

from gasdsr.extensions import db
from gasdsr.models import DailyStockReport
from gasdsr.time_utils import format_business_date
from gasdsr.validation import ValidationError, coerce_movement_quantity, validate_entry_payload
from .normalizer import is_identified, normalize_name
from .stock_records import Category, DailyStockEntry, UpsertResult, apply_patch, parse_category

logger = logging.getLogger(__name__)


class StockEntryError(Exception):
    """Raised when store operations fail."""
    pass


def _scoped(query, employee_id: Optional[str]):
    if employee_id:
        return query.filter(DailyStockReport.employee_id == str(employee_id))
    return query.filter(DailyStockReport.employee_id.is_(None))


def get_entry(day: str, item_name: str, employee_id: Optional[str] = None) -> DailyStockReport | None:
    key = normalize_name(item_name)
    if not is_identified(key):
        return None
    query = db.session.query(DailyStockReport).filter(
        DailyStockReport.date == day,
        DailyStockReport.item_key == key,
    )
    return _scoped(query, employee_id).first()


def upsert_entry(payload: dict) -> DailyStockReport:
    """
    Merge a partial entry into its row, creating the row if needed.

    Args:
        payload: Wire-form partial entry (validated here)

    Returns:
        DailyStockReport: The stored row (flushed, not committed)

    Raises:
        ValidationError: If the payload is invalid or names no item
        StockEntryError: If a concurrent insert wins the unique constraint
    """
    patch = validate_entry_payload(payload)
    if not is_identified(normalize_name(patch["itemName"])):
        raise ValidationError("itemName does not identify an item")

    row = get_entry(patch["date"], patch["itemName"], patch.get("employeeId"))
    entry = apply_patch(row.to_entry() if row is not None else None, patch)

    if row is None:
        row = DailyStockReport()
        row.apply_entry(entry)
        db.session.add(row)
    else:
        row.apply_entry(entry)

    try:
        db.session.flush()
    except IntegrityError:
        db.session.rollback()
        raise StockEntryError(
            f"Concurrent write for {patch['itemName']} on {patch['date']}; retry the request"
        )
    return row


def list_entries(
    day: Optional[str] = None,
    *,
    employee_id: Optional[str] = None,
    item_name: Optional[str] = None,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    limit: Optional[int] = None,
) -> list[DailyStockReport]:
    """Entries for one scope, newest date first (item name within a date)."""
    query = _scoped(db.session.query(DailyStockReport), employee_id)

    if day:
        query = query.filter(DailyStockReport.date == day)
    if start_date:
        query = query.filter(DailyStockReport.date >= start_date)
    if end_date:
        query = query.filter(DailyStockReport.date <= end_date)
    if item_name:
        query = query.filter(DailyStockReport.item_key == normalize_name(item_name))

    query = query.order_by(DailyStockReport.date.desc(), DailyStockReport.item_key.asc())
    if limit:
        query = query.limit(limit)
    return query.all()


def previous_entry(item_name: str, day: str, employee_id: Optional[str] = None) -> DailyStockReport | None:
    """Most recent entry for the item strictly before ``day`` in the same scope."""
    key = normalize_name(item_name)
    if not is_identified(key):
        return None
    query = db.session.query(DailyStockReport).filter(
        DailyStockReport.item_key == key,
        DailyStockReport.date < day,
    )
    return _scoped(query, employee_id).order_by(DailyStockReport.date.desc()).first()


def delete_entry(day: str, item_name: str, employee_id: Optional[str] = None) -> None:
    row = get_entry(day, item_name, employee_id)
    if row is None:
        raise StockEntryError(f"No entry for {item_name} on {day}")
    db.session.delete(row)
    db.session.flush()


def seed_entries(day: str, items: Iterable[dict], employee_id: Optional[str] = None) -> list[DailyStockReport]:
    """
    Create missing entries for cylinder items, opening from catalog availability.

    Existing entries are left untouched; non-cylinder items are ignored.
    Seeded openings count as explicit (locked).
    """
    created = []
    for item in items or []:
        if not isinstance(item, dict):
            continue
        try:
            category = parse_category(item.get("category", "cylinder"))
        except ValueError:
            continue
        name = str(item.get("name") or item.get("productName") or "").strip()
        if category is not Category.CYLINDER or not is_identified(normalize_name(name)):
            continue
        if get_entry(day, name, employee_id) is not None:
            continue

        payload = {
            "date": day,
            "itemName": name,
            "openingFull": coerce_movement_quantity(item.get("availableFull")),
            "openingEmpty": coerce_movement_quantity(item.get("availableEmpty")),
        }
        raw_id = item.get("_id", item.get("id"))
        if raw_id not in (None, ""):
            payload["itemId"] = str(raw_id)
        if employee_id:
            payload["employeeId"] = employee_id
        created.append(upsert_entry(payload))

    if created:
        logger.info("Seeded %d entr%s for %s", len(created), "y" if len(created) == 1 else "ies", day)
    return created


class SqlReconciliationStore:
    """
    Reconciliation store over the database session.

    Writes are flushed as they happen; commit() ends the run.
    """

    def list_for_date(self, day: date, employee_id: Optional[str] = None) -> list[DailyStockEntry]:
        return [row.to_entry() for row in list_entries(format_business_date(day), employee_id=employee_id)]

    def previous(self, item_name: str, day: date, employee_id: Optional[str] = None) -> DailyStockEntry | None:
        row = previous_entry(item_name, format_business_date(day), employee_id)
        return row.to_entry() if row is not None else None

    def upsert(self, patch: dict) -> UpsertResult:
        return UpsertResult(entry=upsert_entry(patch).to_entry())

    def commit(self) -> None:
        db.session.commit()
