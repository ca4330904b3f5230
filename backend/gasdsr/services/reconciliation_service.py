# Overview: Daily opening/closing reconciliation per item, with rollover into the next day.

"""
Daily stock reconciliation.

Closing balances (all clamped at zero, full computed first):
    closing_full  = max(0, floor(opening_full + full_purchase + refilled + received_gas
                                 - gas_sales - transfer_gas))
    total_units   = max(0, floor(opening_full + opening_empty + full_purchase + empty_purchase
                                 + received_gas + received_empty + returns
                                 - cylinder_sales - deposits - transfer_gas - transfer_empty))
    closing_empty = max(0, total_units - closing_full)

Openings for day D, per item:
    1. a locked (explicitly entered) opening on D's entry
    2. the prior day's closing
    3. an unlocked opening already on D's entry
    4. 0
A prior day that has not been reconciled yet contributes nothing; the
chain is best effort and never waits.

Rollover: D's closing becomes D+1's opening unless D+1's opening is locked.

reconcile() is pure and deterministic. run_reconciliation() wires it to a
store (database, HTTP or the offline-capable gateway).
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field, replace
from datetime import date, tzinfo
from typing import Iterable, Optional

from gasdsr.time_utils import format_business_date, shift_day
from .aggregation_service import AggregationResult, DailyTotals, aggregate
from .normalizer import is_identified
from .snapshot_parser import TransactionSnapshot
from .stock_records import DailyStockEntry, Item, UpsertResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClosingBalances:
    closing_full: int
    closing_empty: int
    total_units: int


def compute_closing(
    opening_full: float,
    opening_empty: float,
    refilled: float = 0,
    gas_sales: float = 0,
    cylinder_sales: float = 0,
    deposits: float = 0,
    returns: float = 0,
    *,
    full_purchase: float = 0,
    empty_purchase: float = 0,
    transfer_gas: float = 0,
    transfer_empty: float = 0,
    received_gas: float = 0,
    received_empty: float = 0,
) -> ClosingBalances:
    closing_full = max(0, math.floor(
        opening_full + full_purchase + refilled + received_gas - gas_sales - transfer_gas
    ))
    total_units = max(0, math.floor(
        opening_full + opening_empty + full_purchase + empty_purchase
        + received_gas + received_empty + returns
        - cylinder_sales - deposits - transfer_gas - transfer_empty
    ))
    closing_empty = max(0, total_units - closing_full)
    return ClosingBalances(closing_full=closing_full, closing_empty=closing_empty, total_units=total_units)


# Informational split of cylinder_sales; not a separate movement
_BREAKDOWN_ONLY = frozenset({"full_cylinder_sales", "empty_cylinder_sales"})


@dataclass
class ReconcileResult:
    current: list[DailyStockEntry] = field(default_factory=list)
    next_day_openings: list[DailyStockEntry] = field(default_factory=list)


def _by_key(entries: Iterable[DailyStockEntry], employee_id: Optional[str]) -> dict[str, DailyStockEntry]:
    """Index one scope's entries by item key; other scopes and unidentified rows are dropped."""
    indexed: dict[str, DailyStockEntry] = {}
    for entry in entries:
        if (entry.employee_id or None) != (employee_id or None):
            continue
        if is_identified(entry.item_key):
            indexed[entry.item_key] = entry
    return indexed


def _opening(
    existing: Optional[DailyStockEntry],
    prior: Optional[DailyStockEntry],
    opening_attr: str,
    closing_attr: str,
) -> int:
    if existing is not None and existing.opening_locked and getattr(existing, opening_attr) is not None:
        return getattr(existing, opening_attr)
    if prior is not None and getattr(prior, closing_attr) is not None:
        return getattr(prior, closing_attr)
    if existing is not None and getattr(existing, opening_attr) is not None:
        return getattr(existing, opening_attr)
    return 0


def _universe(
    items: Iterable[Item],
    totals: AggregationResult,
    existing: dict[str, DailyStockEntry],
) -> list[tuple[str, str, Optional[str], Optional[DailyTotals]]]:
    """(key, display name, item id, totals) for every item to process, catalog order first."""
    rows = []
    seen: set[str] = set()
    consumed: set[str] = set()

    for item in items:
        key = item.key
        if not is_identified(key) or key in seen:
            continue
        seen.add(key)
        consumed |= totals.keys_for(item.ref)
        rows.append((key, item.name, item.id or None, totals.lookup(item.ref)))

    for key, day_totals in totals.by_key.items():
        if key in seen or key in consumed:
            continue
        seen.add(key)
        rows.append((key, day_totals.item_name, day_totals.item_id, day_totals))

    for key, entry in existing.items():
        if key in seen or key in consumed:
            continue
        seen.add(key)
        rows.append((key, entry.item_name, entry.item_id, None))

    return rows


def reconcile(
    day: date,
    items: Iterable[Item],
    totals: AggregationResult,
    prior_day_entries: Iterable[DailyStockEntry],
    *,
    existing_entries: Iterable[DailyStockEntry] = (),
    next_day_entries: Iterable[DailyStockEntry] = (),
    employee_id: Optional[str] = None,
) -> ReconcileResult:
    """
    Reconcile one business day for one scope.

    The item universe is the union of catalog items, items with movements
    in ``totals`` and items that already have an entry for ``day``.
    """
    existing = _by_key(existing_entries, employee_id)
    prior = _by_key(prior_day_entries, employee_id)
    upcoming = _by_key(next_day_entries, employee_id)
    next_day = shift_day(day, 1)
    result = ReconcileResult()

    for key, name, item_id, day_totals in _universe(items, totals, existing):
        current_entry = existing.get(key)
        prior_entry = prior.get(key)
        moves = day_totals.movements() if day_totals is not None else DailyTotals().movements()

        opening_full = _opening(current_entry, prior_entry, "opening_full", "closing_full")
        opening_empty = _opening(current_entry, prior_entry, "opening_empty", "closing_empty")
        balances = compute_closing(
            opening_full,
            opening_empty,
            **{k: v for k, v in moves.items() if k not in _BREAKDOWN_ONLY},
        )

        entry = DailyStockEntry(
            date=day,
            item_name=current_entry.item_name if current_entry is not None else name,
            item_id=item_id or (current_entry.item_id if current_entry is not None else None),
            employee_id=employee_id,
            opening_full=opening_full,
            opening_empty=opening_empty,
            opening_locked=bool(current_entry is not None and current_entry.opening_locked),
            closing_full=balances.closing_full,
            closing_empty=balances.closing_empty,
            **moves,
        )
        result.current.append(entry)

        following = upcoming.get(key)
        if following is not None and following.opening_locked:
            continue
        base = following if following is not None else DailyStockEntry(
            date=next_day, item_name=entry.item_name, item_id=entry.item_id, employee_id=employee_id,
        )
        result.next_day_openings.append(replace(
            base,
            opening_full=balances.closing_full,
            opening_empty=balances.closing_empty,
            opening_locked=False,
        ))

    return result


# ---------------------------------------------------------------------------
# Store-backed run
# ---------------------------------------------------------------------------

@dataclass
class ReconciliationRun:
    day: date
    current: list[DailyStockEntry]
    next_day_openings: list[DailyStockEntry]
    skipped: int = 0
    stale: bool = False
    messages: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "date": format_business_date(self.day),
            "current": [e.to_dict() for e in self.current],
            "nextDayOpenings": [e.to_dict() for e in self.next_day_openings],
            "skipped": self.skipped,
            "stale": self.stale,
            "messages": self.messages,
        }


def current_patch(entry: DailyStockEntry) -> dict:
    """Full wire record for a reconciled day; does not change the opening lock."""
    patch = entry.to_dict()
    patch.pop("pendingSync", None)
    return patch


def opening_patch(entry: DailyStockEntry) -> dict:
    """Partial wire record carrying only rolled-forward openings."""
    patch = {
        "date": format_business_date(entry.date),
        "itemName": entry.item_name,
        "openingFull": entry.opening_full,
        "openingEmpty": entry.opening_empty,
        "openingLocked": False,
    }
    if entry.item_id:
        patch["itemId"] = entry.item_id
    if entry.employee_id:
        patch["employeeId"] = entry.employee_id
    return patch


def _seed_priors(store, day, names_by_key, prior_entries, employee_id):
    """Fill gaps in the prior day with the most recent earlier entry per item."""
    have = {e.item_key for e in prior_entries}
    seeded = list(prior_entries)
    for key, name in names_by_key.items():
        if key in have:
            continue
        previous = store.previous(name, day, employee_id)
        if previous is not None:
            seeded.append(previous)
    return seeded


def run_reconciliation(
    store,
    day: date,
    items: Iterable[Item],
    snapshot: TransactionSnapshot,
    *,
    employee_id: Optional[str] = None,
    tz: str | tzinfo | None = None,
) -> ReconciliationRun:
    """
    Aggregate, reconcile and persist one business day for one scope.

    ``store`` provides list_for_date(day, employee_id), previous(name, day,
    employee_id) and upsert(patch) -> UpsertResult. Nothing is written until
    every item has been computed.
    """
    items = list(items)
    existing = store.list_for_date(day, employee_id)
    prior = store.list_for_date(shift_day(day, -1), employee_id)
    upcoming = store.list_for_date(shift_day(day, 1), employee_id)

    totals = aggregate(
        day,
        snapshot.sales,
        snapshot.cylinder_transactions,
        snapshot.refills,
        tz=tz,
        items=items,
    )

    locked = {e.item_key for e in existing if e.opening_locked}
    names_by_key = {item.key: item.name for item in items if is_identified(item.key)}
    for key, day_totals in totals.by_key.items():
        names_by_key.setdefault(key, day_totals.item_name)
    for entry in existing:
        names_by_key.setdefault(entry.item_key, entry.item_name)
    for key in locked:
        names_by_key.pop(key, None)
    prior = _seed_priors(store, day, names_by_key, prior, employee_id)

    result = reconcile(
        day,
        items,
        totals,
        prior,
        existing_entries=existing,
        next_day_entries=upcoming,
        employee_id=employee_id,
    )

    writes: list[UpsertResult] = [store.upsert(current_patch(e)) for e in result.current]
    writes += [store.upsert(opening_patch(e)) for e in result.next_day_openings]

    messages = sorted({w.message for w in writes if w.message})
    run = ReconciliationRun(
        day=day,
        current=[w.entry for w in writes[:len(result.current)]],
        next_day_openings=[w.entry for w in writes[len(result.current):]],
        skipped=totals.skipped,
        stale=any(w.stale for w in writes),
        messages=messages,
    )
    logger.info(
        "Reconciled %s (%s): %d item(s), %d rollover(s), stale=%s",
        format_business_date(day),
        f"employee {employee_id}" if employee_id else "admin",
        len(run.current),
        len(run.next_day_openings),
        run.stale,
    )
    return run
