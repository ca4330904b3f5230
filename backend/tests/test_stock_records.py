# Overview: Pytest coverage for entry merging and wire conversion.

from datetime import date

import pytest
from gasdsr.services.stock_records import (
    CylinderStatus,
    DailyStockEntry,
    ItemRef,
    apply_patch,
    parse_cylinder_status,
)
from gasdsr.validation import ValidationError, validate_entry_payload

D1 = date(2024, 3, 1)


def patch(**fields):
    payload = {"date": "2024-03-01", "itemName": "Cylinder A"}
    payload.update(fields)
    return validate_entry_payload(payload)


class TestApplyPatch:

    def test_new_entry_keeps_unset_openings_empty(self):
        merged = apply_patch(None, patch(gasSales=3))
        assert merged.gas_sales == 3
        assert merged.opening_full is None
        assert merged.has_opening is False
        assert merged.is_closed is False

    def test_omitted_fields_keep_previous_values(self):
        existing = DailyStockEntry(date=D1, item_name="Cylinder A", refilled=4, gas_sales=2, closing_full=6)
        merged = apply_patch(existing, patch(gasSales=5))
        assert merged.refilled == 4
        assert merged.gas_sales == 5
        assert merged.closing_full == 6

    def test_explicit_opening_locks(self):
        merged = apply_patch(None, patch(openingFull=5, openingEmpty=2))
        assert merged.opening_locked is True
        assert (merged.opening_full, merged.opening_empty) == (5, 2)

    def test_rollover_write_does_not_overwrite_locked_opening(self):
        existing = DailyStockEntry(date=D1, item_name="Cylinder A", opening_full=5, opening_empty=2, opening_locked=True)
        merged = apply_patch(existing, patch(openingFull=9, openingEmpty=9, openingLocked=False))
        assert (merged.opening_full, merged.opening_empty) == (5, 2)
        assert merged.opening_locked is True

    def test_rollover_write_updates_unlocked_opening(self):
        existing = DailyStockEntry(date=D1, item_name="Cylinder A", opening_full=5, opening_empty=2)
        merged = apply_patch(existing, patch(openingFull=9, openingEmpty=1, openingLocked=False))
        assert (merged.opening_full, merged.opening_empty) == (9, 1)
        assert merged.opening_locked is False

    def test_lock_flag_alone_unlocks(self):
        existing = DailyStockEntry(date=D1, item_name="Cylinder A", opening_full=5, opening_empty=2, opening_locked=True)
        merged = apply_patch(existing, patch(openingLocked=False))
        assert merged.opening_locked is False
        assert merged.opening_full == 5


class TestWireForm:

    def test_to_dict_uses_camel_case_and_null_balances(self):
        data = DailyStockEntry(date=D1, item_name="Cylinder A", employee_id="emp-1", cylinder_sales=2).to_dict()
        assert data["date"] == "2024-03-01"
        assert data["employeeId"] == "emp-1"
        assert data["cylinderSales"] == 2
        assert data["openingFull"] is None
        assert "pendingSync" not in data

    def test_from_dict_is_lenient(self):
        entry = DailyStockEntry.from_dict({
            "date": "2024-03-01T00:00:00.000Z",
            "itemName": " Cylinder A ",
            "gasSales": "3",
            "returns": -2,
            "closingFull": 4.9,
            "pendingSync": True,
            "_id": "abc",
        })
        assert entry.date == D1
        assert entry.item_name == "Cylinder A"
        assert (entry.gas_sales, entry.returns, entry.closing_full) == (3, 0, 4)
        assert entry.closing_empty is None
        assert entry.pending_sync is True

    def test_scope_key(self):
        entry = DailyStockEntry(date=D1, item_name="  Cylinder  A")
        assert entry.scope_key == ("2024-03-01", "cylinder a", "")


class TestValidation:

    @pytest.mark.parametrize("payload, message", [
        ({"itemName": "A"}, "Missing required fields: date"),
        ({"date": "2024-03-01", "itemName": "   "}, "itemName cannot be blank"),
        ({"date": "03/01/2024", "itemName": "A"}, "date must be a date in YYYY-MM-DD format"),
        ({"date": "2024-03-01", "itemName": "A", "gasSales": -1}, "gasSales must be >= 0"),
        ({"date": "2024-03-01", "itemName": "A", "closingFull": "abc"}, "closingFull must be an integer"),
        ({"date": "2024-03-01", "itemName": "A", "openingLocked": "yes"}, "openingLocked must be a boolean"),
    ])
    def test_rejects_invalid_payloads(self, payload, message):
        with pytest.raises(ValidationError) as exc:
            validate_entry_payload(payload)
        assert str(exc.value) == message

    def test_null_numeric_fields_are_omitted(self):
        cleaned = validate_entry_payload({"date": "2024-03-01", "itemName": "A", "gasSales": None, "refilled": "2"})
        assert "gasSales" not in cleaned
        assert cleaned["refilled"] == 2


def test_full_to_empty_draws_from_full_pool():
    assert parse_cylinder_status("full_to_empty") is CylinderStatus.FULL
    assert parse_cylinder_status(None) is None
    with pytest.raises(ValueError):
        parse_cylinder_status("half")


def test_item_ref_matching():
    assert ItemRef(id="1", name="A").matches(ItemRef(id="1", name="Renamed"))
    assert not ItemRef(id="1", name="A").matches(ItemRef(id="2", name="A"))
    assert ItemRef(name="Cylinder  A").matches(ItemRef(id="9", name="cylinder a"))
    assert ItemRef.from_value({"_id": "7", "name": "X"}, name="Y") == ItemRef(id="7", name="Y")
    assert ItemRef.from_value("") is None
