# Overview: Pytest coverage for cart reservations against available stock.

import pytest
from gasdsr.services.reservation_service import (
    InventorySnapshot,
    StockInsufficientError,
    StockLevels,
    add_line,
    available_stock,
    parse_cart_line,
    reserved,
    validate_line,
)
from gasdsr.services.stock_records import CartLine, Category, CylinderStatus, ItemRef
from gasdsr.validation import ValidationError

CYL_A = ItemRef(id="c1", name="Cylinder A")
LPG = ItemRef(id="g1", name="LPG 12kg")


def gas_line(qty, item=LPG, cylinder=None):
    return CartLine(Category.GAS, item, qty, linked_cylinder=cylinder)


def cylinder_line(qty, status=CylinderStatus.FULL, item=CYL_A, gas=None):
    return CartLine(Category.CYLINDER, item, qty, cylinder_status=status, linked_gas=gas)


def inventory(gas=0, full=0, empty=0):
    snapshot = InventorySnapshot()
    snapshot.add(CYL_A, StockLevels(full=full, empty=empty))
    snapshot.add(LPG, StockLevels(gas=gas))
    return snapshot


class TestReserved:

    def test_gas_lines_reserve_gas_and_linked_full_cylinder(self):
        cart = [gas_line(2, cylinder=CYL_A)]
        assert reserved(cart, LPG, Category.GAS) == 2
        assert reserved(cart, CYL_A, Category.CYLINDER, CylinderStatus.FULL) == 2
        assert reserved(cart, CYL_A, Category.CYLINDER, CylinderStatus.EMPTY) == 0

    def test_full_cylinder_lines_reserve_linked_gas(self):
        cart = [cylinder_line(1, gas=LPG), cylinder_line(4, status=CylinderStatus.EMPTY, gas=LPG)]
        assert reserved(cart, LPG, Category.GAS) == 1
        assert reserved(cart, CYL_A, Category.CYLINDER, CylinderStatus.FULL) == 1
        assert reserved(cart, CYL_A, Category.CYLINDER, CylinderStatus.EMPTY) == 4

    def test_line_without_status_counts_as_empty(self):
        cart = [CartLine(Category.CYLINDER, CYL_A, 3)]
        assert reserved(cart, CYL_A, Category.CYLINDER) == 3
        assert reserved(cart, CYL_A, Category.CYLINDER, CylinderStatus.FULL) == 0

    def test_matches_by_name_when_ids_are_missing(self):
        cart = [gas_line(2, item=ItemRef(name=" lpg  12KG "))]
        assert reserved(cart, LPG, Category.GAS) == 2

    def test_exclude_index(self):
        cart = [gas_line(2), gas_line(3)]
        assert reserved(cart, LPG, Category.GAS, exclude_index=1) == 2

    def test_available_stock_subtracts_reservations(self):
        cart = [gas_line(2, cylinder=CYL_A)]
        assert available_stock(5, cart, CYL_A, Category.CYLINDER, CylinderStatus.FULL) == 3


class TestValidateLine:

    def test_gas_line_linked_to_cylinder_blocks_full_cylinder_sale(self):
        cart = [gas_line(2, item=CYL_A, cylinder=CYL_A)]

        with pytest.raises(StockInsufficientError) as exc:
            validate_line(cart, cylinder_line(1), inventory(full=2))

        err = exc.value
        assert err.available == 2
        assert err.reserved == 2
        assert err.remaining == 0
        assert err.required == 1
        assert str(err) == (
            "Insufficient Full Cylinders stock for Cylinder A. "
            "Available: 2, Reserved: 2, Remaining: 0, Required: 1"
        )

    def test_checks_every_pool_the_line_draws_from(self):
        cart = [gas_line(1)]
        # Cylinder pool has room but the linked gas pool is used up
        with pytest.raises(StockInsufficientError) as exc:
            validate_line(cart, cylinder_line(1, gas=LPG), inventory(gas=1, full=5))
        assert exc.value.stock_type == "Gas"

    def test_returns_pool_checks_when_accepted(self):
        checks = validate_line([], gas_line(2, cylinder=CYL_A), inventory(gas=5, full=3))
        assert [(c.category, c.remaining) for c in checks] == [(Category.GAS, 5), (Category.CYLINDER, 3)]
        assert checks[1].to_dict()["cylinderStatus"] == "full"

    def test_unknown_item_has_no_stock(self):
        with pytest.raises(StockInsufficientError):
            validate_line([], gas_line(1, item=ItemRef(name="Butane")), inventory(gas=10))


class TestAddLine:

    def test_cart_never_double_spends(self):
        stock = inventory(gas=5, full=4, empty=3)
        attempts = [
            gas_line(2, cylinder=CYL_A),
            cylinder_line(2, gas=LPG),
            gas_line(1),
            cylinder_line(1),
            cylinder_line(2, status=CylinderStatus.EMPTY),
            gas_line(2),
            cylinder_line(2, status=CylinderStatus.EMPTY),
        ]
        cart = []
        rejected = 0
        for line in attempts:
            try:
                cart = add_line(cart, line, stock)
            except StockInsufficientError:
                rejected += 1

        assert rejected > 0
        assert reserved(cart, LPG, Category.GAS) <= 5
        assert reserved(cart, CYL_A, Category.CYLINDER, CylinderStatus.FULL) <= 4
        assert reserved(cart, CYL_A, Category.CYLINDER, CylinderStatus.EMPTY) <= 3

    def test_editing_a_line_excludes_its_own_quantity(self):
        stock = inventory(gas=3)
        cart = add_line([], gas_line(2), stock)

        cart = add_line(cart, gas_line(3), stock, edit_index=0)
        assert [line.quantity for line in cart] == [3]

        with pytest.raises(StockInsufficientError):
            add_line(cart, gas_line(1), stock)

    def test_rejected_line_is_not_added(self):
        cart = [gas_line(1)]
        with pytest.raises(StockInsufficientError):
            add_line(cart, gas_line(5), inventory(gas=3))
        assert len(cart) == 1


class TestParsing:

    def test_inventory_rows(self):
        snapshot = InventorySnapshot.from_rows([
            {"productId": "c1", "productName": "Cylinder A", "availableFull": 4, "availableEmpty": "2"},
            {"name": "LPG 12kg", "currentStock": 7.8},
            "junk",
        ])
        assert snapshot.available(CYL_A, Category.CYLINDER, CylinderStatus.FULL) == 4
        assert snapshot.available(CYL_A, Category.CYLINDER, CylinderStatus.EMPTY) == 2
        assert snapshot.available(ItemRef(name="lpg 12kg"), Category.GAS) == 7

    def test_cart_line(self):
        line = parse_cart_line({
            "category": "cylinder",
            "productId": "c1",
            "productName": "Cylinder A",
            "quantity": "2",
            "cylinderStatus": "full_to_empty",
            "gasProductId": "g1",
        })
        assert line.cylinder_status is CylinderStatus.FULL
        assert line.linked_gas == ItemRef(id="g1")
        assert line.quantity == 2

    @pytest.mark.parametrize("quantity", [-1, "1.5", "abc", None, True])
    def test_cart_line_rejects_bad_quantities(self, quantity):
        with pytest.raises(ValidationError):
            parse_cart_line({"category": "gas", "productName": "LPG", "quantity": quantity})

    def test_cart_line_requires_known_category(self):
        with pytest.raises(ValidationError):
            parse_cart_line({"category": "accessory", "productName": "Hose", "quantity": 1})
