# backend/gasdsr/routes/reservations.py
"""
Cart reservation checks.

Read-only: nothing is persisted, the cart lives on the client until the
sale is submitted.
"""
from flask import Blueprint, current_app, jsonify, request
from gasdsr.services import reservation_service
from gasdsr.validation import ValidationError, parse_user_quantity


reservations_bp = Blueprint("reservations", __name__, url_prefix="/api/reservations")


@reservations_bp.route("/check", methods=["POST"])
def check():
    """
    Check whether a cart line fits the stock left after the cart's other lines.

    Request body:
    {
        "cart": [line, ...],
        "line": {"category", "productId", "productName", "quantity",
                 "cylinderStatus", "cylinderProductId", "gasProductId", ...},
        "inventory": [{"productId", "productName", "currentStock",
                       "availableFull", "availableEmpty"}],
        "editIndex": int (optional, index of the line being edited)
    }

    Returns:
        200: {"success": true, "data": {"checks": [...], "cartSize": n}}
        400: Invalid request
        409: Insufficient stock (available/reserved/remaining/required)
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({"error": "Invalid JSON payload"}), 400

    try:
        raw_cart = data.get("cart") or []
        if not isinstance(raw_cart, list):
            return jsonify({"error": "cart must be a list"}), 400
        cart = [reservation_service.parse_cart_line(line) for line in raw_cart]
        line = reservation_service.parse_cart_line(data.get("line"))

        inventory_rows = data.get("inventory") or []
        if not isinstance(inventory_rows, list):
            return jsonify({"error": "inventory must be a list"}), 400
        inventory = reservation_service.InventorySnapshot.from_rows(inventory_rows)

        edit_index = data.get("editIndex")
        if edit_index is not None:
            edit_index = parse_user_quantity(edit_index, "editIndex")

        checks = reservation_service.validate_line(cart, line, inventory, edit_index=edit_index)
        return jsonify({
            "success": True,
            "data": {
                "checks": [c.to_dict() for c in checks],
                "cartSize": len(cart) + (0 if edit_index is not None and edit_index < len(cart) else 1),
            },
        }), 200

    except reservation_service.StockInsufficientError as e:
        return jsonify(e.to_dict()), 409
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Reservation check failed")
        return jsonify({"error": "Internal server error"}), 500
