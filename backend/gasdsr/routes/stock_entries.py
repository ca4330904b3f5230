# backend/gasdsr/routes/stock_entries.py
"""
Daily stock entry API routes.

Responses use {"success": true, "data": ...}; errors use {"error": "..."}.
Omitting employeeId selects the admin scope.
"""
from flask import Blueprint, current_app, jsonify, request
from gasdsr.extensions import db
from gasdsr.services import stock_entry_service
from gasdsr.validation import ValidationError, parse_date_param, parse_user_quantity


stock_entries_bp = Blueprint("stock_entries", __name__, url_prefix="/api/daily-stock-entries")


def _optional_date(name: str):
    value = request.args.get(name)
    return parse_date_param(value, name) if value else None


def _employee_id(source) -> str | None:
    value = source.get("employeeId")
    if value in (None, ""):
        return None
    return str(value).strip() or None


@stock_entries_bp.route("", methods=["GET"])
def list_entries():
    """
    List entries for one scope.

    Query params:
        date, startDate, endDate: YYYY-MM-DD (optional)
        employeeId: employee scope (omit for admin scope)
        itemName: filter by normalized item name
        limit: max rows

    Returns:
        200: {"success": true, "data": [...]} sorted by date desc
        400: Invalid parameter
    """
    try:
        limit = request.args.get("limit")
        rows = stock_entry_service.list_entries(
            _optional_date("date"),
            employee_id=_employee_id(request.args),
            item_name=request.args.get("itemName") or None,
            start_date=_optional_date("startDate"),
            end_date=_optional_date("endDate"),
            limit=parse_user_quantity(limit, "limit") if limit else None,
        )
        return jsonify({"success": True, "data": [row.to_dict() for row in rows]}), 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to list daily stock entries")
        return jsonify({"error": "Internal server error"}), 500


@stock_entries_bp.route("", methods=["POST"])
def upsert_entry():
    """
    Create or merge an entry by (date, itemName, employeeId).

    Request body: partial entry in wire form; omitted numeric fields keep
    their previous values.

    Returns:
        200: {"success": true, "data": entry}
        400: Invalid request
        409: Concurrent write
    """
    try:
        row = stock_entry_service.upsert_entry(request.get_json(silent=True))
        db.session.commit()
        return jsonify({"success": True, "data": row.to_dict()}), 200

    except ValidationError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 400
    except stock_entry_service.StockEntryError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 409
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to save daily stock entry")
        return jsonify({"error": "Internal server error"}), 500


@stock_entries_bp.route("", methods=["DELETE"])
def delete_entry():
    """
    Delete one entry.

    Query params: date, itemName, employeeId (optional)

    Returns:
        200: Deleted
        400: Missing parameter
        404: No such entry
    """
    try:
        day = parse_date_param(request.args.get("date"))
        item_name = request.args.get("itemName")
        if not item_name:
            return jsonify({"error": "itemName is required"}), 400

        stock_entry_service.delete_entry(day, item_name, _employee_id(request.args))
        db.session.commit()
        return jsonify({"success": True, "message": "Entry deleted"}), 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except stock_entry_service.StockEntryError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 404
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to delete daily stock entry")
        return jsonify({"error": "Internal server error"}), 500


@stock_entries_bp.route("/previous", methods=["GET"])
def previous_entry():
    """
    Most recent entry strictly before a date.

    Query params: itemName, date, employeeId (optional)

    Returns:
        200: {"success": true, "data": entry or null}
        400: Missing parameter
    """
    try:
        day = parse_date_param(request.args.get("date"))
        item_name = request.args.get("itemName")
        if not item_name:
            return jsonify({"error": "itemName is required"}), 400

        row = stock_entry_service.previous_entry(item_name, day, _employee_id(request.args))
        return jsonify({"success": True, "data": row.to_dict() if row is not None else None}), 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to look up previous daily stock entry")
        return jsonify({"error": "Internal server error"}), 500


@stock_entries_bp.route("/seed", methods=["POST"])
def seed_entries():
    """
    Create missing entries for cylinder items from catalog availability.

    Request body:
    {
        "date": "YYYY-MM-DD",
        "employeeId": str (optional),
        "items": [{"name", "category", "availableFull", "availableEmpty"}]
    }

    Returns:
        201: {"success": true, "data": [created entries]}
        400: Invalid request
    """
    data = request.get_json(silent=True) or {}

    try:
        day = parse_date_param(data.get("date"))
        items = data.get("items") or []
        if not isinstance(items, list):
            return jsonify({"error": "items must be a list"}), 400

        rows = stock_entry_service.seed_entries(day, items, _employee_id(data))
        db.session.commit()
        return jsonify({"success": True, "data": [row.to_dict() for row in rows]}), 201

    except ValidationError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 400
    except stock_entry_service.StockEntryError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 409
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to seed daily stock entries")
        return jsonify({"error": "Internal server error"}), 500
