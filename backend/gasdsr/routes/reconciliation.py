# backend/gasdsr/routes/reconciliation.py
"""
Reconciliation API routes.
"""
from flask import Blueprint, current_app, jsonify, request
from gasdsr.extensions import db
from gasdsr.services.reconciliation_service import run_reconciliation
from gasdsr.services.snapshot_parser import parse_snapshot
from gasdsr.services.stock_entry_service import SqlReconciliationStore, StockEntryError
from gasdsr.services.stock_records import Item
from gasdsr.time_utils import parse_business_date
from gasdsr.validation import ValidationError, parse_date_param


reconciliation_bp = Blueprint("reconciliation", __name__, url_prefix="/api/reconciliation")


def _parse_items(raw) -> list[Item]:
    if not isinstance(raw, list):
        raise ValidationError("items must be a list")
    items = []
    for row in raw:
        if not isinstance(row, dict):
            raise ValidationError("items must contain objects")
        try:
            items.append(Item.from_dict(row))
        except ValueError as e:
            raise ValidationError(f"Invalid item: {e}")
    return items


@reconciliation_bp.route("/run", methods=["POST"])
def run():
    """
    Aggregate and reconcile one business day, then persist it with rollover.

    Request body:
    {
        "date": "YYYY-MM-DD",
        "employeeId": str (optional, omit for admin scope),
        "items": [{"_id", "name", "category", ...}],
        "sales": [...],
        "cylinderTransactions": [...],
        "refills": [...],
        "purchases": [...],
        "transfers": [...]
    }

    Returns:
        200: {"success": true, "data": {"current", "nextDayOpenings", "skipped", ...}}
        400: Invalid request
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({"error": "Invalid JSON payload"}), 400

    try:
        day = parse_business_date(parse_date_param(data.get("date")))
        items = _parse_items(data.get("items") or [])
        employee_id = str(data["employeeId"]).strip() if data.get("employeeId") else None
        snapshot = parse_snapshot(data, current_app.config["DSR_TIMEZONE"])

        result = run_reconciliation(
            SqlReconciliationStore(),
            day,
            items,
            snapshot,
            employee_id=employee_id,
            tz=current_app.config["DSR_TIMEZONE"],
        )
        db.session.commit()
        return jsonify({"success": True, "data": result.to_dict()}), 200

    except ValidationError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 400
    except StockEntryError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 409
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Reconciliation run failed")
        return jsonify({"error": "Internal server error"}), 500
