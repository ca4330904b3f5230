from __future__ import annotations

from ..extensions import db
from gasdsr.services.normalizer import normalize_name
from gasdsr.services.stock_records import BALANCE_FIELDS, MOVEMENT_FIELDS, DailyStockEntry
from gasdsr.time_utils import format_business_date, parse_business_date, to_utc_z


class DailyStockReport(db.Model):
    """
    One reconciled item row for one business date.

    SCOPE:
    - employee_id NULL: admin (global) scope
    - employee_id set: that employee's own stock

    IDENTITY: (employee_id, item_key, date). item_key is the normalized item
    name, so "Cylinder 12kg" and " cylinder  12KG " land on the same row.
    NULL employee ids do not collide in a unique index on most databases, so
    the admin scope is also guarded in the service layer.

    Opening balances stay NULL until set; opening_locked marks balances that
    were entered explicitly and must survive rollover from the previous day.
    """
    __tablename__ = "daily_stock_reports"
    __table_args__ = (
        db.UniqueConstraint("employee_id", "item_key", "date", name="uq_dsr_employee_item_date"),
        db.Index("ix_dsr_date_employee", "date", "employee_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Business date, YYYY-MM-DD (sorts lexically)
    date = db.Column(db.String(10), nullable=False, index=True)
    item_name = db.Column(db.String(255), nullable=False)
    item_key = db.Column(db.String(255), nullable=False, index=True)
    item_id = db.Column(db.String(64), nullable=True)
    employee_id = db.Column(db.String(64), nullable=True, index=True)

    opening_full = db.Column(db.Integer, nullable=True)
    opening_empty = db.Column(db.Integer, nullable=True)
    opening_locked = db.Column(db.Boolean, nullable=False, default=False)

    refilled = db.Column(db.Integer, nullable=False, default=0)
    cylinder_sales = db.Column(db.Integer, nullable=False, default=0)
    gas_sales = db.Column(db.Integer, nullable=False, default=0)
    deposits = db.Column(db.Integer, nullable=False, default=0)
    returns = db.Column(db.Integer, nullable=False, default=0)
    full_cylinder_sales = db.Column(db.Integer, nullable=False, default=0)
    empty_cylinder_sales = db.Column(db.Integer, nullable=False, default=0)
    full_purchase = db.Column(db.Integer, nullable=False, default=0)
    empty_purchase = db.Column(db.Integer, nullable=False, default=0)
    transfer_gas = db.Column(db.Integer, nullable=False, default=0)
    transfer_empty = db.Column(db.Integer, nullable=False, default=0)
    received_gas = db.Column(db.Integer, nullable=False, default=0)
    received_empty = db.Column(db.Integer, nullable=False, default=0)

    closing_full = db.Column(db.Integer, nullable=True)
    closing_empty = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<DailyStockReport id={self.id} date={self.date} item={self.item_name!r} employee={self.employee_id}>"

    def to_entry(self) -> DailyStockEntry:
        kwargs = {attr: getattr(self, attr) for attr in MOVEMENT_FIELDS}
        kwargs.update({attr: getattr(self, attr) for attr in BALANCE_FIELDS})
        return DailyStockEntry(
            date=parse_business_date(self.date),
            item_name=self.item_name,
            item_id=self.item_id,
            employee_id=self.employee_id,
            opening_locked=bool(self.opening_locked),
            **kwargs,
        )

    def apply_entry(self, entry: DailyStockEntry) -> None:
        self.date = format_business_date(entry.date)
        self.item_name = entry.item_name
        self.item_key = normalize_name(entry.item_name)
        self.item_id = entry.item_id
        self.employee_id = entry.employee_id
        self.opening_locked = entry.opening_locked
        for attr in MOVEMENT_FIELDS:
            setattr(self, attr, getattr(entry, attr))
        for attr in BALANCE_FIELDS:
            setattr(self, attr, getattr(entry, attr))

    def to_dict(self) -> dict:
        data = self.to_entry().to_dict()
        data["id"] = self.id
        data["createdAt"] = to_utc_z(self.created_at)
        data["updatedAt"] = to_utc_z(self.updated_at)
        return data
