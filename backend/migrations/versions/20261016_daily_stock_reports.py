"""Daily stock reports

Revision ID: 20261016_daily_stock_reports
Revises:
Create Date: 2026-10-16
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261016_daily_stock_reports"
down_revision = None
branch_labels = None
depends_on = None


MOVEMENT_COLUMNS = (
    "refilled",
    "cylinder_sales",
    "gas_sales",
    "deposits",
    "returns",
    "full_cylinder_sales",
    "empty_cylinder_sales",
    "full_purchase",
    "empty_purchase",
    "transfer_gas",
    "transfer_empty",
    "received_gas",
    "received_empty",
)


def upgrade():
    op.create_table(
        "daily_stock_reports",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("date", sa.String(length=10), nullable=False),
        sa.Column("item_name", sa.String(length=255), nullable=False),
        sa.Column("item_key", sa.String(length=255), nullable=False),
        sa.Column("item_id", sa.String(length=64), nullable=True),
        sa.Column("employee_id", sa.String(length=64), nullable=True),
        sa.Column("opening_full", sa.Integer(), nullable=True),
        sa.Column("opening_empty", sa.Integer(), nullable=True),
        sa.Column("opening_locked", sa.Boolean(), nullable=False, server_default=sa.false()),
        *[
            sa.Column(name, sa.Integer(), nullable=False, server_default="0")
            for name in MOVEMENT_COLUMNS
        ],
        sa.Column("closing_full", sa.Integer(), nullable=True),
        sa.Column("closing_empty", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("employee_id", "item_key", "date", name="uq_dsr_employee_item_date"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("daily_stock_reports", schema=None) as batch_op:
        batch_op.create_index("ix_daily_stock_reports_date", ["date"])
        batch_op.create_index("ix_daily_stock_reports_item_key", ["item_key"])
        batch_op.create_index("ix_daily_stock_reports_employee_id", ["employee_id"])
        batch_op.create_index("ix_dsr_date_employee", ["date", "employee_id"])


def downgrade():
    with op.batch_alter_table("daily_stock_reports", schema=None) as batch_op:
        batch_op.drop_index("ix_dsr_date_employee")
        batch_op.drop_index("ix_daily_stock_reports_employee_id")
        batch_op.drop_index("ix_daily_stock_reports_item_key")
        batch_op.drop_index("ix_daily_stock_reports_date")
    op.drop_table("daily_stock_reports")
