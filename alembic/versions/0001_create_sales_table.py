"""create sales table

Revision ID: 0001
Revises:
Create Date: 2026-10-18 00:00:00

"""
from alembic import op
import sqlalchemy as sa

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "sales",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("actualsales", sa.Numeric(12, 2), nullable=False),
        if_not_exists=True,
    )
    op.create_index("ix_sales_date", "sales", ["date"], if_not_exists=True)


def downgrade() -> None:
    op.drop_index("ix_sales_date", table_name="sales")
    op.drop_table("sales")
