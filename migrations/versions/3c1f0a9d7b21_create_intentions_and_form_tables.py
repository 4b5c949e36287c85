"""create intentions and form side tables

Revision ID: 3c1f0a9d7b21
Revises:
Create Date: 2026-10-19 10:02:11.318204

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3c1f0a9d7b21'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

FORM_TABLES = ("nossa_historia", "infinito_particular")


def upgrade():
    op.create_table(
        "intentions",
        sa.Column("intention_id", sa.String(64), primary_key=True),
        sa.Column("email", sa.String(320), nullable=False),
        sa.Column("template_id", sa.String(64), nullable=False),
        sa.Column("plan", sa.String(16), nullable=False),
        sa.Column("price", sa.Numeric(10, 2), nullable=False),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("payment_ids", sa.JSON(), nullable=False),
        sa.Column("expires_in", sa.DateTime(timezone=True)),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("status in ('pending','approved')",
                           name="ck_intentions_status"),
        sa.CheckConstraint("plan in ('basic','standard','premium')",
                           name="ck_intentions_plan"),
        sa.CheckConstraint("price >= 0", name="ck_intentions_price_ge_0"),
    )
    op.create_index("idx_intentions_template", "intentions", ["template_id"])
    op.create_index("idx_intentions_status", "intentions", ["status"])

    for name in FORM_TABLES:
        op.create_table(
            name,
            sa.Column("intention_id", sa.String(64), primary_key=True),
            sa.Column("email", sa.String(320), nullable=False),
            sa.Column("form_data", sa.Text(), nullable=False),
            sa.Column("status", sa.String(16), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
            sa.CheckConstraint("status in ('pending','approved')",
                               name=f"ck_{name}_status"),
        )


def downgrade():
    for name in reversed(FORM_TABLES):
        op.drop_table(name)
    op.drop_index("idx_intentions_status", table_name="intentions")
    op.drop_index("idx_intentions_template", table_name="intentions")
    op.drop_table("intentions")
