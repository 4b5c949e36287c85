# models/schema.py
import re
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import (
    JSON, CheckConstraint, Column, DateTime, Index, Numeric, String, Table, Text,
)
from models.base import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# --- INTENTIONS -------------------------------------------------------


class Intention(Base):
    __tablename__ = "intentions"

    intention_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    email: Mapped[str] = mapped_column(String(320), nullable=False)
    # product type; also names the form side table
    template_id: Mapped[str] = mapped_column(String(64), nullable=False)
    plan: Mapped[str] = mapped_column(String(16), nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default="pending")
    # ordered, duplicate-free list of provider payment ids
    payment_ids: Mapped[list] = mapped_column(
        JSON, nullable=False, default=list)
    expires_in: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint("status in ('pending','approved')",
                        name="ck_intentions_status"),
        CheckConstraint("plan in ('basic','standard','premium')",
                        name="ck_intentions_plan"),
        CheckConstraint("price >= 0", name="ck_intentions_price_ge_0"),
        Index("idx_intentions_template", "template_id"),
        Index("idx_intentions_status", "status"),
    )


# --- FORM SUBMISSIONS (one side table per template) -------------------

TEMPLATE_IDS = ("nossa_historia", "infinito_particular")
TEMPLATE_ID_PATTERN = re.compile(r"^[a-z_]+$")


def _form_table(name: str) -> Table:
    return Table(
        name,
        Base.metadata,
        Column("intention_id", String(64), primary_key=True),
        Column("email", String(320), nullable=False),
        Column("form_data", Text, nullable=False),  # JSON document
        Column("status", String(16), nullable=False, default="pending"),
        Column("created_at", DateTime(timezone=True),
               default=utcnow, nullable=False),
        Column("updated_at", DateTime(timezone=True),
               default=utcnow, nullable=False),
        CheckConstraint("status in ('pending','approved')",
                        name=f"ck_{name}_status"),
    )


FORM_TABLES: dict[str, Table] = {name: _form_table(name)
                                 for name in TEMPLATE_IDS}


def form_table_for(template_id) -> Table | None:
    """Resolve a template id to its side table, or None if not allow-listed."""
    if not isinstance(template_id, str) or not TEMPLATE_ID_PATTERN.match(template_id):
        return None
    return FORM_TABLES.get(template_id)
