# models/intentions_store.py (SQLAlchemy)
from __future__ import annotations
import json
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import String, cast, insert, select, update
from models.base import session_scope
from models.schema import Intention, form_table_for
from services.datetimex import as_utc, now_utc
from services.errors import IntentionNotFound, InvalidTemplate

_INTENTION_COLS = ("intention_id", "email", "template_id", "plan", "price", "status",
                   "payment_ids", "expires_in", "created_at", "updated_at")


def _intention_dict(i: Intention) -> dict:
    d = {c: getattr(i, c) for c in _INTENTION_COLS}
    d["payment_ids"] = list(i.payment_ids or [])
    for k in ("expires_in", "created_at", "updated_at"):
        d[k] = as_utc(d[k])
    return d


def _locked(s, intention_id: str) -> Intention:
    i = s.execute(select(Intention).where(
        Intention.intention_id == intention_id).with_for_update()).scalars().first()
    if not i:
        raise IntentionNotFound(
            f"intention {intention_id} not found", intention_id=intention_id)
    return i


def create_intention(intention_id: str, email: str, template_id: str, plan: str, price,
                     status: str = "pending", payment_ids: Optional[list] = None,
                     expires_in: Optional[datetime] = None) -> dict:
    now = now_utc()
    with session_scope() as s:
        i = Intention(
            intention_id=intention_id, email=email, template_id=template_id, plan=plan,
            price=Decimal(str(price)), status=status, payment_ids=list(payment_ids or []),
            expires_in=expires_in, created_at=now, updated_at=now,
        )
        s.add(i)
        s.flush()
        return _intention_dict(i)


def get_intention(intention_id: str) -> Optional[dict]:
    if not intention_id:
        return None
    with session_scope() as s:
        i = s.get(Intention, intention_id)
        return _intention_dict(i) if i else None


def find_by_payment_id(payment_id: str) -> Optional[dict]:
    """Intention whose payment_ids contains payment_id (exact match)."""
    if not payment_id:
        return None
    needle = json.dumps(str(payment_id))
    with session_scope() as s:
        rows = s.execute(select(Intention).where(
            cast(Intention.payment_ids, String).contains(needle, autoescape=True)
        ).order_by(Intention.updated_at.desc())).scalars().all()
        for i in rows:
            if str(payment_id) in (i.payment_ids or []):
                return _intention_dict(i)
    return None


def record_payment_id(intention_id: str, payment_id: str) -> dict:
    """Append payment_id unless already present; always bumps updated_at."""
    with session_scope() as s:
        i = _locked(s, intention_id)
        ids = list(i.payment_ids or [])
        if payment_id not in ids:
            # reassign so the JSON column is flagged dirty
            i.payment_ids = ids + [payment_id]
        i.updated_at = now_utc()
        s.add(i)
        s.flush()
        return _intention_dict(i)


def mark_approved(intention_id: str, expires_in: datetime) -> dict:
    with session_scope() as s:
        i = _locked(s, intention_id)
        i.status = "approved"
        i.expires_in = expires_in
        i.updated_at = now_utc()
        s.add(i)
        s.flush()
        return _intention_dict(i)


def set_expiry(intention_id: str, expires_in: datetime) -> dict:
    with session_scope() as s:
        i = _locked(s, intention_id)
        i.expires_in = expires_in
        i.updated_at = now_utc()
        s.add(i)
        s.flush()
        return _intention_dict(i)


# --- form side tables -------------------------------------------------


def _table(template_id, intention_id: str | None = None):
    t = form_table_for(template_id)
    if t is None:
        raise InvalidTemplate(
            f"template id {template_id!r} is not allow-listed", intention_id=intention_id)
    return t


def create_form_submission(template_id: str, intention_id: str, email: str, form_data: dict,
                           status: str = "pending") -> None:
    t = _table(template_id, intention_id)
    now = now_utc()
    with session_scope() as s:
        s.execute(insert(t).values(
            intention_id=intention_id, email=email,
            form_data=json.dumps(form_data, ensure_ascii=False),
            status=status, created_at=now, updated_at=now,
        ))


def load_form_submission(template_id: str, intention_id: str) -> Optional[dict]:
    """Raw side-table row; form_data is returned as stored (JSON text)."""
    t = _table(template_id, intention_id)
    with session_scope() as s:
        row = s.execute(select(t).where(
            t.c.intention_id == intention_id)).mappings().first()
        return dict(row) if row else None


def save_form_submission(template_id: str, intention_id: str, form_data: dict,
                         status: str = "approved") -> None:
    t = _table(template_id, intention_id)
    with session_scope() as s:
        s.execute(update(t).where(t.c.intention_id == intention_id).values(
            form_data=json.dumps(form_data, ensure_ascii=False),
            status=status,
            updated_at=now_utc(),
        ))
