# tests/utils.py
import json
from datetime import datetime, timedelta, timezone

from models.intentions_store import create_form_submission, create_intention
from services.errors import UpstreamError
from services.payment_lookup import PaymentInfo
from services.signature import compute_signature

WEBHOOK_SECRET = "whsec_test"
BUCKET = "photos"
PUBLIC_BASE = "https://files.example.com/file"
TEMPLATE = "nossa_historia"


def sign_headers(payment_id, request_id="req-1", ts="1700000000", secret=WEBHOOK_SECRET) -> dict:
    v1 = compute_signature(secret, str(payment_id), request_id, ts)
    return {"x-signature": f"ts={ts},v1={v1}", "x-request-id": request_id,
            "Content-Type": "application/json"}


def payment_body(payment_id, event_type="payment") -> bytes:
    return json.dumps({"type": event_type, "data": {"id": payment_id}}).encode("utf-8")


def post_webhook(client, payment_id, operation=None, headers=None, body=None):
    url = "/webhook" if operation is None else f"/webhook?operation={operation}"
    data = body if body is not None else payment_body(payment_id)
    return client.post(url, data=data, headers=headers if headers is not None else sign_headers(payment_id))


def seed_intention(intention_id="NH-abc123", template_id=TEMPLATE, status="pending",
                   expires_in=None, payment_ids=None, form_data=None, with_form=True) -> dict:
    row = create_intention(intention_id, "buyer@example.com", template_id, "premium", 29.9,
                           status=status, payment_ids=payment_ids, expires_in=expires_in)
    if with_form:
        create_form_submission(template_id, intention_id, "buyer@example.com",
                               form_data if form_data is not None else {"title": "us", "photos": []})
    return row


def put_temp_photo(storage, filename, body=b"\x89PNG...", content_type="image/png",
                   template=TEMPLATE) -> str:
    """Upload to the provisional namespace; returns the preview URL."""
    key = f"temp/{template}/{filename}"
    storage.put(key, body, content_type)
    return f"{PUBLIC_BASE}/{key}"


def object_exists(storage, key) -> bool:
    return storage.get(key) is not None


def days_from_now(days: float) -> datetime:
    return datetime.now(timezone.utc) + timedelta(days=days)


class FakeLookup:
    """Stands in for PaymentLookupClient; payments maps id -> (status, external_reference)."""

    def __init__(self):
        self.payments = {}
        self.calls = []
        self.error = None

    def add(self, payment_id, status, external_reference):
        self.payments[str(payment_id)] = (status, external_reference)

    def fetch_payment(self, payment_id):
        self.calls.append(payment_id)
        if self.error is not None:
            raise self.error
        if str(payment_id) not in self.payments:
            raise UpstreamError("payment lookup returned HTTP 404")
        status, ref = self.payments[str(payment_id)]
        return PaymentInfo(payment_id=str(payment_id), status=status, external_reference=ref)
