# services/signature.py
"""
Webhook signature verification.

The provider signs every notification with:
  x-signature:  ts=<unix-time>,v1=<hex hmac-sha256>
  x-request-id: <opaque id>

The MAC covers the canonical string
  id:<payment id>;request-id:<request id>;ts:<ts>;
keyed with the shared webhook secret. Verification fails closed.
"""

from __future__ import annotations
import hashlib
import hmac
import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional

log = logging.getLogger(__name__)

SIGNATURE_HEADER = "x-signature"
REQUEST_ID_HEADER = "x-request-id"


@dataclass(frozen=True)
class VerifiedNotification:
    payment_id: str
    request_id: str
    timestamp: str
    signature: str


def _header(headers: Mapping[str, str], name: str) -> str:
    # werkzeug Headers are case-insensitive; plain dicts are not
    v = headers.get(name)
    if v is None:
        for k, val in headers.items():
            if k.lower() == name:
                v = val
                break
    return (v or "").strip()


def parse_signature_header(value: str) -> tuple[Optional[str], Optional[str]]:
    """Split 'ts=..,v1=..' into (ts, v1); either may be None."""
    parts: dict[str, str] = {}
    for chunk in (value or "").split(","):
        if "=" not in chunk:
            continue
        k, v = chunk.split("=", 1)
        parts[k.strip().lower()] = v.strip()
    return parts.get("ts") or None, parts.get("v1") or None


def payment_id_from_body(body: Any) -> Optional[str]:
    if not isinstance(body, dict):
        return None
    data = body.get("data")
    if not isinstance(data, dict):
        return None
    pid = data.get("id")
    if pid is None or isinstance(pid, bool):
        return None
    pid = str(pid).strip()
    return pid or None


def signing_string(payment_id: str, request_id: str, ts: str) -> str:
    return f"id:{payment_id};request-id:{request_id};ts:{ts};"


def compute_signature(secret: str, payment_id: str, request_id: str, ts: str) -> str:
    msg = signing_string(payment_id, request_id, ts).encode("utf-8")
    return hmac.new(secret.encode("utf-8"), msg, hashlib.sha256).hexdigest()


class SignatureVerifier:
    def __init__(self, secret: str) -> None:
        self._secret = secret or ""

    @staticmethod
    def _signature_parts(headers: Mapping[str, str]) -> Optional[tuple[str, str, str]]:
        signature = _header(headers, SIGNATURE_HEADER)
        request_id = _header(headers, REQUEST_ID_HEADER)
        if not signature or not request_id:
            log.warning("Webhook signature headers missing")
            return None
        ts, v1 = parse_signature_header(signature)
        if not ts or not v1:
            log.warning("Webhook signature header malformed")
            return None
        return request_id, ts, v1

    def has_signature(self, headers: Mapping[str, str]) -> bool:
        """True when both headers are present and x-signature carries ts and v1."""
        return self._signature_parts(headers) is not None

    def parse(self, headers: Mapping[str, str], body: Any) -> Optional[VerifiedNotification]:
        """Return the verified notification, or None when anything is off."""
        if not self._secret:
            log.error("Webhook secret is not configured; rejecting notification")
            return None

        parts = self._signature_parts(headers)
        if parts is None:
            return None
        request_id, ts, v1 = parts

        payment_id = payment_id_from_body(body)
        if not payment_id:
            log.warning("Webhook body carries no payment id; cannot verify")
            return None

        expected = compute_signature(self._secret, payment_id, request_id, ts)
        if not hmac.compare_digest(expected.encode("ascii"), v1.lower().encode("utf-8")):
            log.warning("Webhook signature mismatch (request-id=%s, payment=%s)",
                        request_id, payment_id)
            return None

        return VerifiedNotification(payment_id=payment_id, request_id=request_id,
                                    timestamp=ts, signature=v1)

    def verify(self, headers: Mapping[str, str], body: Any) -> bool:
        return self.parse(headers, body) is not None


def verify_signature(headers: Mapping[str, str], body: Any, secret: str) -> bool:
    return SignatureVerifier(secret).verify(headers, body)
