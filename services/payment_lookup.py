# services/payment_lookup.py
"""
Thin client for the payment provider's payment resource.

The webhook body only hints at a payment id; status and external
reference are always read back from the provider:

  GET {base_url}/v1/payments/{payment_id}
  Authorization: Bearer <access token>
"""

from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Any, Dict

import requests

from services.errors import MalformedInput, UpstreamError

log = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.mercadopago.com"


@dataclass(frozen=True)
class PaymentInfo:
    payment_id: str
    status: str
    external_reference: str


class PaymentLookupClient:
    def __init__(self, access_token: str, base_url: str = DEFAULT_BASE_URL,
                 timeout: float = 10, session: requests.Session | None = None) -> None:
        self.base_url = (base_url or DEFAULT_BASE_URL).rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.headers = self._build_headers(access_token)

    @staticmethod
    def _build_headers(access_token: str) -> Dict[str, str]:
        h = {"Accept": "application/json"}
        if access_token:
            h["Authorization"] = f"Bearer {access_token}"
        return h

    def _build_url(self, payment_id: str) -> str:
        return f"{self.base_url}/v1/payments/{payment_id}"

    def fetch_payment(self, payment_id: str) -> PaymentInfo:
        url = self._build_url(payment_id)
        try:
            r = self.session.get(url, headers=self.headers, timeout=self.timeout)
        except requests.RequestException as e:
            log.error("Payment lookup for %s failed: %s", payment_id, e)
            raise UpstreamError(f"payment lookup failed: {e}") from e

        if not r.ok:
            log.error("Payment lookup for %s returned %s: %s",
                      payment_id, r.status_code, r.text[:500])
            raise UpstreamError(
                f"payment lookup returned HTTP {r.status_code}")

        try:
            js: Any = r.json()
        except ValueError as e:
            raise UpstreamError("payment lookup returned non-JSON payload") from e

        if not isinstance(js, dict) or not isinstance(js.get("status"), str):
            raise UpstreamError("payment lookup payload has no status")

        ref = js.get("external_reference")
        ref = str(ref).strip() if ref is not None else ""
        if not ref:
            log.warning("Payment %s has no external reference", payment_id)
            raise MalformedInput("payment carries no external reference")

        return PaymentInfo(payment_id=str(payment_id), status=js["status"].lower(),
                           external_reference=ref)
