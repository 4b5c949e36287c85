# services/reconciliation.py
"""
Apply a verified payment notification to its intention.

  state     event                        next      side effect
  pending   approved payment, new        approved  expiry = now + 1y, migrate photos
  approved  approved payment, new (dup)  approved  expiry reset to now + 1y
  approved  approved payment, renewal    approved  expiry = max(expiry, now) + 1y
  any       non-approved payment         -         payment id recorded only

Every step is safe to replay: the payment id is only appended once and
the intention write is committed before photos are touched.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from models import intentions_store
from services.asset_migration import AssetMigrator, MigrationReport
from services.datetimex import as_utc, now_utc
from services.errors import IntentionNotFound, MalformedInput, MissingExpiry
from services.payment_lookup import PaymentLookupClient
from services.signature import VerifiedNotification

log = logging.getLogger(__name__)

OPERATION_NEW = "new"
OPERATION_RENEWAL = "renewal"
OPERATIONS = (OPERATION_NEW, OPERATION_RENEWAL)

APPROVED = "approved"
ACCESS_PERIOD = timedelta(days=365)


@dataclass
class ReconciliationResult:
    intention_id: str
    operation: str
    outcome: str                  # 'not_approved' | 'approved' | 'renewed'
    payment_status: str
    expires_in: Optional[datetime] = None
    report: Optional[MigrationReport] = None


def renewal_expiry(current: datetime, now: datetime) -> datetime:
    """A lapsed intention renews from now, never from its stale expiry."""
    return max(as_utc(current), as_utc(now)) + ACCESS_PERIOD


class ReconciliationEngine:
    def __init__(self, lookup: PaymentLookupClient, migrator: AssetMigrator,
                 clock: Callable[[], datetime] = now_utc) -> None:
        self.lookup = lookup
        self.migrator = migrator
        self.clock = clock

    def reconcile(self, notification: VerifiedNotification,
                  operation: str = OPERATION_NEW) -> ReconciliationResult:
        if operation not in OPERATIONS:
            raise MalformedInput(f"unknown operation {operation!r}")

        payment = self.lookup.fetch_payment(notification.payment_id)
        intention_id = payment.external_reference

        intention = intentions_store.get_intention(intention_id)
        if not intention:
            log.warning("Payment %s references unknown intention %s",
                        payment.payment_id, intention_id)
            raise IntentionNotFound(
                f"intention {intention_id} not found", intention_id=intention_id)

        approved = payment.status == APPROVED

        # a renewal can only extend an expiry that exists; reject before touching the row
        if approved and operation == OPERATION_RENEWAL and intention["expires_in"] is None:
            log.warning("Renewal for intention %s rejected: never approved (payment %s)",
                        intention_id, payment.payment_id)
            raise MissingExpiry(
                f"intention {intention_id} has no expiry to renew", intention_id=intention_id)

        intention = intentions_store.record_payment_id(
            intention_id, payment.payment_id)

        if not approved:
            log.info("Payment %s for intention %s is %s; nothing to apply",
                     payment.payment_id, intention_id, payment.status)
            return ReconciliationResult(intention_id, operation, "not_approved",
                                        payment.status, intention["expires_in"])

        now = self.clock()
        if operation == OPERATION_RENEWAL:
            new_expiry = renewal_expiry(intention["expires_in"], now)
            intention = intentions_store.set_expiry(intention_id, new_expiry)
            log.info("Intention %s renewed until %s (payment %s)",
                     intention_id, new_expiry.isoformat(), payment.payment_id)
            return ReconciliationResult(intention_id, operation, "renewed",
                                        payment.status, intention["expires_in"])

        if intention["status"] == APPROVED:
            # TODO: decide whether a duplicate new-payment notification should keep the
            # original expiry instead of resetting it from now
            log.warning("Intention %s already approved; re-applying new payment %s",
                        intention_id, payment.payment_id)

        intention = intentions_store.mark_approved(intention_id, now + ACCESS_PERIOD)
        log.info("Intention %s approved until %s (payment %s)",
                 intention_id, intention["expires_in"].isoformat(), payment.payment_id)

        report = self.migrator.migrate(intention_id)
        return ReconciliationResult(intention_id, operation, "approved",
                                    payment.status, intention["expires_in"], report)
