# services/errors.py
"""
Error taxonomy for webhook reconciliation.

Each error carries the HTTP status the webhook endpoint answers with.
Per-asset migration failures are not errors here; they are counted in
the MigrationReport instead.
"""

from __future__ import annotations


class ReconciliationError(Exception):
    status_code = 500

    def __init__(self, message: str, *, intention_id: str | None = None):
        super().__init__(message)
        self.message = message
        self.intention_id = intention_id


class AuthenticationFailure(ReconciliationError):
    status_code = 401


class MalformedInput(ReconciliationError):
    status_code = 400


class NotFound(ReconciliationError):
    status_code = 404


class IntentionNotFound(NotFound):
    pass


class MissingExpiry(ReconciliationError):
    """Renewal requested for an intention that was never approved."""
    status_code = 409


class UpstreamError(ReconciliationError):
    status_code = 502


class PersistenceFailure(ReconciliationError):
    status_code = 500


class FormDataMissing(PersistenceFailure):
    pass


class InvalidTemplate(PersistenceFailure):
    pass
