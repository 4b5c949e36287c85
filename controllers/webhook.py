# controllers/webhook.py
from __future__ import annotations
import logging

from flask import Blueprint, request, jsonify, current_app
from sqlalchemy.exc import SQLAlchemyError

from services.errors import ReconciliationError, UpstreamError
from services.metrics import WEBHOOK_NOTIFICATIONS
from services.reconciliation import OPERATION_NEW, OPERATIONS
from services.signature import payment_id_from_body
from services.datetimex import to_iso_z

log = logging.getLogger(__name__)

webhook_bp = Blueprint("webhook", __name__)

_MESSAGES = {
    "not_approved": "payment not approved",
    "approved": "payment approved",
    "renewed": "plan renewed",
}


def _operation() -> str:
    return (request.args.get("operation") or OPERATION_NEW).strip().lower()


def _rejected():
    WEBHOOK_NOTIFICATIONS.labels(operation=_operation(), outcome="rejected").inc()
    return jsonify({"message": "invalid signature"}), 401


@webhook_bp.errorhandler(ReconciliationError)
def _reconciliation_error(e: ReconciliationError):
    if e.status_code >= 500 and not isinstance(e, UpstreamError):
        log.error("Webhook failed (intention=%s): %s", e.intention_id, e.message)
    else:
        log.warning("Webhook rejected with %s (intention=%s): %s",
                    e.status_code, e.intention_id, e.message)
    WEBHOOK_NOTIFICATIONS.labels(operation=_operation(), outcome="failed").inc()
    body = {"message": e.message}
    if e.intention_id:
        body["intention_id"] = e.intention_id
    return jsonify(body), e.status_code


@webhook_bp.errorhandler(SQLAlchemyError)
def _persistence_error(e: SQLAlchemyError):
    log.exception("Webhook persistence failure")
    WEBHOOK_NOTIFICATIONS.labels(operation=_operation(), outcome="failed").inc()
    return jsonify({"message": "persistence failure"}), 500


@webhook_bp.post("/webhook")
def webhook():
    """
    Payment provider notification endpoint.
    Body: {"type": "payment", "data": {"id": <payment id>}}
    Query: operation=new|renewal (default new)
    """
    body = request.get_json(force=True, silent=True)
    if not isinstance(body, dict):
        return jsonify({"message": "invalid JSON body"}), 400

    event_type = body.get("type")
    if event_type != "payment":
        log.info("Ignoring webhook event of type %r", event_type)
        return jsonify({"message": "event ignored"}), 200

    verifier = current_app.extensions["signature_verifier"]
    if not verifier.has_signature(request.headers):
        return _rejected()

    if not payment_id_from_body(body):
        return jsonify({"message": "missing payment id"}), 400

    notification = verifier.parse(request.headers, body)
    if notification is None:
        return _rejected()

    operation = _operation()
    if operation not in OPERATIONS:
        return jsonify({"message": f"unknown operation {operation!r}"}), 400

    engine = current_app.extensions["reconciliation_engine"]
    result = engine.reconcile(notification, operation)
    WEBHOOK_NOTIFICATIONS.labels(operation=operation, outcome=result.outcome).inc()

    payload = {
        "message": _MESSAGES[result.outcome],
        "intention_id": result.intention_id,
        "operation": result.operation,
        "payment_status": result.payment_status,
        "expires_in": to_iso_z(result.expires_in),
    }
    if result.report is not None:
        payload["report"] = result.report.to_dict()
    return jsonify(payload), 200
