# controllers/status.py
from flask import Blueprint, request, jsonify

from models.intentions_store import find_by_payment_id
from services.datetimex import to_iso_z

status_bp = Blueprint("status", __name__)


@status_bp.get("/payment-status")
def payment_status():
    payment_id = (request.args.get("payment_id") or "").strip()
    if not payment_id:
        return jsonify({"message": "payment_id is required"}), 400

    intention = find_by_payment_id(payment_id)
    if not intention:
        return jsonify({"message": "payment not found"}), 404

    return jsonify({
        "status": intention["status"],
        "intention_id": intention["intention_id"],
        "expires_in": to_iso_z(intention["expires_in"]),
    })
