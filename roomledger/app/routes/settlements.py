"""
routes/settlements.py — Settlement resolution and listing.

Special: approve_settlement returns warnings (OVERPAYMENT) that go into the
response envelope; the HTTP status is still 200.

Endpoints (base url_prefix=/api/v1/settlements):
  POST   /settlements/:id/resolve   → 200  approve or reject (room creator only)
  GET    /settlements/pending       → 200  awaiting the caller's approval
  GET    /settlements/history       → 200  caller as payer or receiver
"""

from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify, request

from roomledger.app.extensions import db, notifications
from roomledger.app.middleware.auth_middleware import require_auth
from roomledger.app.schemas.settlement_schema import (
    HistoryQuerySchema,
    ResolveSettlementSchema,
)
from roomledger.app.services import room_service, settlement_service

settlements_bp = Blueprint("settlements", __name__)


@settlements_bp.route("/<int:settlement_id>/resolve", methods=["POST"])
@require_auth
def resolve_settlement(settlement_id: int):
    """
    POST /settlements/:id/resolve — {"approved": true|false}

    A second resolution of the same settlement returns 409
    SETTLEMENT_ALREADY_RESOLVED and leaves amount_paid unchanged.
    """
    data = ResolveSettlementSchema().load(request.get_json(force=True) or {})
    settlement, room, newly_settled, warnings = settlement_service.approve_settlement(
        settlement_id=settlement_id,
        caller_id=g.user_id,
        approved=data["approved"],
        session=db.session,
        tolerance=current_app.config["LEDGER_TOLERANCE"],
    )
    db.session.commit()
    notifications.settlement_resolved(settlement, room, newly_settled=newly_settled)
    return jsonify({
        "data": {
            "settlement": settlement_service.build_settlement_dict(settlement),
            "room": room_service.build_room_dict(room),
        },
        "warnings": warnings,
    }), 200


@settlements_bp.route("/pending", methods=["GET"])
@require_auth
def list_pending():
    """GET /settlements/pending — Pending settlements in rooms the caller created."""
    settlements = settlement_service.list_pending_for_approver(
        caller_id=g.user_id,
        session=db.session,
    )
    return jsonify({
        "data": [settlement_service.build_settlement_dict(s) for s in settlements],
        "warnings": [],
    }), 200


@settlements_bp.route("/history", methods=["GET"])
@require_auth
def settlement_history():
    """GET /settlements/history?limit=50"""
    query = HistoryQuerySchema().load(request.args)
    settlements = settlement_service.get_settlement_history(
        caller_id=g.user_id,
        session=db.session,
        limit=query["limit"],
    )
    return jsonify({
        "data": [settlement_service.build_settlement_dict(s) for s in settlements],
        "warnings": [],
    }), 200
