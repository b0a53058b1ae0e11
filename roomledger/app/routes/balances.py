"""
routes/balances.py — Event balance route handler.

Read-only: aggregates the event's rooms and simplifies the result on every
call. Nothing is cached and nothing is committed.

Endpoints (base url_prefix=/api/v1/events):
  GET /events/:id/balances → 200  per-member balances + simplified transfers
"""

from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify

from roomledger.app.extensions import db
from roomledger.app.middleware.auth_middleware import require_auth
from roomledger.app.services import balance_service

balances_bp = Blueprint("balances", __name__)


@balances_bp.route("/<int:event_id>/balances", methods=["GET"])
@require_auth
def get_event_balances(event_id: int):
    """
    GET /events/:id/balances

    The service checks the caller is on the roster and raises
    NET_BALANCE_MISMATCH (500) if the rooms' amounts do not cancel out.
    """
    result = balance_service.get_event_balance_response(
        event_id=event_id,
        caller_id=g.user_id,
        session=db.session,
        tolerance=current_app.config["LEDGER_TOLERANCE"],
    )
    return jsonify({"data": result, "warnings": []}), 200
