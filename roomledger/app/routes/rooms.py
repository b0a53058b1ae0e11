"""
routes/rooms.py — Room ledger route handlers.

Layer rules:
  - Parse, validate, call ONE service, commit, return envelope.
  - No business logic. No DB queries. No bare SQL.
  - Notifications are sent only after the commit succeeds.

Endpoints (base url_prefix=/api/v1/rooms):
  POST   /rooms                                  → 201  create room
  GET    /rooms                                  → 200  list caller's rooms
  GET    /rooms/:id                              → 200  room summary
  POST   /rooms/:id/participants/:uid/payment    → 200  creator mark paid/unpaid
  POST   /rooms/:id/settlements                  → 201  submit settlement
  GET    /rooms/:id/settlements                  → 200  list room settlements
"""

from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify, request

from roomledger.app.extensions import db, notifications
from roomledger.app.middleware.auth_middleware import require_auth
from roomledger.app.schemas.room_schema import CreateRoomSchema, MarkPaymentSchema
from roomledger.app.schemas.settlement_schema import SubmitSettlementSchema
from roomledger.app.services import room_service, settlement_service

rooms_bp = Blueprint("rooms", __name__)


def _tolerance():
    return current_app.config["LEDGER_TOLERANCE"]


@rooms_bp.route("", methods=["POST"])
@require_auth
def create_room():
    """POST /rooms — Create a room. The caller becomes its creator."""
    data = CreateRoomSchema().load(request.get_json(force=True) or {})
    room = room_service.create_room(
        creator_id=g.user_id,
        data=data,
        session=db.session,
        tolerance=_tolerance(),
    )
    db.session.commit()
    notifications.room_created(room)
    return jsonify({"data": room_service.build_room_dict(room), "warnings": []}), 201


@rooms_bp.route("", methods=["GET"])
@require_auth
def list_rooms():
    """GET /rooms — Rooms the caller created or participates in, newest first."""
    rooms = room_service.list_rooms(caller_id=g.user_id, session=db.session)
    return jsonify({
        "data": [room_service.build_room_dict(r) for r in rooms],
        "warnings": [],
    }), 200


@rooms_bp.route("/<int:room_id>", methods=["GET"])
@require_auth
def get_room(room_id: int):
    """GET /rooms/:id — Shares, settled flag and pending settlements."""
    result = room_service.get_room_summary(
        room_id=room_id,
        caller_id=g.user_id,
        session=db.session,
        tolerance=_tolerance(),
    )
    return jsonify({"data": result, "warnings": []}), 200


@rooms_bp.route("/<int:room_id>/participants/<int:user_id>/payment", methods=["POST"])
@require_auth
def mark_participant_payment(room_id: int, user_id: int):
    """
    POST /rooms/:id/participants/:uid/payment — {"paid": true|false}

    Creator-only correction. Does not create or touch any settlement.
    """
    data = MarkPaymentSchema().load(request.get_json(force=True) or {})
    room, newly_settled = room_service.mark_participant_payment(
        room_id=room_id,
        caller_id=g.user_id,
        user_id=user_id,
        paid=data["paid"],
        session=db.session,
        tolerance=_tolerance(),
    )
    db.session.commit()
    if newly_settled:
        notifications.room_settled(room)
    return jsonify({"data": room_service.build_room_dict(room), "warnings": []}), 200


@rooms_bp.route("/<int:room_id>/settlements", methods=["POST"])
@require_auth
def submit_settlement(room_id: int):
    """
    POST /rooms/:id/settlements — The caller claims a payment to the creator.

    An amount above the outstanding balance is recorded with an OVERPAYMENT
    warning. Status remains 201.
    """
    data = SubmitSettlementSchema().load(request.get_json(force=True) or {})
    settlement, warnings = settlement_service.submit_settlement(
        room_id=room_id,
        payer_id=g.user_id,
        data=data,
        session=db.session,
        tolerance=_tolerance(),
    )
    db.session.commit()
    notifications.settlement_requested(settlement, settlement.room)
    return jsonify({
        "data": settlement_service.build_settlement_dict(settlement),
        "warnings": warnings,
    }), 201


@rooms_bp.route("/<int:room_id>/settlements", methods=["GET"])
@require_auth
def list_room_settlements(room_id: int):
    """GET /rooms/:id/settlements — Newest first. Room members only."""
    settlements = settlement_service.list_room_settlements(
        room_id=room_id,
        caller_id=g.user_id,
        session=db.session,
    )
    return jsonify({
        "data": [settlement_service.build_settlement_dict(s) for s in settlements],
        "warnings": [],
    }), 200
