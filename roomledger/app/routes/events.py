"""
routes/events.py — Event and roster route handlers.

Endpoints (base url_prefix=/api/v1/events):
  POST   /events                       → 201  create event (caller becomes owner)
  GET    /events                       → 200  list caller's events
  GET    /events/:id                   → 200  event, roster and rooms
  PATCH  /events/:id                   → 200  update (owner only)
  DELETE /events/:id                   → 200  delete, rooms detached (owner only)
  POST   /events/:id/members           → 201  add member (owner only)
  DELETE /events/:id/members/:uid      → 200  remove member (owner or self)
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from roomledger.app.extensions import db
from roomledger.app.middleware.auth_middleware import require_auth
from roomledger.app.schemas.event_schema import (
    AddEventMemberSchema,
    CreateEventSchema,
    PatchEventSchema,
)
from roomledger.app.services import event_service

events_bp = Blueprint("events", __name__)


@events_bp.route("", methods=["POST"])
@require_auth
def create_event():
    """POST /events"""
    data = CreateEventSchema().load(request.get_json(force=True) or {})
    result = event_service.create_event(
        creator_id=g.user_id,
        data=data,
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 201


@events_bp.route("", methods=["GET"])
@require_auth
def list_events():
    """GET /events"""
    result = event_service.list_user_events(user_id=g.user_id, session=db.session)
    return jsonify({"data": result, "warnings": []}), 200


@events_bp.route("/<int:event_id>", methods=["GET"])
@require_auth
def get_event(event_id: int):
    """GET /events/:id — Caller must be a member."""
    result = event_service.get_event(
        event_id=event_id,
        caller_id=g.user_id,
        session=db.session,
    )
    return jsonify({"data": result, "warnings": []}), 200


@events_bp.route("/<int:event_id>", methods=["PATCH"])
@require_auth
def update_event(event_id: int):
    """PATCH /events/:id — Owner only."""
    data = PatchEventSchema().load(request.get_json(force=True) or {})
    result = event_service.update_event(
        event_id=event_id,
        caller_id=g.user_id,
        data=data,
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 200


@events_bp.route("/<int:event_id>", methods=["DELETE"])
@require_auth
def delete_event(event_id: int):
    """DELETE /events/:id — Owner only. Rooms keep every amount."""
    event_service.delete_event(
        event_id=event_id,
        caller_id=g.user_id,
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": {"deleted": True, "event_id": event_id}, "warnings": []}), 200


@events_bp.route("/<int:event_id>/members", methods=["POST"])
@require_auth
def add_member(event_id: int):
    """POST /events/:id/members — Owner only."""
    data = AddEventMemberSchema().load(request.get_json(force=True) or {})
    result = event_service.add_member(
        event_id=event_id,
        caller_id=g.user_id,
        target_user_id=data["user_id"],
        role=data["role"],
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 201


@events_bp.route("/<int:event_id>/members/<int:target_uid>", methods=["DELETE"])
@require_auth
def remove_member(event_id: int, target_uid: int):
    """DELETE /events/:id/members/:uid — Owner removes anyone; members remove themselves."""
    event_service.remove_member(
        event_id=event_id,
        caller_id=g.user_id,
        target_user_id=target_uid,
        session=db.session,
    )
    db.session.commit()
    return jsonify({
        "data": {"removed": True, "event_id": event_id, "user_id": target_uid},
        "warnings": [],
    }), 200
