# roomledger/app/routes/users.py
from flask import Blueprint, g, jsonify
from sqlalchemy import select
from roomledger.app.extensions import db
from roomledger.app.models.user import User
from roomledger.app.middleware.auth_middleware import require_auth
from roomledger.app.errors import ErrorCode, NotFoundError
from roomledger.app.services import dashboard_service

users_bp = Blueprint("users", __name__)


@users_bp.route("/me/dashboard", methods=["GET"])
@require_auth
def get_dashboard():
    result = dashboard_service.get_user_dashboard(caller_id=g.user_id, session=db.session)
    return jsonify({"data": result, "warnings": []}), 200


# Used by clients to resolve a participant's id before creating a room.
@users_bp.route("/by-username/<string:username>", methods=["GET"])
@require_auth
def get_user_by_username(username: str):
    user = db.session.execute(
        select(User).where(User.username == username)
    ).scalar_one_or_none()

    if not user:
        raise NotFoundError(
            ErrorCode.USER_NOT_FOUND,
            f"User '{username}' not found.",
        )

    return jsonify({
        "data": {
            "id": user.id,
            "username": user.username,
            "email": user.email,
            "created_at": user.created_at.isoformat()
        },
        "warnings": []
    }), 200
