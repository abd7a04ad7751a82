# investment_manager/routes/auth_routes.py
from __future__ import annotations

from typing import Optional

from flask import Blueprint, current_app, jsonify, request
from flask_jwt_extended import jwt_required

from investment_manager.extensions import db
from investment_manager.models import User
from investment_manager.utils.identity import current_caller, issue_token

auth_bp = Blueprint("auth", __name__, url_prefix="/auth")


def _find_user_by_email(email: str) -> Optional[User]:
    ident = (email or "").strip().lower()
    if not ident:
        return None
    return User.query.filter_by(email=ident).first()


@auth_bp.post("/login")
def login():
    data = request.get_json(silent=True) or {}
    email = (data.get("email") or "").strip()
    password = data.get("password") or ""

    if not email or not password:
        return jsonify({"msg": "Email and password are required"}), 400

    user = _find_user_by_email(email)
    if not user or not user.check_password(password):
        current_app.logger.info("Failed login for %s", email.lower())
        return jsonify({"msg": "Invalid credentials"}), 401
    if (user.status or "").lower() != "active":
        return jsonify({"msg": "Account is not active"}), 403

    return jsonify({"ok": True, "access_token": issue_token(user), "user": user.to_dict()}), 200


@auth_bp.get("/me")
@jwt_required()
def me():
    caller = current_caller()
    user = db.session.get(User, caller.user_id)
    if not user:
        return jsonify({"msg": "User not found"}), 404
    return jsonify({"ok": True, "user": user.to_dict()}), 200
