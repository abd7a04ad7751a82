# investment_manager/routes/admin_routes.py
import logging

from flask import Blueprint, jsonify, request
from flask_jwt_extended import jwt_required

from investment_manager.errors import Conflict, Forbidden, InvalidArgument, NotFound
from investment_manager.extensions import db
from investment_manager.models import User
from investment_manager.roles import Role
from investment_manager.schemas import UserCreate, load
from investment_manager.storage import commit
from investment_manager.utils.identity import current_caller, manager_required, root_required

admin_bp = Blueprint("admin", __name__, url_prefix="/admin")

log = logging.getLogger(__name__)


# ───────────────────────── Users ─────────────────────────

@admin_bp.post("/users")
@jwt_required()
@manager_required
def create_user():
    caller = current_caller()
    values = load(UserCreate, request.get_json(silent=True))
    role = Role.parse(values["role"])
    if not caller.role.is_at_least(Role.ROOT) and role.is_at_least(caller.role):
        raise Forbidden("You can only create users with a lower role than your own")

    email = values["email"].lower()
    if User.query.filter_by(email=email).first():
        raise Conflict("A user with this email already exists")

    user = User(email=email, first_name=values["first_name"], last_name=values["last_name"], role=role)
    user.set_password(values["password"])
    db.session.add(user)
    commit()
    log.info("user %s (%s) created by %s", user.id, role.label, caller.user_id)
    return jsonify({"ok": True, "msg": "User created", "user": user.to_dict()}), 201


@admin_bp.get("/users")
@jwt_required()
@manager_required
def list_users():
    q = User.query
    role = request.args.get("role")
    if role not in (None, ""):
        q = q.filter(User.role == Role.parse(role))
    users = q.order_by(User.id.asc()).all()
    return jsonify({"ok": True, "count": len(users), "users": [u.to_dict() for u in users]}), 200


@admin_bp.patch("/users/<int:user_id>/role")
@jwt_required()
@root_required
def set_user_role(user_id: int):
    data = request.get_json(silent=True) or {}
    if "role" not in data:
        raise InvalidArgument("role is required")
    role = Role.parse(data["role"])

    user = db.session.get(User, user_id)
    if user is None:
        raise NotFound("User not found")

    previous = user.role
    user.role = role
    commit()
    log.info("user %s role changed %s -> %s by %s", user.id, previous.label, role.label, current_caller().user_id)
    return jsonify({"ok": True, "msg": "Role updated", "user": user.to_dict()}), 200
