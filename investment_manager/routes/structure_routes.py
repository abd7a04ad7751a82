# investment_manager/routes/structure_routes.py
from flask import Blueprint, jsonify, request
from flask_jwt_extended import jwt_required

from investment_manager.services import structure_service
from investment_manager.utils.identity import current_caller

structures_bp = Blueprint("structures", __name__, url_prefix="/api/structures")


def _body():
    return request.get_json(silent=True)


# ───────────────────────── Structures ─────────────────────────

@structures_bp.post("")
@jwt_required()
def create_structure():
    structure = structure_service.create_structure(_body(), current_caller())
    return jsonify({"ok": True, "msg": "Structure created", "structure": structure.to_dict()}), 201


@structures_bp.get("")
@jwt_required()
def list_structures():
    filters = {
        "created_by": request.args.get("created_by", type=int),
        "type": request.args.get("type"),
        "status": request.args.get("status"),
        "parent_id": request.args.get("parent_id", type=int),
    }
    rows = structure_service.list_structures(filters, current_caller())
    return jsonify({"ok": True, "count": len(rows), "structures": [s.to_dict() for s in rows]}), 200


@structures_bp.get("/root")
@jwt_required()
def root_structures():
    rows = structure_service.find_root_structures(current_caller())
    return jsonify({"ok": True, "count": len(rows), "structures": [s.to_dict() for s in rows]}), 200


@structures_bp.get("/<int:structure_id>")
@jwt_required()
def get_structure(structure_id: int):
    structure = structure_service.get_structure(structure_id, current_caller())
    return jsonify({"ok": True, "structure": structure.to_dict()}), 200


@structures_bp.get("/<int:structure_id>/children")
@jwt_required()
def get_children(structure_id: int):
    rows = structure_service.find_children(structure_id, current_caller())
    return jsonify({"ok": True, "count": len(rows), "structures": [s.to_dict() for s in rows]}), 200


@structures_bp.put("/<int:structure_id>")
@jwt_required()
def update_structure(structure_id: int):
    structure = structure_service.update_structure(structure_id, _body(), current_caller())
    return jsonify({"ok": True, "msg": "Structure updated", "structure": structure.to_dict()}), 200


@structures_bp.patch("/<int:structure_id>/financials")
@jwt_required()
def update_financials(structure_id: int):
    structure = structure_service.update_financials(structure_id, _body(), current_caller())
    return jsonify({"ok": True, "msg": "Financials updated", "structure": structure.to_dict()}), 200


@structures_bp.delete("/<int:structure_id>")
@jwt_required()
def delete_structure(structure_id: int):
    structure_service.delete_structure(structure_id, current_caller())
    return jsonify({"ok": True, "msg": "Structure deleted"}), 200


# ───────────────────────── Delegated admins ─────────────────────────

@structures_bp.post("/<int:structure_id>/admins")
@jwt_required()
def add_admin(structure_id: int):
    grant = structure_service.grant_admin(structure_id, _body(), current_caller())
    return jsonify({"ok": True, "msg": "Admin added to structure", "admin": grant.to_dict()}), 201


@structures_bp.get("/<int:structure_id>/admins")
@jwt_required()
def list_admins(structure_id: int):
    rows = structure_service.list_admins(structure_id, current_caller())
    return jsonify({"ok": True, "count": len(rows), "admins": [g.to_dict() for g in rows]}), 200


@structures_bp.delete("/<int:structure_id>/admins/<int:user_id>")
@jwt_required()
def remove_admin(structure_id: int, user_id: int):
    structure_service.revoke_admin(structure_id, user_id, current_caller())
    return jsonify({"ok": True, "msg": "Admin removed from structure"}), 200


# ───────────────────────── Investors ─────────────────────────

@structures_bp.post("/<int:structure_id>/investors")
@jwt_required()
def add_investor(structure_id: int):
    link = structure_service.add_investor(structure_id, _body(), current_caller())
    return jsonify({"ok": True, "msg": "Investor linked to structure", "investor": link.to_dict()}), 201


@structures_bp.get("/<int:structure_id>/investors")
@jwt_required()
def list_investors(structure_id: int):
    rows = structure_service.list_investors(structure_id, current_caller())
    return jsonify({"ok": True, "count": len(rows), "investors": [i.to_dict() for i in rows]}), 200


@structures_bp.delete("/<int:structure_id>/investors/<int:user_id>")
@jwt_required()
def remove_investor(structure_id: int, user_id: int):
    structure_service.remove_investor(structure_id, user_id, current_caller())
    return jsonify({"ok": True, "msg": "Investor removed from structure"}), 200
