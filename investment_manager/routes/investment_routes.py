# investment_manager/routes/investment_routes.py
from flask import Blueprint, jsonify, request
from flask_jwt_extended import jwt_required

from investment_manager.services import investment_service
from investment_manager.utils.identity import current_caller

investments_bp = Blueprint("investments", __name__, url_prefix="/api/investments")


def _body():
    return request.get_json(silent=True)


@investments_bp.post("")
@jwt_required()
def create_investment():
    inv = investment_service.create_investment(_body(), current_caller())
    return jsonify({"ok": True, "msg": "Investment created", "investment": inv.to_dict()}), 201


@investments_bp.get("")
@jwt_required()
def list_investments():
    filters = {
        "structure_id": request.args.get("structure_id", type=int),
        "investment_type": request.args.get("investment_type"),
        "status": request.args.get("status"),
    }
    rows = investment_service.list_investments(filters, current_caller())
    return jsonify({"ok": True, "count": len(rows), "investments": [i.to_dict() for i in rows]}), 200


@investments_bp.get("/active")
@jwt_required()
def list_active():
    rows = investment_service.list_active(request.args.get("structure_id", type=int), current_caller())
    return jsonify({"ok": True, "count": len(rows), "investments": [i.to_dict() for i in rows]}), 200


@investments_bp.get("/structure/<int:structure_id>/portfolio")
@jwt_required()
def structure_portfolio(structure_id: int):
    summary = investment_service.portfolio_summary(structure_id, current_caller())
    return jsonify({"ok": True, "summary": summary}), 200


@investments_bp.get("/<int:investment_id>")
@jwt_required()
def get_investment(investment_id: int):
    inv = investment_service.get_investment(investment_id, current_caller())
    return jsonify({"ok": True, "investment": inv.to_dict()}), 200


@investments_bp.put("/<int:investment_id>")
@jwt_required()
def update_investment(investment_id: int):
    inv = investment_service.update_investment(investment_id, _body(), current_caller())
    return jsonify({"ok": True, "msg": "Investment updated", "investment": inv.to_dict()}), 200


@investments_bp.patch("/<int:investment_id>/performance")
@jwt_required()
def update_performance(investment_id: int):
    inv = investment_service.update_performance_metrics(investment_id, _body(), current_caller())
    return jsonify({"ok": True, "msg": "Performance metrics updated", "investment": inv.to_dict()}), 200


@investments_bp.patch("/<int:investment_id>/exit")
@jwt_required()
def exit_investment(investment_id: int):
    inv = investment_service.mark_exited(investment_id, _body(), current_caller())
    return jsonify({"ok": True, "msg": "Investment marked as exited", "investment": inv.to_dict()}), 200


@investments_bp.delete("/<int:investment_id>")
@jwt_required()
def delete_investment(investment_id: int):
    investment_service.delete_investment(investment_id, current_caller())
    return jsonify({"ok": True, "msg": "Investment deleted"}), 200
