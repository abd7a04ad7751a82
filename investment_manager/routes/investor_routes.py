# investment_manager/routes/investor_routes.py
from flask import Blueprint, jsonify
from flask_jwt_extended import jwt_required

from investment_manager.services import portfolio_service
from investment_manager.utils.identity import current_caller, manager_required

investor_bp = Blueprint("investor", __name__, url_prefix="/api/investors")


@investor_bp.get("/me/dashboard")
@jwt_required()
def my_dashboard():
    """Consolidated position of the logged-in investor."""
    data = portfolio_service.build_dashboard(current_caller().user_id)
    return jsonify({"ok": True, "data": data}), 200


@investor_bp.get("/<int:user_id>/dashboard")
@jwt_required()
@manager_required
def investor_dashboard(user_id: int):
    data = portfolio_service.dashboard_for(user_id, current_caller())
    return jsonify({"ok": True, "data": data}), 200


@investor_bp.get("/me/commitments")
@jwt_required()
def my_commitments():
    data = portfolio_service.commitments_summary(current_caller().user_id)
    return jsonify({"ok": True, "data": data}), 200


@investor_bp.get("/me/capital-calls")
@jwt_required()
def my_capital_calls():
    data = portfolio_service.capital_calls_summary(current_caller().user_id)
    return jsonify({"ok": True, "data": data}), 200
