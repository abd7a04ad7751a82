# investment_manager/services/investment_service.py
"""
Investment ledger: EQUITY / DEBT / MIXED positions held by a structure.

Access: Root and the investment's creator always pass; everyone else is
checked against the owning structure (edit for writes, delete for delete,
view for reads).
"""
from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, List, Optional

from investment_manager.errors import Forbidden, InvalidArgument, InvalidState, NotFound
from investment_manager.models import Investment, Structure
from investment_manager.roles import MANAGER_ROLES, Role
from investment_manager.schemas import (
    ExitRequest,
    InvestmentCreate,
    InvestmentUpdate,
    PerformanceMetrics,
    investment_term_errors,
    load,
)
from investment_manager.services import access_control as acl
from investment_manager.storage import Repository

log = logging.getLogger(__name__)

investments = Repository(Investment, "Investment")
structures = Repository(Structure, "Structure")

ACTIVE = "Active"
EXITED = "Exited"

MONEY_FIELDS = {
    "equity_invested", "equity_current_value", "equity_exit_value", "equity_realized_gain",
    "principal_provided", "principal_repaid", "interest_received", "outstanding_principal",
    "accrued_interest", "total_returns", "current_value", "total_invested",
}
RATE_FIELDS = {"ownership_percentage", "interest_rate", "irr", "irr_percent", "multiple", "moic"}

# Read back from the stored row when re-validating a merged update
TERM_FIELDS = ("investment_type", "equity_invested", "principal_provided", "interest_rate")

CENTS = Decimal("0.01")
BASIS = Decimal("0.0001")


def _today() -> date:
    return datetime.now(timezone.utc).date()


def _rounded(values: Dict[str, Any]) -> Dict[str, Any]:
    out = {}
    for key, value in values.items():
        if value is not None and key in MONEY_FIELDS:
            value = Decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)
        elif value is not None and key in RATE_FIELDS:
            value = Decimal(value).quantize(BASIS, rounding=ROUND_HALF_UP)
        out[key] = value
    return out


def _mirror(values: Dict[str, Any], a: str, b: str) -> None:
    if a in values and b not in values:
        values[b] = values[a]
    elif b in values and a not in values:
        values[a] = values[b]


def _authorize(caller, structure: Structure, capability: str, owner_id: Optional[int] = None) -> None:
    if caller.role == Role.ROOT:
        return
    if owner_id is not None and owner_id == caller.user_id:
        return
    if capability == acl.VIEW and acl.is_linked_investor(caller, structure.id):
        return
    acl.require_permission(caller, structure, capability)


def _load_for(investment_id: int, caller, capability: str) -> Investment:
    investment = investments.get_or_404(investment_id)
    _authorize(caller, investment.structure, capability, owner_id=investment.user_id)
    return investment


# ─────────────────────────── Writes ───────────────────────────

def create_investment(data: Dict[str, Any], caller) -> Investment:
    if caller.role not in MANAGER_ROLES:
        raise Forbidden("Only Root and Admin users can create investments")

    values = load(InvestmentCreate, data, drop_none=True)
    structure = structures.find_by_id(values["structure_id"])
    if structure is None:
        raise NotFound("Structure not found")
    _authorize(caller, structure, acl.EDIT)

    kind = values["investment_type"]
    if kind in ("EQUITY", "MIXED"):
        values.setdefault("equity_current_value", values.get("equity_invested"))
    if kind in ("DEBT", "MIXED"):
        values.setdefault("outstanding_principal", values.get("principal_provided"))
    _mirror(values, "irr", "irr_percent")
    _mirror(values, "multiple", "moic")

    values.setdefault("investment_date", _today())
    values.setdefault("currency", structure.base_currency or "USD")
    values.update(status=ACTIVE, user_id=caller.user_id)

    investment = investments.create(_rounded(values))
    log.info("investment %s (%s) created in structure %s by user %s", investment.id, kind, structure.id, caller.user_id)
    return investment


def update_investment(investment_id: int, patch: Dict[str, Any], caller) -> Investment:
    investment = _load_for(investment_id, caller, acl.EDIT)

    values = load(InvestmentUpdate, patch, partial=True)
    if "name" in values and not values["name"]:
        raise InvalidArgument("name cannot be cleared")
    if "investment_type" in values and values["investment_type"] is None:
        raise InvalidArgument("investment_type cannot be cleared")
    if not values:
        raise InvalidArgument("No valid fields provided for update")

    merged = {f: getattr(investment, f) for f in TERM_FIELDS}
    merged.update({k: v for k, v in values.items() if k in TERM_FIELDS})
    problems = investment_term_errors(merged)
    if problems:
        raise InvalidArgument("Invalid InvestmentUpdate payload", details=problems)

    _mirror(values, "irr", "irr_percent")
    _mirror(values, "multiple", "moic")
    return investments.find_by_id_and_update(investment.id, _rounded(values))


def update_performance_metrics(investment_id: int, metrics: Dict[str, Any], caller) -> Investment:
    investment = _load_for(investment_id, caller, acl.EDIT)

    values = load(PerformanceMetrics, metrics, partial=True, drop_none=True)
    if not values:
        raise InvalidArgument("At least one performance metric is required")
    _mirror(values, "irr", "irr_percent")
    _mirror(values, "multiple", "moic")
    return investments.find_by_id_and_update(investment.id, _rounded(values))


def mark_exited(investment_id: int, data: Optional[Dict[str, Any]], caller) -> Investment:
    investment = _load_for(investment_id, caller, acl.EDIT)
    if investment.status == EXITED:
        raise InvalidState("Investment has already been exited")

    values = load(ExitRequest, data or {}, drop_none=True)
    patch = {"status": EXITED, "exit_date": values.get("exit_date") or _today()}

    exit_value = values.get("equity_exit_value")
    if exit_value is not None:
        patch["equity_exit_value"] = exit_value
        if investment.equity_invested is not None:
            patch["equity_realized_gain"] = Decimal(exit_value) - Decimal(investment.equity_invested)

    exited = investments.find_by_id_and_update(investment.id, _rounded(patch))
    log.info("investment %s exited on %s by user %s", exited.id, exited.exit_date, caller.user_id)
    return exited


def delete_investment(investment_id: int, caller) -> Investment:
    investment = _load_for(investment_id, caller, acl.DELETE)
    investments.find_by_id_and_delete(investment.id)
    log.info("investment %s deleted by user %s", investment_id, caller.user_id)
    return investment


# ─────────────────────────── Reads ───────────────────────────

def get_investment(investment_id: int, caller) -> Investment:
    return _load_for(investment_id, caller, acl.VIEW)


def _visible_query(caller):
    q = Investment.query
    if caller.role == Role.ROOT:
        return q
    visible = acl.visible_structure_ids(caller) or set()
    own = Investment.user_id == caller.user_id
    if visible:
        return q.filter(own | Investment.structure_id.in_(visible))
    return q.filter(own)


def list_investments(filters: Dict[str, Any], caller) -> List[Investment]:
    q = _visible_query(caller)
    if filters.get("structure_id") is not None:
        q = q.filter(Investment.structure_id == filters["structure_id"])
    if filters.get("investment_type"):
        q = q.filter(Investment.investment_type == filters["investment_type"])
    if filters.get("status"):
        q = q.filter(Investment.status == filters["status"])
    return q.order_by(Investment.created_at.desc(), Investment.id.desc()).all()


def list_active(structure_id: Optional[int], caller) -> List[Investment]:
    if structure_id is not None:
        structure = structures.get_or_404(structure_id)
        _authorize(caller, structure, acl.VIEW)
    return list_investments({"structure_id": structure_id, "status": ACTIVE}, caller)


def _d(value) -> Decimal:
    return Decimal(value) if value is not None else Decimal("0")


def _money(value: Decimal) -> float:
    return float(value.quantize(CENTS, rounding=ROUND_HALF_UP))


def portfolio_summary(structure_id: int, caller) -> Dict[str, Any]:
    """Aggregate view of one structure's investments."""
    structure = structures.get_or_404(structure_id)
    _authorize(caller, structure, acl.VIEW)

    rows = investments.find(structure_id=structure.id)
    by_type = {"EQUITY": 0, "DEBT": 0, "MIXED": 0}
    by_status = {ACTIVE: 0, EXITED: 0}

    total_invested = Decimal("0")
    total_current = Decimal("0")
    total_realized = Decimal("0")
    weighted_irr = Decimal("0")
    weighted_moic = Decimal("0")
    active_capital = Decimal("0")

    for inv in rows:
        by_type[inv.investment_type] = by_type.get(inv.investment_type, 0) + 1
        by_status[inv.status] = by_status.get(inv.status, 0) + 1

        invested = _d(inv.total_invested)
        if invested == 0:
            invested = _d(inv.equity_invested) + _d(inv.principal_provided)
        total_invested += invested
        total_realized += _d(inv.equity_realized_gain)

        if inv.status == ACTIVE:
            current = _d(inv.current_value)
            if current == 0:
                current = _d(inv.equity_current_value) + _d(inv.outstanding_principal)
            total_current += current
            active_capital += invested
            weighted_irr += _d(inv.irr_percent) * invested
            weighted_moic += _d(inv.moic) * invested

    return {
        "structure_id": structure.id,
        "total_investments": len(rows),
        "by_type": by_type,
        "by_status": by_status,
        "total_invested": _money(total_invested),
        "total_current_value": _money(total_current),
        "total_realized_gain": _money(total_realized),
        "total_unrealized_gain": _money(total_current - active_capital),
        "weighted_irr": float((weighted_irr / active_capital).quantize(BASIS, rounding=ROUND_HALF_UP)) if active_capital else 0.0,
        "weighted_moic": float((weighted_moic / active_capital).quantize(BASIS, rounding=ROUND_HALF_UP)) if active_capital else 0.0,
    }
