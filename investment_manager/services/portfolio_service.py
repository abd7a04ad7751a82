# investment_manager/services/portfolio_service.py
"""
Investor-facing aggregation: dashboard, commitments and capital calls.

Read-only. All sums are carried as Decimal and only rounded (2 places,
half-up) when the response dict is built, so running the same query twice
gives byte-identical output.
"""
from __future__ import annotations

import logging
from collections import defaultdict
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, List, Optional, Set, Tuple

from investment_manager.errors import Unauthorized
from investment_manager.extensions import db
from investment_manager.models import (
    CapitalCall,
    CapitalCallAllocation,
    Distribution,
    DistributionAllocation,
    Structure,
    StructureInvestor,
    User,
)
from investment_manager.roles import Role
from investment_manager.services import access_control as acl
from investment_manager.storage import Repository

log = logging.getLogger(__name__)

UNKNOWN_STRUCTURE = "Unknown Structure"
PAID = "Paid"

ZERO = Decimal("0")
CENTS = Decimal("0.01")

users = Repository(User, "User")


def _dec(value) -> Decimal:
    if value is None:
        return ZERO
    return value if isinstance(value, Decimal) else Decimal(str(value))


def _out(value: Decimal) -> float:
    return float(value.quantize(CENTS, rounding=ROUND_HALF_UP))


def _iso(value):
    return value.isoformat() if value is not None else None


def _investor_header(user: User) -> Dict[str, Any]:
    return {
        "id": user.id,
        "first_name": user.first_name,
        "last_name": user.last_name,
        "email": user.email,
    }


def _linked_structures(user_id: int) -> List[Tuple[StructureInvestor, Structure]]:
    """Investor links with their structure, skipping links to deleted structures."""
    pairs = []
    for link in StructureInvestor.query.filter_by(user_id=user_id).order_by(StructureInvestor.id.asc()):
        structure = db.session.get(Structure, link.structure_id)
        if structure is None:
            log.warning("investor link %s points at missing structure %s", link.id, link.structure_id)
            continue
        pairs.append((link, structure))
    return pairs


def _called_by_structure(user_id: int) -> Dict[int, Decimal]:
    called: Dict[int, Decimal] = defaultdict(lambda: ZERO)
    rows = (
        db.session.query(CapitalCallAllocation.allocated_amount, CapitalCall.structure_id)
        .join(CapitalCall, CapitalCallAllocation.capital_call_id == CapitalCall.id)
        .filter(CapitalCallAllocation.user_id == user_id)
        .order_by(CapitalCallAllocation.id.asc())
    )
    for amount, structure_id in rows:
        called[structure_id] += _dec(amount)
    return called


def build_dashboard(user_id: int, only: Optional[Set[int]] = None) -> Dict[str, Any]:
    """
    Consolidated position of one investor. When ``only`` is given, links and
    distributions outside those structure ids are left out entirely.
    """
    user = users.get_or_404(user_id)
    linked = _linked_structures(user.id)
    if only is not None:
        linked = [(link, s) for link, s in linked if s.id in only]
    called = _called_by_structure(user.id)

    structures = []
    names: Dict[int, str] = {}
    total_commitment = total_called = total_current = ZERO

    for link, structure in linked:
        names[structure.id] = structure.name
        commitment = _dec(link.commitment_amount)
        called_capital = called.get(structure.id, ZERO)
        current_value = _dec(structure.current_nav) if structure.current_nav is not None else called_capital

        total_commitment += commitment
        total_called += called_capital
        total_current += current_value

        structures.append({
            "id": structure.id,
            "name": structure.name,
            "type": structure.type,
            "status": structure.status,
            "base_currency": structure.base_currency,
            "commitment": _out(commitment),
            "called_capital": _out(called_capital),
            "uncalled_capital": _out(max(ZERO, commitment - called_capital)),
            "current_value": _out(current_value),
            "unrealized_gain": _out(current_value - called_capital),
        })

    distributions = []
    total_distributed = ZERO
    rows = (
        db.session.query(DistributionAllocation, Distribution)
        .join(Distribution, DistributionAllocation.distribution_id == Distribution.id)
        .filter(DistributionAllocation.user_id == user.id)
        .order_by(DistributionAllocation.created_at.desc(), DistributionAllocation.id.desc())
    )
    if only is not None:
        rows = rows.filter(Distribution.structure_id.in_(only))
    for alloc, dist in rows:
        name = names.get(dist.structure_id)
        if name is None:
            log.warning(
                "distribution %s for user %s references structure %s outside the investor's links",
                dist.id, user.id, dist.structure_id,
            )
            name = UNKNOWN_STRUCTURE
        status = alloc.status or dist.status
        amount = _dec(alloc.allocated_amount)
        if status == PAID:
            total_distributed += amount
        distributions.append({
            "id": dist.id,
            "structure_id": dist.structure_id,
            "structure_name": name,
            "amount": _out(amount),
            "date": _iso(dist.distribution_date),
            "type": dist.source or "Distribution",
            "status": status,
        })

    total_return = (total_distributed + total_current) - total_called
    total_return_percent = (total_return * 100 / total_called) if total_called > 0 else ZERO

    return {
        "investor": _investor_header(user),
        "structures": structures,
        "summary": {
            "total_commitment": _out(total_commitment),
            "total_called_capital": _out(total_called),
            "total_current_value": _out(total_current),
            "total_distributed": _out(total_distributed),
            "total_return": _out(total_return),
            "total_return_percent": _out(total_return_percent),
        },
        "distributions": distributions,
    }


def dashboard_for(user_id: int, caller) -> Dict[str, Any]:
    """
    Another user's dashboard as seen by a manager. Root sees everything;
    anyone else only the structures of that investor they can view.
    """
    if caller.role == Role.ROOT:
        return build_dashboard(user_id)

    user = users.get_or_404(user_id)
    allowed = {
        structure.id
        for _, structure in _linked_structures(user.id)
        if acl.resolve_permission(caller, structure, acl.VIEW)
    }
    if not allowed:
        log.info("user %s denied dashboard of investor %s", caller.user_id, user.id)
        raise Unauthorized("You do not manage any structure this investor belongs to")
    return build_dashboard(user.id, only=allowed)


def commitments_summary(user_id: int) -> Dict[str, Any]:
    user = users.get_or_404(user_id)
    called = _called_by_structure(user.id)

    rows = []
    total_commitment = total_called = ZERO
    active_funds = 0
    for link, structure in _linked_structures(user.id):
        commitment = _dec(link.commitment_amount)
        called_capital = called.get(structure.id, ZERO)
        total_commitment += commitment
        total_called += called_capital
        if structure.status == "Active":
            active_funds += 1
        rows.append({
            "structure_id": structure.id,
            "structure_name": structure.name,
            "type": structure.type,
            "status": structure.status,
            "base_currency": structure.base_currency,
            "ownership_percent": _out(_dec(link.ownership_percent)),
            "commitment": _out(commitment),
            "called_capital": _out(called_capital),
            "uncalled_capital": _out(max(ZERO, commitment - called_capital)),
        })

    return {
        "total_commitment": _out(total_commitment),
        "called_capital": _out(total_called),
        "uncalled_capital": _out(max(ZERO, total_commitment - total_called)),
        "active_funds": active_funds,
        "structures": rows,
    }


def capital_calls_summary(user_id: int) -> Dict[str, Any]:
    user = users.get_or_404(user_id)
    names = {structure.id: structure.name for _, structure in _linked_structures(user.id)}

    rows = (
        db.session.query(CapitalCallAllocation, CapitalCall)
        .join(CapitalCall, CapitalCallAllocation.capital_call_id == CapitalCall.id)
        .filter(CapitalCallAllocation.user_id == user.id)
        .all()
    )
    # newest call first, undated calls last
    rows.sort(key=lambda r: (r[1].call_date is not None, r[1].call_date, r[1].id), reverse=True)

    calls = []
    total_called = total_paid = ZERO
    for alloc, call in rows:
        allocated = _dec(alloc.allocated_amount)
        paid = _dec(alloc.paid_amount)
        total_called += allocated
        total_paid += paid

        name = names.get(call.structure_id)
        if name is None:
            log.warning("capital call %s for user %s has no linked structure", call.id, user.id)
            name = UNKNOWN_STRUCTURE
        calls.append({
            "id": call.id,
            "structure_id": call.structure_id,
            "structure_name": name,
            "call_number": call.call_number,
            "call_date": _iso(call.call_date),
            "due_date": _iso(call.due_date),
            "allocated_amount": _out(allocated),
            "paid_amount": _out(paid),
            "outstanding": _out(allocated - paid),
            "status": alloc.status or call.status,
            "purpose": call.purpose,
        })

    return {
        "capital_calls": calls,
        "summary": {
            "total_called": _out(total_called),
            "total_paid": _out(total_paid),
            "outstanding": _out(max(ZERO, total_called - total_paid)),
            "total_calls": len(calls),
        },
    }
