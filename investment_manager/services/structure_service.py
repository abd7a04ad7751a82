# investment_manager/services/structure_service.py
"""
Structure hierarchy: create / read / update / delete of investment vehicles,
plus their delegated administrators and investor links.

Every operation takes the resolved ``Caller`` last and raises a ServiceError
subclass on failure; routes only translate payloads.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from flask import current_app

from investment_manager.errors import Conflict, DepthExceeded, Forbidden, InvalidArgument, NotFound, Unauthorized
from investment_manager.extensions import db
from investment_manager.models import (
    CapitalCall,
    Distribution,
    Structure,
    StructureAdmin,
    StructureInvestor,
    User,
)
from investment_manager.roles import GRANTABLE_ROLES, Role, is_manager
from investment_manager.schemas import (
    GrantCreate,
    InvestorLinkCreate,
    StructureCreate,
    StructureFinancials,
    StructureUpdate,
    load,
)
from investment_manager.services import access_control as acl
from investment_manager.storage import Repository, commit
from investment_manager.utils.cleanup import remove_stale_banner

log = logging.getLogger(__name__)

structures = Repository(Structure, "Structure")
grants = Repository(StructureAdmin, "Structure admin")
investor_links = Repository(StructureInvestor, "Structure investor")
users = Repository(User, "User")

# Only writable through update_financials
ROLLUP_FIELDS = ("total_commitment", "total_called", "total_distributed", "total_invested")

HIERARCHY_CEILING = 5


def _max_depth() -> int:
    return min(int(current_app.config.get("MAX_HIERARCHY_DEPTH", 5)), HIERARCHY_CEILING)


def _require_manager(caller) -> None:
    if not is_manager(caller.role):
        raise Forbidden("Only Root and Admin users can manage structures")


# ─────────────────────────── Structures ───────────────────────────

def create_structure(data: Dict[str, Any], caller) -> Structure:
    _require_manager(caller)
    values = load(StructureCreate, data, drop_none=True)

    parent_id = values.pop("parent_structure_id", None)
    level = 1
    if parent_id is not None:
        parent = structures.find_by_id(parent_id)
        if parent is None:
            raise NotFound("Parent structure not found")
        if parent.created_by != caller.user_id and caller.role != Role.ROOT:
            raise Forbidden("Parent structure does not belong to you")
        if parent.hierarchy_level >= _max_depth():
            raise DepthExceeded(f"Maximum hierarchy depth ({_max_depth()} levels) exceeded")
        level = parent.hierarchy_level + 1

    for key, default in current_app.config.get("STRUCTURE_DEFAULTS", {}).items():
        values.setdefault(key, default)

    values.update(
        parent_structure_id=parent_id,
        hierarchy_level=level,
        created_by=caller.user_id,
        total_called=0,
        total_distributed=0,
        total_invested=0,
    )
    values.setdefault("total_commitment", 0)

    structure = structures.create(values)
    log.info(
        "structure %s created by user %s (level %s, parent %s)",
        structure.id, caller.user_id, level, parent_id,
    )
    return structure


def get_structure(structure_id: int, caller) -> Structure:
    structure = structures.get_or_404(structure_id)
    if not acl.can_view_structure(caller, structure):
        raise Unauthorized("You do not have permission to view this structure")
    return structure


def list_structures(filters: Dict[str, Any], caller) -> List[Structure]:
    q = Structure.query
    if filters.get("created_by") is not None:
        q = q.filter(Structure.created_by == filters["created_by"])
    if filters.get("type"):
        q = q.filter(Structure.type == filters["type"])
    if filters.get("status"):
        q = q.filter(Structure.status == filters["status"])
    if filters.get("parent_id") is not None:
        q = q.filter(Structure.parent_structure_id == filters["parent_id"])

    visible = acl.visible_structure_ids(caller)
    if visible is not None:
        if not visible:
            return []
        q = q.filter(Structure.id.in_(visible))
    return q.order_by(Structure.created_at.desc(), Structure.id.desc()).all()


def update_structure(structure_id: int, patch: Dict[str, Any], caller) -> Structure:
    structure = structures.get_or_404(structure_id)
    acl.require_permission(caller, structure, acl.EDIT)

    if isinstance(patch, dict):
        blocked = [f for f in ROLLUP_FIELDS if f in patch]
        if blocked:
            raise InvalidArgument(
                "Financial totals cannot be changed here; use the financials update",
                details=[f"{f}: not updatable on this path" for f in blocked],
            )
        if "parent_structure_id" in patch and patch["parent_structure_id"] != structure.parent_structure_id:
            raise InvalidArgument("Moving a structure to a different parent is not supported")

    values = load(StructureUpdate, patch, partial=True)
    for required in ("name", "type", "status"):
        if required in values and values[required] is None:
            raise InvalidArgument(f"{required} cannot be cleared")
    if not values:
        raise InvalidArgument("No valid fields provided for update")

    old_banner = structure.banner_image
    updated = structures.find_by_id_and_update(structure.id, values)

    if "banner_image" in values and old_banner and old_banner != updated.banner_image:
        remove_stale_banner(old_banner, updated.banner_image)
    return updated


def update_financials(structure_id: int, totals: Dict[str, Any], caller) -> Structure:
    structure = structures.get_or_404(structure_id)
    acl.require_permission(caller, structure, acl.EDIT)

    values = load(StructureFinancials, totals, partial=True, drop_none=True)
    if not values:
        raise InvalidArgument("At least one financial field is required")
    return structures.find_by_id_and_update(structure.id, values)


def find_children(structure_id: int, caller) -> List[Structure]:
    parent = get_structure(structure_id, caller)
    children = structures.find(parent_structure_id=parent.id)
    visible = acl.visible_structure_ids(caller)
    if visible is None:
        return children
    # access to the parent says nothing about its children
    return [c for c in children if c.id in visible]


def find_root_structures(caller) -> List[Structure]:
    q = Structure.query.filter(Structure.parent_structure_id.is_(None))
    if caller.role != Role.ROOT:
        q = q.filter(Structure.created_by == caller.user_id)
    return q.order_by(Structure.created_at.desc(), Structure.id.desc()).all()


def delete_structure(structure_id: int, caller) -> Structure:
    structure = structures.get_or_404(structure_id)
    acl.require_permission(caller, structure, acl.DELETE)

    blockers = []
    children = Structure.query.filter_by(parent_structure_id=structure.id).count()
    if children:
        blockers.append(f"{children} child structure(s)")
    calls = CapitalCall.query.filter_by(structure_id=structure.id).count()
    if calls:
        blockers.append(f"{calls} capital call(s)")
    dists = Distribution.query.filter_by(structure_id=structure.id).count()
    if dists:
        blockers.append(f"{dists} distribution(s)")
    if blockers:
        raise Conflict("Structure cannot be deleted while it is referenced", details=blockers)

    structures.delete(structure)
    log.info("structure %s deleted by user %s", structure_id, caller.user_id)
    return structure


# ─────────────────────────── Delegated admins ───────────────────────────

def grant_admin(structure_id: int, data: Dict[str, Any], caller) -> StructureAdmin:
    structure = structures.get_or_404(structure_id)
    acl.require_structure_owner(caller, structure)

    values = load(GrantCreate, data)
    role = Role.parse(values["role"])
    if role not in GRANTABLE_ROLES:
        raise InvalidArgument("Grant role must be admin (1) or support (2)")

    target = users.find_by_id(values["user_id"])
    if target is None:
        raise NotFound("User not found")
    if target.role not in GRANTABLE_ROLES:
        raise InvalidArgument("User must have the admin or support role to be added as a structure admin")

    if grants.find_one(structure_id=structure.id, user_id=target.id) is not None:
        raise Conflict("User is already an admin of this structure")

    flags = dict(current_app.config.get("GRANT_DEFAULTS", {}))
    for key in ("can_edit", "can_delete", "can_manage_investors", "can_manage_documents"):
        if values.get(key) is not None:
            flags[key] = values[key]

    grant = grants.create(
        dict(structure_id=structure.id, user_id=target.id, role=role, added_by=caller.user_id, **flags)
    )
    log.info("user %s granted %s on structure %s by %s", target.id, role.label, structure.id, caller.user_id)
    return grant


def list_admins(structure_id: int, caller) -> List[StructureAdmin]:
    structure = structures.get_or_404(structure_id)
    acl.require_structure_owner(caller, structure)
    return grants.find(structure_id=structure.id)


def revoke_admin(structure_id: int, user_id: int, caller) -> None:
    structure = structures.get_or_404(structure_id)
    acl.require_structure_owner(caller, structure)

    grant = grants.find_one(structure_id=structure.id, user_id=user_id)
    if grant is None:
        raise NotFound("Structure admin not found")
    grants.delete(grant)
    log.info("grant for user %s on structure %s revoked by %s", user_id, structure.id, caller.user_id)


# ─────────────────────────── Investor links ───────────────────────────

def list_investors(structure_id: int, caller) -> List[StructureInvestor]:
    structure = structures.get_or_404(structure_id)
    acl.require_permission(caller, structure, acl.MANAGE_INVESTORS)
    return investor_links.find(structure_id=structure.id)


def add_investor(structure_id: int, data: Dict[str, Any], caller) -> StructureInvestor:
    structure = structures.get_or_404(structure_id)
    acl.require_permission(caller, structure, acl.MANAGE_INVESTORS)

    values = load(InvestorLinkCreate, data)
    target: Optional[User] = users.find_by_id(values["user_id"])
    if target is None:
        raise NotFound("User not found")
    if target.role != Role.INVESTOR:
        raise InvalidArgument("Only users with the investor role can be linked to a structure")
    if investor_links.find_one(structure_id=structure.id, user_id=target.id) is not None:
        raise Conflict("Investor is already linked to this structure")

    link = StructureInvestor(
        structure_id=structure.id,
        user_id=target.id,
        commitment_amount=values["commitment_amount"],
        ownership_percent=values.get("ownership_percent"),
    )
    db.session.add(link)
    commit()
    log.info("investor %s linked to structure %s by %s", target.id, structure.id, caller.user_id)
    return link


def remove_investor(structure_id: int, user_id: int, caller) -> None:
    structure = structures.get_or_404(structure_id)
    acl.require_permission(caller, structure, acl.MANAGE_INVESTORS)

    link = investor_links.find_one(structure_id=structure.id, user_id=user_id)
    if link is None:
        raise NotFound("Structure investor not found")
    investor_links.delete(link)
    log.info("investor %s unlinked from structure %s by %s", user_id, structure.id, caller.user_id)
