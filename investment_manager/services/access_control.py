# investment_manager/services/access_control.py
"""
Structure-scoped authorization.

Resolution order for ``resolve_permission`` (first match wins):

    1. Root                         -> allowed, every capability
    2. caller created the structure -> allowed (this structure only)
    3. StructureAdmin grant         -> view always; other capabilities need
                                       an ADMIN/SUPPORT grant with the flag set
    4. anything else                -> denied

Grants never flow across parent/child edges.
"""
from __future__ import annotations

import logging
from typing import Optional, Set

from investment_manager.errors import Forbidden, InvalidArgument, Unauthorized
from investment_manager.extensions import db
from investment_manager.models import Structure, StructureAdmin, StructureInvestor
from investment_manager.roles import GRANTABLE_ROLES, Role

log = logging.getLogger(__name__)

VIEW = "view"
EDIT = "edit"
DELETE = "delete"
MANAGE_INVESTORS = "manage_investors"
MANAGE_DOCUMENTS = "manage_documents"

# capability -> grant flag
CAPABILITIES = {
    VIEW: None,
    EDIT: "can_edit",
    DELETE: "can_delete",
    MANAGE_INVESTORS: "can_manage_investors",
    MANAGE_DOCUMENTS: "can_manage_documents",
}


def _grant_for(structure_id: int, user_id: int) -> Optional[StructureAdmin]:
    return StructureAdmin.query.filter_by(structure_id=structure_id, user_id=user_id).first()


def resolve_permission(caller, structure: Structure, capability: str) -> bool:
    if capability not in CAPABILITIES:
        raise InvalidArgument(f"Unknown capability: {capability!r}")

    if caller.role == Role.ROOT:
        return True
    if structure.created_by == caller.user_id:
        return True

    grant = _grant_for(structure.id, caller.user_id)
    if grant is None:
        return False
    if capability == VIEW:
        return True
    if grant.role not in GRANTABLE_ROLES:
        return False
    return bool(getattr(grant, CAPABILITIES[capability]))


def require_permission(caller, structure: Structure, capability: str) -> None:
    if not resolve_permission(caller, structure, capability):
        log.info(
            "denied %s on structure %s for user %s (role=%s)",
            capability, structure.id, caller.user_id, caller.role.label,
        )
        raise Unauthorized(f"You do not have permission to {capability.replace('_', ' ')} this structure")


def is_linked_investor(caller, structure_id: int) -> bool:
    return (
        StructureInvestor.query.filter_by(structure_id=structure_id, user_id=caller.user_id).first()
        is not None
    )


def can_view_structure(caller, structure: Structure) -> bool:
    """View through the ladder, or read-only through an investor link."""
    return resolve_permission(caller, structure, VIEW) or is_linked_investor(caller, structure.id)


def visible_structure_ids(caller) -> Optional[Set[int]]:
    """Ids the caller may read. None means no restriction (Root)."""
    if caller.role == Role.ROOT:
        return None
    owned = {s for (s,) in db.session.query(Structure.id).filter(Structure.created_by == caller.user_id)}
    granted = {
        s for (s,) in db.session.query(StructureAdmin.structure_id).filter(StructureAdmin.user_id == caller.user_id)
    }
    linked = {
        s for (s,) in db.session.query(StructureInvestor.structure_id).filter(StructureInvestor.user_id == caller.user_id)
    }
    return owned | granted | linked


def require_structure_owner(caller, structure: Structure) -> None:
    """Owner-or-Root gate for grant management."""
    if caller.role == Role.ROOT or structure.created_by == caller.user_id:
        return
    raise Forbidden("Only the structure owner can manage its administrators")
