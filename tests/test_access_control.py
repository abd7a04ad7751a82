import pytest

from conftest import caller_for, link_investor
from investment_manager.errors import Forbidden, InvalidArgument, Unauthorized
from investment_manager.extensions import db
from investment_manager.models import StructureAdmin
from investment_manager.roles import Role
from investment_manager.services import access_control as acl

ALL_CAPS = ["view", "edit", "delete", "manage_investors", "manage_documents"]


def _grant(structure, user, role=Role.ADMIN, **flags):
    grant = StructureAdmin(structure_id=structure.id, user_id=user.id, role=role, **flags)
    db.session.add(grant)
    db.session.commit()
    return grant


@pytest.mark.parametrize("capability", ALL_CAPS)
def test_root_is_allowed_everything(make_structure, admin_user, root_user, capability):
    structure = make_structure(admin_user)
    assert acl.resolve_permission(caller_for(root_user), structure, capability)


@pytest.mark.parametrize("capability", ALL_CAPS)
def test_owner_is_allowed_everything(make_structure, admin_user, capability):
    structure = make_structure(admin_user)
    assert acl.resolve_permission(caller_for(admin_user), structure, capability)


@pytest.mark.parametrize("capability", ALL_CAPS)
def test_stranger_is_denied(make_structure, admin_user, other_admin, capability):
    structure = make_structure(admin_user)
    assert not acl.resolve_permission(caller_for(other_admin), structure, capability)


def test_grant_flags_drive_capabilities(make_structure, admin_user, support_user):
    structure = make_structure(admin_user)
    _grant(structure, support_user, role=Role.SUPPORT, can_edit=True, can_delete=False,
           can_manage_investors=False, can_manage_documents=True)
    caller = caller_for(support_user)

    assert acl.resolve_permission(caller, structure, "view")
    assert acl.resolve_permission(caller, structure, "edit")
    assert not acl.resolve_permission(caller, structure, "delete")
    assert not acl.resolve_permission(caller, structure, "manage_investors")
    assert acl.resolve_permission(caller, structure, "manage_documents")


def test_grant_with_non_grantable_role_only_views(make_structure, admin_user, make_user):
    structure = make_structure(admin_user)
    guest = make_user(Role.GUEST)
    _grant(structure, guest, role=Role.GUEST, can_edit=True)

    assert acl.resolve_permission(caller_for(guest), structure, "view")
    assert not acl.resolve_permission(caller_for(guest), structure, "edit")


def test_grants_do_not_flow_to_children_or_parents(make_structure, admin_user, other_admin):
    parent = make_structure(admin_user, "Parent")
    child = make_structure(admin_user, "Child", parent_structure_id=parent.id)
    _grant(parent, other_admin, can_edit=True)

    caller = caller_for(other_admin)
    assert acl.resolve_permission(caller, parent, "edit")
    assert not acl.resolve_permission(caller, child, "view")


def test_ownership_is_not_transitive(make_structure, root_user, admin_user):
    # admin owns the child only; the parent belongs to root
    parent = make_structure(root_user, "Root fund")
    child = make_structure(root_user, "Child", parent_structure_id=parent.id)
    child.created_by = admin_user.id
    db.session.commit()

    caller = caller_for(admin_user)
    assert acl.resolve_permission(caller, child, "delete")
    assert not acl.resolve_permission(caller, parent, "view")


def test_unknown_capability_is_rejected(make_structure, admin_user):
    structure = make_structure(admin_user)
    with pytest.raises(InvalidArgument):
        acl.resolve_permission(caller_for(admin_user), structure, "launch")


def test_require_permission_raises_unauthorized(make_structure, admin_user, other_admin):
    structure = make_structure(admin_user)
    with pytest.raises(Unauthorized):
        acl.require_permission(caller_for(other_admin), structure, "edit")


def test_investor_link_gives_read_only_visibility(make_structure, admin_user, investor_user):
    structure = make_structure(admin_user)
    link_investor(structure, investor_user, 1000)
    caller = caller_for(investor_user)

    assert acl.can_view_structure(caller, structure)
    assert not acl.resolve_permission(caller, structure, "edit")
    assert acl.visible_structure_ids(caller) == {structure.id}


def test_visible_ids_union_and_root(make_structure, admin_user, other_admin, root_user):
    mine = make_structure(admin_user, "Mine")
    theirs = make_structure(other_admin, "Theirs")
    make_structure(other_admin, "Hidden")
    _grant(theirs, admin_user)

    assert acl.visible_structure_ids(caller_for(admin_user)) == {mine.id, theirs.id}
    assert acl.visible_structure_ids(caller_for(root_user)) is None


def test_require_structure_owner(make_structure, admin_user, other_admin, root_user):
    structure = make_structure(admin_user)
    acl.require_structure_owner(caller_for(admin_user), structure)
    acl.require_structure_owner(caller_for(root_user), structure)
    with pytest.raises(Forbidden):
        acl.require_structure_owner(caller_for(other_admin), structure)
