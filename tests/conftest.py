"""
Shared fixtures: a fresh app on an in-memory database per test, users of
every role, and helpers for callers and bearer headers.
"""

from __future__ import annotations

import itertools
from datetime import date
from decimal import Decimal

import pytest

from app import create_app
from investment_manager.config import TestConfig
from investment_manager.extensions import db
from investment_manager.models import (
    CapitalCall,
    CapitalCallAllocation,
    Distribution,
    DistributionAllocation,
    StructureInvestor,
    User,
)
from investment_manager.roles import Role
from investment_manager.services import structure_service
from investment_manager.utils.identity import Caller, issue_token

_seq = itertools.count(1)


@pytest.fixture
def app():
    app = create_app(TestConfig)
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_user(app):
    def _make(role: Role = Role.INVESTOR, email: str | None = None, password: str = "password123", **kw) -> User:
        n = next(_seq)
        user = User(
            email=email or f"{role.label}{n}@example.com",
            first_name=kw.pop("first_name", role.label.title()),
            last_name=kw.pop("last_name", str(n)),
            role=role,
            **kw,
        )
        user.set_password(password)
        db.session.add(user)
        db.session.commit()
        return user

    return _make


@pytest.fixture
def root_user(make_user):
    return make_user(Role.ROOT)


@pytest.fixture
def admin_user(make_user):
    return make_user(Role.ADMIN)


@pytest.fixture
def other_admin(make_user):
    return make_user(Role.ADMIN)


@pytest.fixture
def support_user(make_user):
    return make_user(Role.SUPPORT)


@pytest.fixture
def investor_user(make_user):
    return make_user(Role.INVESTOR, first_name="Ana", last_name="Lopez")


def caller_for(user: User) -> Caller:
    return Caller(user_id=user.id, role=user.role)


@pytest.fixture
def auth_headers(app):
    def _headers(user: User) -> dict:
        return {"Authorization": f"Bearer {issue_token(user)}"}

    return _headers


@pytest.fixture
def make_structure(app):
    def _make(owner: User, name: str = "Fund I", **fields):
        payload = {"name": name, "type": fields.pop("type", "Fund"), **fields}
        return structure_service.create_structure(payload, caller_for(owner))

    return _make


# ---------- allocation seeding ----------

def link_investor(structure, user, commitment) -> StructureInvestor:
    link = StructureInvestor(structure_id=structure.id, user_id=user.id, commitment_amount=Decimal(str(commitment)))
    db.session.add(link)
    db.session.commit()
    return link


def add_capital_call(structure, user, allocated, paid=0, call_date=date(2024, 3, 1), number=None, status="Sent"):
    call = CapitalCall(
        structure_id=structure.id,
        call_number=number or f"CC-{next(_seq)}",
        total_call_amount=Decimal(str(allocated)),
        call_date=call_date,
        status=status,
    )
    db.session.add(call)
    db.session.flush()
    db.session.add(CapitalCallAllocation(
        capital_call_id=call.id,
        user_id=user.id,
        allocated_amount=Decimal(str(allocated)),
        paid_amount=Decimal(str(paid)),
    ))
    db.session.commit()
    return call


def add_distribution(structure_id, user, amount, status="Paid", allocation_status=None, when=date(2024, 6, 30)):
    dist = Distribution(
        structure_id=structure_id,
        distribution_number=f"D-{next(_seq)}",
        total_amount=Decimal(str(amount)),
        distribution_date=when,
        source="Operating Income",
        status=status,
    )
    db.session.add(dist)
    db.session.flush()
    db.session.add(DistributionAllocation(
        distribution_id=dist.id,
        user_id=user.id,
        allocated_amount=Decimal(str(amount)),
        status=allocation_status,
    ))
    db.session.commit()
    return dist
