from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import text

from conftest import add_capital_call, add_distribution, caller_for, link_investor
from investment_manager.errors import NotFound, Unauthorized
from investment_manager.extensions import db
from investment_manager.services import portfolio_service as svc


@pytest.fixture
def fund(admin_user, make_structure):
    return make_structure(admin_user, "Real Estate Fund I")


def test_empty_dashboard(investor_user):
    data = svc.build_dashboard(investor_user.id)
    assert data["investor"]["email"] == investor_user.email
    assert data["structures"] == []
    assert data["distributions"] == []
    assert data["summary"] == {
        "total_commitment": 0.0,
        "total_called_capital": 0.0,
        "total_current_value": 0.0,
        "total_distributed": 0.0,
        "total_return": 0.0,
        "total_return_percent": 0.0,
    }


def test_dashboard_at_cost(investor_user, fund):
    link_investor(fund, investor_user, 500000)
    add_capital_call(fund, investor_user, 200000)
    add_capital_call(fund, investor_user, 100000)
    add_distribution(fund.id, investor_user, 25000, status="Paid")

    data = svc.build_dashboard(investor_user.id)

    (row,) = data["structures"]
    assert row["name"] == "Real Estate Fund I"
    assert row["commitment"] == 500000.0
    assert row["called_capital"] == 300000.0
    assert row["uncalled_capital"] == 200000.0
    assert row["current_value"] == 300000.0
    assert row["unrealized_gain"] == 0.0

    summary = data["summary"]
    assert summary["total_called_capital"] == 300000.0
    assert summary["total_distributed"] == 25000.0
    assert summary["total_return"] == 25000.0
    assert summary["total_return_percent"] == 8.33

    (dist,) = data["distributions"]
    assert dist["structure_name"] == "Real Estate Fund I"
    assert dist["amount"] == 25000.0
    assert dist["status"] == "Paid"
    assert dist["date"] == "2024-06-30"


def test_dashboard_uses_nav_when_marked(investor_user, fund):
    fund.current_nav = Decimal("350000")
    db.session.commit()
    link_investor(fund, investor_user, 500000)
    add_capital_call(fund, investor_user, 300000)

    data = svc.build_dashboard(investor_user.id)
    assert data["structures"][0]["current_value"] == 350000.0
    assert data["structures"][0]["unrealized_gain"] == 50000.0
    assert data["summary"]["total_return"] == 50000.0


def test_only_paid_distributions_count(investor_user, fund):
    link_investor(fund, investor_user, 100000)
    add_capital_call(fund, investor_user, 100000)
    add_distribution(fund.id, investor_user, 1000, status="Pending")
    add_distribution(fund.id, investor_user, 2000, status="Pending", allocation_status="Paid")

    data = svc.build_dashboard(investor_user.id)
    assert data["summary"]["total_distributed"] == 2000.0
    statuses = [d["status"] for d in data["distributions"]]
    assert statuses == ["Paid", "Pending"]


def test_unknown_structure_label_is_kept(investor_user, admin_user, fund, make_structure):
    unlinked = make_structure(admin_user, "Side Car")
    link_investor(fund, investor_user, 1000)
    add_distribution(unlinked.id, investor_user, 500)

    data = svc.build_dashboard(investor_user.id)
    (dist,) = data["distributions"]
    assert dist["structure_name"] == "Unknown Structure"
    assert dist["structure_id"] == unlinked.id
    assert data["summary"]["total_distributed"] == 500.0


def test_links_to_deleted_structures_are_dropped(investor_user, fund):
    link_investor(fund, investor_user, 1000)
    user_id = investor_user.id
    # bypass the ORM cascade so the link is left dangling
    db.session.execute(text("DELETE FROM structures WHERE id = :id"), {"id": fund.id})
    db.session.commit()
    db.session.expunge_all()

    assert svc.build_dashboard(user_id)["structures"] == []


def test_distribution_without_source_is_labelled(investor_user, fund):
    link_investor(fund, investor_user, 1000)
    dist = add_distribution(fund.id, investor_user, 100)
    dist.source = None
    db.session.commit()

    (row,) = svc.build_dashboard(investor_user.id)["distributions"]
    assert row["type"] == "Distribution"


def test_dashboard_is_idempotent(investor_user, fund):
    link_investor(fund, investor_user, 333333.33)
    add_capital_call(fund, investor_user, 111111.11)
    add_distribution(fund.id, investor_user, 7777.77)

    assert svc.build_dashboard(investor_user.id) == svc.build_dashboard(investor_user.id)


def test_unknown_user(app):
    with pytest.raises(NotFound):
        svc.build_dashboard(4242)


def test_commitments_summary(investor_user, admin_user, fund, make_structure):
    closed = make_structure(admin_user, "Fund Zero", status="Closed")
    link_investor(fund, investor_user, 500000)
    link_investor(closed, investor_user, 100000)
    add_capital_call(fund, investor_user, 300000)
    add_capital_call(closed, investor_user, 150000)

    data = svc.commitments_summary(investor_user.id)
    assert data["total_commitment"] == 600000.0
    assert data["called_capital"] == 450000.0
    assert data["uncalled_capital"] == 150000.0
    assert data["active_funds"] == 1
    by_name = {s["structure_name"]: s for s in data["structures"]}
    assert by_name["Fund Zero"]["uncalled_capital"] == 0.0


def test_capital_calls_summary(investor_user, admin_user, fund, make_structure):
    unlinked = make_structure(admin_user, "Other")
    link_investor(fund, investor_user, 500000)
    add_capital_call(fund, investor_user, 100000, paid=100000, call_date=date(2024, 1, 15), number="CC-1")
    add_capital_call(fund, investor_user, 50000, paid=20000, call_date=date(2024, 5, 1), number="CC-2")
    add_capital_call(unlinked, investor_user, 10000, call_date=date(2023, 12, 1), number="CC-X")

    data = svc.capital_calls_summary(investor_user.id)
    assert [c["call_number"] for c in data["capital_calls"]] == ["CC-2", "CC-1", "CC-X"]
    assert data["capital_calls"][0]["outstanding"] == 30000.0
    assert data["capital_calls"][2]["structure_name"] == "Unknown Structure"
    assert data["summary"] == {
        "total_called": 160000.0,
        "total_paid": 120000.0,
        "outstanding": 40000.0,
        "total_calls": 3,
    }


def test_manager_view_is_limited_to_own_structures(investor_user, admin_user, other_admin, root_user, fund, make_structure):
    theirs = make_structure(other_admin, "Other Fund")
    link_investor(fund, investor_user, 500000)
    link_investor(theirs, investor_user, 100000)
    add_capital_call(fund, investor_user, 300000)
    add_distribution(theirs.id, investor_user, 9000)

    data = svc.dashboard_for(investor_user.id, caller_for(admin_user))
    assert [s["name"] for s in data["structures"]] == ["Real Estate Fund I"]
    assert data["distributions"] == []
    assert data["summary"]["total_commitment"] == 500000.0

    full = svc.dashboard_for(investor_user.id, caller_for(root_user))
    assert len(full["structures"]) == 2
    assert full == svc.build_dashboard(investor_user.id)


def test_unrelated_manager_is_refused(investor_user, other_admin, fund):
    link_investor(fund, investor_user, 500000)
    with pytest.raises(Unauthorized):
        svc.dashboard_for(investor_user.id, caller_for(other_admin))
