from decimal import Decimal

import pytest

from investment_manager.errors import InvalidArgument
from investment_manager.schemas import InvestmentCreate, StructureCreate, StructureUpdate, load
from investment_manager.utils.cleanup import best_effort, remove_stale_banner


def test_load_rejects_non_objects():
    with pytest.raises(InvalidArgument, match="JSON object"):
        load(StructureCreate, ["not", "a", "dict"])
    with pytest.raises(InvalidArgument):
        load(StructureCreate, None)


def test_load_partial_keeps_only_sent_keys():
    values = load(StructureUpdate, {"description": " Core fund ", "bogus": 1}, partial=True)
    assert values == {"description": "Core fund"}


def test_load_aggregates_field_and_cross_field_errors():
    with pytest.raises(InvalidArgument) as exc:
        load(InvestmentCreate, {"structure_id": 1, "name": "Loan", "investment_type": "MIXED", "equity_invested": 10})
    details = exc.value.details
    assert any(d.startswith("principal_provided") for d in details)
    assert any(d.startswith("interest_rate") for d in details)


def test_load_parses_decimals():
    values = load(
        InvestmentCreate,
        {"structure_id": "3", "name": "Acme", "investment_type": "EQUITY", "equity_invested": "2500.50"},
        drop_none=True,
    )
    assert values["structure_id"] == 3
    assert values["equity_invested"] == Decimal("2500.50")
    assert "principal_provided" not in values


def test_best_effort_logs_and_swallows(app, caplog):
    with caplog.at_level("ERROR"):
        with best_effort("explode"):
            raise OSError("disk gone")
    assert "explode" in caplog.text


def test_remove_stale_banner_ignores_remote_and_outside_paths(app, tmp_path):
    app.config["UPLOAD_ROOT"] = str(tmp_path)
    (tmp_path / "banners").mkdir()
    outside = tmp_path / "keep.png"
    outside.write_bytes(b"x")

    assert remove_stale_banner("https://cdn.example.com/banner.png") is False
    assert remove_stale_banner("missing.png") is False
    assert remove_stale_banner(None) is False
    assert outside.exists()


def test_remove_stale_banner_deletes_local_file(app, tmp_path):
    app.config["UPLOAD_ROOT"] = str(tmp_path)
    banners = tmp_path / "banners"
    banners.mkdir()
    target = banners / "fund.png"
    target.write_bytes(b"x")

    assert remove_stale_banner("/uploads/banners/fund.png") is True
    assert not target.exists()


def test_remove_stale_banner_keeps_file_still_in_use(app, tmp_path):
    app.config["UPLOAD_ROOT"] = str(tmp_path)
    banners = tmp_path / "banners"
    banners.mkdir()
    target = banners / "fund.png"
    target.write_bytes(b"x")

    assert remove_stale_banner("a/fund.png", "b/fund.png") is False
    assert target.exists()
