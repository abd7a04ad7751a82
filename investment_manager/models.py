from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy.types import TypeDecorator
from werkzeug.security import check_password_hash, generate_password_hash

from investment_manager.extensions import db
from investment_manager.roles import Role


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _num(value):
    return float(value) if value is not None else None


def _iso(value):
    return value.isoformat() if value is not None else None


class RoleType(TypeDecorator):
    """Stores a Role as its integer code; loads it back as the enum."""

    impl = db.Integer
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return int(Role.parse(value))

    def process_result_value(self, value, dialect):
        return Role(value) if value is not None else None


# ------------------ User Model ------------------
class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)

    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    first_name = db.Column(db.String(100), nullable=False, default="")
    last_name  = db.Column(db.String(100), nullable=False, default="")

    password = db.Column(db.String(255), nullable=False)

    role   = db.Column(RoleType(), nullable=False, default=Role.INVESTOR)
    status = db.Column(db.String(20), nullable=False, default="Active")

    created_at = db.Column(db.DateTime, default=_utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=_utcnow, onupdate=_utcnow, nullable=False)

    def set_password(self, raw: str) -> None:
        self.password = generate_password_hash(raw)

    def check_password(self, raw: str) -> bool:
        return bool(self.password) and check_password_hash(self.password, raw)

    @property
    def full_name(self) -> str:
        return f"{(self.first_name or '').strip()} {(self.last_name or '').strip()}".strip()

    def to_dict(self):
        return {
            "id": self.id,
            "email": self.email,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "role": int(self.role) if self.role is not None else None,
            "role_name": self.role.label if self.role is not None else None,
            "status": self.status,
            "created_at": _iso(self.created_at),
        }

    def __repr__(self):
        return f"<User {self.id} {self.email}>"


# ------------------ Structure Model ------------------
class Structure(db.Model):
    __tablename__ = "structures"

    id   = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    type = db.Column(db.String(50), nullable=False, index=True)   # Fund | SA/LLC | Fideicomiso | Private Debt | SPV | Trust
    subtype     = db.Column(db.String(100), nullable=True)
    description = db.Column(db.Text, nullable=True)
    status      = db.Column(db.String(50), nullable=False, default="Active", index=True)

    # Hierarchy: weak reference, the parent never owns the child
    parent_structure_id = db.Column(db.Integer, db.ForeignKey("structures.id"), nullable=True, index=True)
    hierarchy_level     = db.Column(db.Integer, nullable=False, default=1)

    parent = db.relationship(
        "Structure",
        remote_side=[id],
        backref=db.backref("children", lazy=True),
        foreign_keys=[parent_structure_id],
        lazy=True,
    )

    # Rollup totals, written only through the financials update path
    total_commitment  = db.Column(db.Numeric(20, 2), nullable=False, default=0)
    total_called      = db.Column(db.Numeric(20, 2), nullable=False, default=0)
    total_distributed = db.Column(db.Numeric(20, 2), nullable=False, default=0)
    total_invested    = db.Column(db.Numeric(20, 2), nullable=False, default=0)
    base_currency     = db.Column(db.String(10), nullable=False, default="USD")

    # Marked value; NULL means "value at cost"
    current_nav = db.Column(db.Numeric(20, 2), nullable=True)

    # Economic terms
    management_fee   = db.Column(db.Numeric(9, 4), nullable=True)
    carried_interest = db.Column(db.Numeric(9, 4), nullable=True)
    hurdle_rate      = db.Column(db.Numeric(9, 4), nullable=True)
    waterfall_type   = db.Column(db.String(20), nullable=True)
    performance_fee  = db.Column(db.String(100), nullable=True)
    preferred_return = db.Column(db.String(100), nullable=True)

    inception_date  = db.Column(db.Date, nullable=True)
    term_years      = db.Column(db.Integer, nullable=True)
    extension_years = db.Column(db.Integer, nullable=True)
    final_date      = db.Column(db.Date, nullable=True)

    # Service providers
    gp            = db.Column(db.String(255), nullable=True)
    fund_admin    = db.Column(db.String(255), nullable=True)
    legal_counsel = db.Column(db.String(255), nullable=True)
    auditor       = db.Column(db.String(255), nullable=True)
    tax_advisor   = db.Column(db.String(255), nullable=True)

    bank_accounts       = db.Column(db.JSON, nullable=True)
    tax_jurisdiction    = db.Column(db.String(255), nullable=True)
    regulatory_status   = db.Column(db.String(255), nullable=True)
    investment_strategy = db.Column(db.Text, nullable=True)
    target_returns      = db.Column(db.String(255), nullable=True)
    risk_profile        = db.Column(db.String(255), nullable=True)
    stage               = db.Column(db.String(100), nullable=True)
    planned_investments = db.Column(db.String(255), nullable=True)
    banner_image        = db.Column(db.String(512), nullable=True)

    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    owner      = db.relationship("User", foreign_keys=[created_by], lazy=True)

    created_at = db.Column(db.DateTime, default=_utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=_utcnow, onupdate=_utcnow, nullable=False)

    investments = db.relationship("Investment", backref="structure", lazy=True, cascade="all, delete-orphan")
    admins = db.relationship("StructureAdmin", backref="structure", lazy=True, cascade="all, delete-orphan")
    investor_links = db.relationship("StructureInvestor", backref="structure", lazy=True, cascade="all, delete-orphan")

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "subtype": self.subtype,
            "description": self.description,
            "status": self.status,
            "parent_structure_id": self.parent_structure_id,
            "hierarchy_level": self.hierarchy_level,
            "total_commitment": _num(self.total_commitment),
            "total_called": _num(self.total_called),
            "total_distributed": _num(self.total_distributed),
            "total_invested": _num(self.total_invested),
            "base_currency": self.base_currency,
            "current_nav": _num(self.current_nav),
            "management_fee": _num(self.management_fee),
            "carried_interest": _num(self.carried_interest),
            "hurdle_rate": _num(self.hurdle_rate),
            "waterfall_type": self.waterfall_type,
            "performance_fee": self.performance_fee,
            "preferred_return": self.preferred_return,
            "inception_date": _iso(self.inception_date),
            "term_years": self.term_years,
            "extension_years": self.extension_years,
            "final_date": _iso(self.final_date),
            "gp": self.gp,
            "fund_admin": self.fund_admin,
            "legal_counsel": self.legal_counsel,
            "auditor": self.auditor,
            "tax_advisor": self.tax_advisor,
            "bank_accounts": self.bank_accounts or {},
            "tax_jurisdiction": self.tax_jurisdiction,
            "regulatory_status": self.regulatory_status,
            "investment_strategy": self.investment_strategy,
            "target_returns": self.target_returns,
            "risk_profile": self.risk_profile,
            "stage": self.stage,
            "planned_investments": self.planned_investments,
            "banner_image": self.banner_image,
            "created_by": self.created_by,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

    def __repr__(self):
        return f"<Structure {self.id} {self.name!r} level={self.hierarchy_level}>"


# ------------------ Delegated grant ------------------
class StructureAdmin(db.Model):
    __tablename__ = "structure_admins"

    id = db.Column(db.Integer, primary_key=True)
    structure_id = db.Column(db.Integer, db.ForeignKey("structures.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id      = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    role         = db.Column(RoleType(), nullable=False)   # ADMIN | SUPPORT

    can_edit             = db.Column(db.Boolean, nullable=False, default=False)
    can_delete           = db.Column(db.Boolean, nullable=False, default=False)
    can_manage_investors = db.Column(db.Boolean, nullable=False, default=False)
    can_manage_documents = db.Column(db.Boolean, nullable=False, default=False)

    added_by   = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime, default=_utcnow, nullable=False)

    user = db.relationship("User", foreign_keys=[user_id], lazy=True)

    __table_args__ = (db.UniqueConstraint("structure_id", "user_id", name="uq_structure_admin_user"),)

    def to_dict(self):
        return {
            "id": self.id,
            "structure_id": self.structure_id,
            "user_id": self.user_id,
            "role": int(self.role) if self.role is not None else None,
            "can_edit": self.can_edit,
            "can_delete": self.can_delete,
            "can_manage_investors": self.can_manage_investors,
            "can_manage_documents": self.can_manage_documents,
            "added_by": self.added_by,
            "created_at": _iso(self.created_at),
            "user": self.user.to_dict() if self.user else None,
        }


# ------------------ Investment Model ------------------
class Investment(db.Model):
    __tablename__ = "investments"

    id           = db.Column(db.Integer, primary_key=True)
    structure_id = db.Column(db.Integer, db.ForeignKey("structures.id"), nullable=False, index=True)
    user_id      = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    name        = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    investment_type = db.Column(db.String(10), nullable=False, index=True)   # EQUITY | DEBT | MIXED
    status      = db.Column(db.String(20), nullable=False, default="Active", index=True)   # Active | Exited

    investment_date = db.Column(db.Date, nullable=True)
    exit_date       = db.Column(db.Date, nullable=True)

    # Equity
    equity_invested      = db.Column(db.Numeric(20, 2), nullable=True)
    ownership_percentage = db.Column(db.Numeric(9, 4), nullable=True)
    equity_current_value = db.Column(db.Numeric(20, 2), nullable=True)
    equity_exit_value    = db.Column(db.Numeric(20, 2), nullable=True)
    equity_realized_gain = db.Column(db.Numeric(20, 2), nullable=True)

    # Debt
    principal_provided    = db.Column(db.Numeric(20, 2), nullable=True)
    interest_rate         = db.Column(db.Numeric(9, 4), nullable=True)
    maturity_date         = db.Column(db.Date, nullable=True)
    principal_repaid      = db.Column(db.Numeric(20, 2), nullable=False, default=0)
    interest_received     = db.Column(db.Numeric(20, 2), nullable=False, default=0)
    outstanding_principal = db.Column(db.Numeric(20, 2), nullable=True)
    accrued_interest      = db.Column(db.Numeric(20, 2), nullable=False, default=0)

    # Performance
    irr           = db.Column(db.Numeric(12, 4), nullable=False, default=0)
    irr_percent   = db.Column(db.Numeric(12, 4), nullable=False, default=0)
    multiple      = db.Column(db.Numeric(12, 4), nullable=False, default=0)
    moic          = db.Column(db.Numeric(12, 4), nullable=False, default=0)
    total_returns = db.Column(db.Numeric(20, 2), nullable=False, default=0)
    current_value = db.Column(db.Numeric(20, 2), nullable=False, default=0)
    total_invested = db.Column(db.Numeric(20, 2), nullable=False, default=0)
    last_valuation_date = db.Column(db.Date, nullable=True)

    sector    = db.Column(db.String(120), nullable=True)
    geography = db.Column(db.String(120), nullable=True)
    currency  = db.Column(db.String(10), nullable=False, default="USD")
    notes     = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime, default=_utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=_utcnow, onupdate=_utcnow, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "structure_id": self.structure_id,
            "user_id": self.user_id,
            "name": self.name,
            "description": self.description,
            "investment_type": self.investment_type,
            "status": self.status,
            "investment_date": _iso(self.investment_date),
            "exit_date": _iso(self.exit_date),
            "equity_invested": _num(self.equity_invested),
            "ownership_percentage": _num(self.ownership_percentage),
            "equity_current_value": _num(self.equity_current_value),
            "equity_exit_value": _num(self.equity_exit_value),
            "equity_realized_gain": _num(self.equity_realized_gain),
            "principal_provided": _num(self.principal_provided),
            "interest_rate": _num(self.interest_rate),
            "maturity_date": _iso(self.maturity_date),
            "principal_repaid": _num(self.principal_repaid),
            "interest_received": _num(self.interest_received),
            "outstanding_principal": _num(self.outstanding_principal),
            "accrued_interest": _num(self.accrued_interest),
            "irr": _num(self.irr),
            "irr_percent": _num(self.irr_percent),
            "multiple": _num(self.multiple),
            "moic": _num(self.moic),
            "total_returns": _num(self.total_returns),
            "current_value": _num(self.current_value),
            "total_invested": _num(self.total_invested),
            "last_valuation_date": _iso(self.last_valuation_date),
            "sector": self.sector,
            "geography": self.geography,
            "currency": self.currency,
            "notes": self.notes,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


# ------------------ Structure <-> Investor membership ------------------
class StructureInvestor(db.Model):
    __tablename__ = "structure_investors"

    id = db.Column(db.Integer, primary_key=True)
    structure_id = db.Column(db.Integer, db.ForeignKey("structures.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id      = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    commitment_amount = db.Column(db.Numeric(20, 2), nullable=False, default=0)
    ownership_percent = db.Column(db.Numeric(9, 4), nullable=True)
    invested_at       = db.Column(db.DateTime, default=_utcnow, nullable=True)

    user = db.relationship("User", foreign_keys=[user_id], lazy=True)

    __table_args__ = (db.UniqueConstraint("structure_id", "user_id", name="uq_structure_investor_user"),)

    def to_dict(self):
        return {
            "id": self.id,
            "structure_id": self.structure_id,
            "user_id": self.user_id,
            "commitment_amount": _num(self.commitment_amount),
            "ownership_percent": _num(self.ownership_percent),
            "invested_at": _iso(self.invested_at),
            "user": self.user.to_dict() if self.user else None,
        }


# ------------------ Capital calls ------------------
class CapitalCall(db.Model):
    __tablename__ = "capital_calls"

    id = db.Column(db.Integer, primary_key=True)
    structure_id = db.Column(db.Integer, db.ForeignKey("structures.id"), nullable=False, index=True)

    call_number = db.Column(db.String(50), nullable=False)
    total_call_amount = db.Column(db.Numeric(20, 2), nullable=False, default=0)
    call_date = db.Column(db.Date, nullable=True, index=True)
    due_date  = db.Column(db.Date, nullable=True)
    purpose   = db.Column(db.String(255), nullable=True)
    status    = db.Column(db.String(50), nullable=False, default="Draft")

    created_at = db.Column(db.DateTime, default=_utcnow, nullable=False)

    allocations = db.relationship("CapitalCallAllocation", backref="capital_call", lazy=True, cascade="all, delete-orphan")

    __table_args__ = (db.UniqueConstraint("structure_id", "call_number", name="uq_capital_call_number"),)


class CapitalCallAllocation(db.Model):
    __tablename__ = "capital_call_allocations"

    id = db.Column(db.Integer, primary_key=True)
    capital_call_id = db.Column(db.Integer, db.ForeignKey("capital_calls.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id         = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    allocated_amount = db.Column(db.Numeric(20, 2), nullable=False, default=0)
    paid_amount      = db.Column(db.Numeric(20, 2), nullable=False, default=0)
    status           = db.Column(db.String(50), nullable=True)

    created_at = db.Column(db.DateTime, default=_utcnow, nullable=False)

    __table_args__ = (db.UniqueConstraint("capital_call_id", "user_id", name="uq_call_allocation_user"),)


# ------------------ Distributions ------------------
class Distribution(db.Model):
    __tablename__ = "distributions"

    id = db.Column(db.Integer, primary_key=True)
    structure_id = db.Column(db.Integer, db.ForeignKey("structures.id"), nullable=False, index=True)

    distribution_number = db.Column(db.String(50), nullable=False, unique=True)
    total_amount        = db.Column(db.Numeric(20, 2), nullable=False, default=0)
    distribution_date   = db.Column(db.Date, nullable=True, index=True)
    source = db.Column(db.String(50), nullable=True)   # Operating Income | Exit Proceeds | ...
    status = db.Column(db.String(50), nullable=False, default="Pending")

    created_at = db.Column(db.DateTime, default=_utcnow, nullable=False)

    allocations = db.relationship("DistributionAllocation", backref="distribution", lazy=True, cascade="all, delete-orphan")


class DistributionAllocation(db.Model):
    __tablename__ = "distribution_allocations"

    id = db.Column(db.Integer, primary_key=True)
    distribution_id = db.Column(db.Integer, db.ForeignKey("distributions.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id         = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    allocated_amount = db.Column(db.Numeric(20, 2), nullable=False, default=0)
    status = db.Column(db.String(50), nullable=True)   # falls back to the distribution status

    created_at = db.Column(db.DateTime, default=_utcnow, nullable=False)

    __table_args__ = (db.UniqueConstraint("distribution_id", "user_id", name="uq_distribution_allocation_user"),)
