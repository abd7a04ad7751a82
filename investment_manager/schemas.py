# investment_manager/schemas.py
"""
Declarative request schemas, one per entity operation.

``load(Schema, payload)`` validates the whole payload in one pass and raises a
single InvalidArgument carrying every field message. Cross-field rules live on
the schema (``cross_field_errors``) and run once the fields themselves parse.
"""
from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Annotated, Any, Dict, List, Literal, Optional, Type, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from investment_manager.errors import InvalidArgument

STRUCTURE_TYPES = ("Fund", "SA/LLC", "Fideicomiso", "Private Debt", "SPV", "Trust")
INVESTMENT_TYPES = ("EQUITY", "DEBT", "MIXED")

Money = Annotated[Decimal, Field(ge=0)]
Percent = Annotated[Decimal, Field(ge=0, le=100)]
NonEmptyStr = Annotated[str, Field(min_length=1)]


class Schema(BaseModel):
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    @classmethod
    def cross_field_errors(cls, values: Dict[str, Any]) -> List[str]:
        return []


def _format_error(err: dict) -> str:
    loc = ".".join(str(p) for p in err.get("loc", ()) if p != "__root__")
    msg = err.get("msg", "invalid value")
    if msg.startswith("Value error, "):
        msg = msg[len("Value error, "):]
    return f"{loc}: {msg}" if loc else msg


def load(
    schema_cls: Type[Schema],
    payload: Any,
    *,
    partial: bool = False,
    drop_none: bool = False,
) -> Dict[str, Any]:
    """
    Validate ``payload`` against ``schema_cls``.

    partial=True returns only the keys the caller actually sent (patch
    semantics). drop_none=True additionally discards explicit nulls.
    """
    if not isinstance(payload, dict):
        raise InvalidArgument("Request body must be a JSON object")
    try:
        parsed = schema_cls.model_validate(payload)
    except ValidationError as e:
        raise InvalidArgument(
            f"Invalid {schema_cls.__name__} payload",
            details=[_format_error(err) for err in e.errors()],
        ) from None

    values = parsed.model_dump(exclude_unset=partial, exclude_none=drop_none)
    problems = schema_cls.cross_field_errors(values)
    if problems:
        raise InvalidArgument(f"Invalid {schema_cls.__name__} payload", details=problems)
    return values


# ─────────────────────────── Structures ───────────────────────────

class StructureFields(Schema):
    name: Optional[NonEmptyStr] = None
    type: Optional[Literal[STRUCTURE_TYPES]] = None
    subtype: Optional[str] = None
    description: Optional[str] = None
    status: Optional[NonEmptyStr] = None

    total_commitment: Optional[Money] = None
    current_nav: Optional[Money] = None
    base_currency: Optional[Annotated[str, Field(min_length=3, max_length=10)]] = None

    management_fee: Optional[Percent] = None
    carried_interest: Optional[Percent] = None
    hurdle_rate: Optional[Percent] = None
    waterfall_type: Optional[str] = None
    performance_fee: Optional[str] = None
    preferred_return: Optional[str] = None

    inception_date: Optional[date] = None
    term_years: Optional[Annotated[int, Field(ge=0, le=99)]] = None
    extension_years: Optional[Annotated[int, Field(ge=0, le=99)]] = None
    final_date: Optional[date] = None

    gp: Optional[str] = None
    fund_admin: Optional[str] = None
    legal_counsel: Optional[str] = None
    auditor: Optional[str] = None
    tax_advisor: Optional[str] = None

    bank_accounts: Optional[Dict[str, Any]] = None
    tax_jurisdiction: Optional[str] = None
    regulatory_status: Optional[str] = None
    investment_strategy: Optional[str] = None
    target_returns: Optional[str] = None
    risk_profile: Optional[str] = None
    stage: Optional[str] = None
    planned_investments: Optional[str] = None
    banner_image: Optional[str] = None


class StructureCreate(StructureFields):
    name: NonEmptyStr
    type: Literal[STRUCTURE_TYPES]
    parent_structure_id: Optional[int] = None


class StructureUpdate(StructureFields):
    pass


class StructureFinancials(Schema):
    total_commitment: Optional[Money] = None
    total_called: Optional[Money] = None
    total_distributed: Optional[Money] = None
    total_invested: Optional[Money] = None


class GrantCreate(Schema):
    user_id: int
    role: Union[int, str]
    can_edit: Optional[bool] = None
    can_delete: Optional[bool] = None
    can_manage_investors: Optional[bool] = None
    can_manage_documents: Optional[bool] = None


class InvestorLinkCreate(Schema):
    user_id: int
    commitment_amount: Money = Decimal("0")
    ownership_percent: Optional[Percent] = None


# ─────────────────────────── Investments ───────────────────────────

def investment_term_errors(values: Dict[str, Any]) -> List[str]:
    """Type-conditional requirements for an EQUITY / DEBT / MIXED record."""
    problems = []
    kind = values.get("investment_type")
    if kind in ("EQUITY", "MIXED"):
        equity = values.get("equity_invested")
        if equity is None or equity <= 0:
            problems.append("equity_invested: must be greater than 0 for EQUITY and MIXED investments")
    if kind in ("DEBT", "MIXED"):
        principal = values.get("principal_provided")
        if principal is None or principal <= 0:
            problems.append("principal_provided: must be greater than 0 for DEBT and MIXED investments")
        if values.get("interest_rate") is None:
            problems.append("interest_rate: is required for DEBT and MIXED investments")
    return problems


class InvestmentFields(Schema):
    name: Optional[NonEmptyStr] = None
    description: Optional[str] = None
    investment_type: Optional[Literal[INVESTMENT_TYPES]] = None
    investment_date: Optional[date] = None

    equity_invested: Optional[Money] = None
    ownership_percentage: Optional[Percent] = None
    equity_current_value: Optional[Money] = None

    principal_provided: Optional[Money] = None
    interest_rate: Optional[Percent] = None
    maturity_date: Optional[date] = None
    principal_repaid: Optional[Money] = None
    interest_received: Optional[Money] = None
    outstanding_principal: Optional[Money] = None
    accrued_interest: Optional[Money] = None

    irr: Optional[Decimal] = None
    multiple: Optional[Annotated[Decimal, Field(ge=0)]] = None
    current_value: Optional[Money] = None
    total_invested: Optional[Money] = None
    last_valuation_date: Optional[date] = None

    sector: Optional[str] = None
    geography: Optional[str] = None
    currency: Optional[Annotated[str, Field(min_length=3, max_length=10)]] = None
    notes: Optional[str] = None


class InvestmentCreate(InvestmentFields):
    structure_id: int
    name: NonEmptyStr
    investment_type: Literal[INVESTMENT_TYPES]

    @classmethod
    def cross_field_errors(cls, values):
        return investment_term_errors(values)


class InvestmentUpdate(InvestmentFields):
    pass


class PerformanceMetrics(Schema):
    irr: Optional[Decimal] = None
    irr_percent: Optional[Decimal] = None
    multiple: Optional[Annotated[Decimal, Field(ge=0)]] = None
    moic: Optional[Annotated[Decimal, Field(ge=0)]] = None
    total_returns: Optional[Decimal] = None
    current_value: Optional[Money] = None
    total_invested: Optional[Money] = None
    equity_current_value: Optional[Money] = None
    outstanding_principal: Optional[Money] = None
    last_valuation_date: Optional[date] = None


class ExitRequest(Schema):
    exit_date: Optional[date] = None
    equity_exit_value: Optional[Money] = None


# ─────────────────────────── Users ───────────────────────────

class UserCreate(Schema):
    email: Annotated[str, Field(min_length=3, max_length=255, pattern=r"^[^@\s]+@[^@\s]+$")]
    password: Annotated[str, Field(min_length=8)]
    first_name: str = ""
    last_name: str = ""
    role: Union[int, str]
