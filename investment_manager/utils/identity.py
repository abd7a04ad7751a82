# utils/identity.py
from __future__ import annotations

from dataclasses import dataclass
from functools import wraps
from typing import Iterable

from flask import g
from flask_jwt_extended import create_access_token, get_jwt, get_jwt_identity, verify_jwt_in_request

from investment_manager.errors import Forbidden
from investment_manager.roles import MANAGER_ROLES, Role


@dataclass(frozen=True)
class Caller:
    """Authenticated identity for the current request."""

    user_id: int
    role: Role

    @property
    def is_root(self) -> bool:
        return self.role == Role.ROOT


def issue_token(user) -> str:
    """Access token carrying the user id as identity and the role code as a claim."""
    return create_access_token(
        identity=str(user.id),
        additional_claims={"role": int(user.role), "email": (user.email or "").lower()},
    )


def current_caller() -> Caller:
    """Resolve (user_id, role) from the verified JWT, cached on g per token."""
    verify_jwt_in_request()
    claims = get_jwt() or {}
    cached = g.get("caller")
    if cached is not None and g.get("caller_jti") == claims.get("jti"):
        return cached
    caller = Caller(user_id=int(get_jwt_identity()), role=Role.parse(claims.get("role", Role.GUEST)))
    g.caller = caller
    g.caller_jti = claims.get("jti")
    return caller


def roles_required(allowed: Iterable[Role]):
    allowed = frozenset(allowed)

    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            caller = current_caller()
            if caller.role not in allowed:
                names = ", ".join(sorted(r.label for r in allowed))
                raise Forbidden(f"Insufficient role. Required: {names}")
            return fn(*args, **kwargs)

        return wrapper

    return decorator


# Root/Admin gate used by the structure and investment write endpoints
manager_required = roles_required(MANAGER_ROLES)
root_required = roles_required({Role.ROOT})
