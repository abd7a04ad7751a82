# investment_manager/errors.py
from __future__ import annotations

from typing import Iterable, Optional

from flask import Flask, jsonify


class ServiceError(Exception):
    """Base for every error a core operation reports to its caller."""

    status_code = 400
    kind = "service_error"

    def __init__(self, message: str, details: Optional[Iterable[str]] = None):
        super().__init__(message)
        self.message = message
        self.details = list(details or [])

    def to_dict(self) -> dict:
        payload = {"ok": False, "error": self.kind, "msg": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class InvalidArgument(ServiceError):
    status_code = 400
    kind = "invalid_argument"


class InvalidRole(InvalidArgument):
    kind = "invalid_role"


class Unauthorized(ServiceError):
    """Capability denied for the caller. Terminal, nothing was written."""

    status_code = 403
    kind = "unauthorized"


class Forbidden(Unauthorized):
    kind = "forbidden"


class NotFound(ServiceError):
    status_code = 404
    kind = "not_found"


class Conflict(ServiceError):
    status_code = 409
    kind = "conflict"


class InvalidState(ServiceError):
    status_code = 409
    kind = "invalid_state"


class DepthExceeded(ServiceError):
    status_code = 422
    kind = "depth_exceeded"


class DownstreamFailure(ServiceError):
    status_code = 502
    kind = "downstream_failure"


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(ServiceError)
    def _service_error(err: ServiceError):
        if isinstance(err, DownstreamFailure):
            app.logger.error("Downstream failure: %s", err.message)
        return jsonify(err.to_dict()), err.status_code
