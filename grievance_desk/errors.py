# Error taxonomy shared by the ledger, the department registry and the HTTP layer

import logging
from typing import Dict, List, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pymongo.errors import PyMongoError

logger = logging.getLogger(__name__)


class GrievanceDeskError(Exception):
    status_code = 500

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class ValidationFailed(GrievanceDeskError):
    """Malformed or missing input; carries field-level messages."""
    status_code = 400

    def __init__(self, errors: List[Dict[str, str]], detail: str = "Validation failed"):
        super().__init__(detail)
        self.errors = errors

    @classmethod
    def single(cls, field: str, message: str) -> "ValidationFailed":
        return cls([{"field": field, "message": message}])


class NotFound(GrievanceDeskError):
    status_code = 404


class Conflict(GrievanceDeskError):
    status_code = 409


class AuthenticationFailed(GrievanceDeskError):
    status_code = 401


class PermissionDenied(GrievanceDeskError):
    status_code = 403


# ---------------------------------------------------------------------------
# HTTP mapping
# ---------------------------------------------------------------------------
def _field_name(loc: tuple) -> str:
    # loc looks like ("body", "contactEmail") or ("query", "limit")
    parts = [str(p) for p in loc[1:]] if len(loc) > 1 else [str(p) for p in loc]
    return ".".join(parts) or "request"


def format_validation_errors(errors: list) -> List[Dict[str, str]]:
    out = []
    for err in errors:
        message = err.get("msg", "Invalid value")
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        out.append({"field": _field_name(tuple(err.get("loc", ()))), "message": message})
    return out


async def _grievance_desk_error_handler(request: Request, exc: GrievanceDeskError):
    body: Dict[str, object] = {"detail": exc.detail}
    errors: Optional[list] = getattr(exc, "errors", None)
    if errors is not None:
        body["errors"] = errors
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
    return JSONResponse(status_code=exc.status_code, content=body, headers=headers)


async def _request_validation_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content={
        "detail": "Validation failed", "errors": format_validation_errors(exc.errors())})


async def _store_error_handler(request: Request, exc: PyMongoError):
    logger.error("Store error on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(GrievanceDeskError, _grievance_desk_error_handler)
    app.add_exception_handler(RequestValidationError, _request_validation_handler)
    app.add_exception_handler(PyMongoError, _store_error_handler)
