"""Translate domain exceptions into HTTP error responses"""

import logging

from fastapi import Request
from fastapi.responses import JSONResponse

from peerlend.api.v1.schemas import ErrorResponse
from peerlend.domain.exceptions import (
    AuthenticationError,
    DomainException,
    InsufficientFundsError,
    InvalidPaymentError,
    InvalidStateError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)
from peerlend.infrastructure.observability.metrics import record_operation

STATUS_BY_ERROR = {
    ValidationError: 422,
    InvalidPaymentError: 422,
    InsufficientFundsError: 409,
    InvalidStateError: 409,
    NotFoundError: 404,
    UnauthorizedError: 403,
    AuthenticationError: 401,
}


def status_for(exc: DomainException) -> int:
    for error_type, status_code in STATUS_BY_ERROR.items():
        if isinstance(exc, error_type):
            return status_code
    return 400


async def domain_exception_handler(request: Request, exc: DomainException) -> JSONResponse:
    """Domain errors are recoverable: report them to the caller, nothing was mutated"""
    route = request.scope.get("route")
    action = getattr(route, "name", request.url.path)
    request_id = getattr(request.state, "request_id", "unknown")

    record_operation(action, outcome=type(exc).__name__)
    logging.warning(f"{action} rejected: {exc}", extra={"request_id": request_id})

    body = ErrorResponse(
        error=type(exc).__name__,
        detail=str(exc),
        errors=exc.errors if isinstance(exc, ValidationError) else None,
    )
    return JSONResponse(status_code=status_for(exc), content=body.model_dump())
