"""
Mapping of domain exceptions to JSON error responses.

Every response body carries ``detail`` and ``error_type`` followed by the
exception's details, e.g. ``available_ports`` on a port conflict or
``hint`` on a directory conflict.
"""
import logging
from typing import List, Tuple, Type

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette import status

from deployer.core.exceptions import (
    AuthorizationError,
    ConflictError,
    DomainException,
    NotFoundError,
    OperationError,
    ValidationError,
)

logger = logging.getLogger(__name__)

# First matching category wins
STATUS_BY_CATEGORY: List[Tuple[Type[DomainException], int]] = [
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ConflictError, status.HTTP_409_CONFLICT),
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (AuthorizationError, status.HTTP_403_FORBIDDEN),
    (OperationError, status.HTTP_500_INTERNAL_SERVER_ERROR),
]


def status_code_for(exc: DomainException) -> int:
    for category, status_code in STATUS_BY_CATEGORY:
        if isinstance(exc, category):
            return status_code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def domain_exception_handler(request: Request, exc: DomainException) -> JSONResponse:
    """Render a domain exception raised by a service or endpoint."""
    status_code = status_code_for(exc)
    if status_code >= 500:
        # Deploy failures, tool errors and scan failures point at the host
        logger.error(
            f"{exc.__class__.__name__} on {request.method} {request.url.path}: {exc.message}",
            extra={"details": exc.details},
        )
    else:
        logger.info(f"{exc.__class__.__name__} on {request.method} {request.url.path}: {exc.message}")

    return JSONResponse(
        status_code=status_code,
        content={
            "detail": exc.message,
            "error_type": exc.__class__.__name__,
            **exc.details,
        },
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.warning(f"Invalid request on {request.method} {request.url.path}: {exc.errors()}")
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": exc.errors()},
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Install the handlers on an application; subclasses are matched through DomainException."""
    app.add_exception_handler(DomainException, domain_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
