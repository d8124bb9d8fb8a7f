"""Map engine errors to HTTP responses."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from prassign.api.schemas import ErrorDetail, ErrorResponse
from prassign.errors import (
    AlreadyExists,
    AssignmentError,
    AuthorCannotBeReassigned,
    AuthorInactive,
    DeadlineExceeded,
    InvalidInput,
    NoCandidate,
    NotFound,
    PRMerged,
    StorageError,
    UserNotAssigned,
)

logger = logging.getLogger(__name__)

# Looked up along the exception's MRO, so subclasses inherit their parent's status.
STATUS_BY_ERROR: dict[type[AssignmentError], int] = {
    InvalidInput: 400,
    AuthorInactive: 403,
    NotFound: 404,
    AlreadyExists: 409,
    AuthorCannotBeReassigned: 409,
    PRMerged: 409,
    UserNotAssigned: 409,
    NoCandidate: 409,
    StorageError: 500,
    DeadlineExceeded: 504,
}

INTERNAL_MESSAGE = "internal error"


def status_for(exc: AssignmentError) -> int:
    for cls in type(exc).__mro__:
        if cls in STATUS_BY_ERROR:
            return STATUS_BY_ERROR[cls]
    return 500


def error_response(status: int, code: str, message: str) -> JSONResponse:
    body = ErrorResponse(error=ErrorDetail(code=code, message=message))
    return JSONResponse(status_code=status, content=body.model_dump())


async def handle_assignment_error(request: Request, exc: AssignmentError) -> JSONResponse:
    status = status_for(exc)
    if status >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    else:
        logger.warning("%s %s rejected: %s", request.method, request.url.path, exc)

    message = INTERNAL_MESSAGE if isinstance(exc, StorageError) else exc.message
    return error_response(status, exc.code, message)


async def handle_validation_error(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    logger.warning("Invalid request to %s: %s", request.url.path, exc.errors())
    return error_response(400, InvalidInput.code, "invalid request body or parameters")


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AssignmentError, handle_assignment_error)
    app.add_exception_handler(RequestValidationError, handle_validation_error)
