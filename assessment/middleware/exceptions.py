from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from assessment.core.exceptions import AssessmentError
from assessment.schemas.response import ErrorResponse, ErrorDetail
import logging
import uuid

logger = logging.getLogger(__name__)

def _get_error_code(status_code: int) -> str:
    code_map = {
        400: "BAD_REQUEST",
        401: "UNAUTHORIZED",
        403: "FORBIDDEN",
        404: "NOT_FOUND",
        409: "CONFLICT",
        422: "VALIDATION_ERROR",
        500: "INTERNAL_SERVER_ERROR",
        503: "SERVICE_UNAVAILABLE",
    }
    return code_map.get(status_code, f"HTTP_{status_code}")

def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", None) or str(uuid.uuid4())

async def validation_exception_handler(request: Request, exc: RequestValidationError):
    request_id = _request_id(request)
    error_response = ErrorResponse(
        error=ErrorDetail(
            code="VALIDATION_ERROR",
            message="Request validation failed",
            details={"validation_errors": jsonable_encoder(exc.errors())}
        ),
        path=str(request.url),
        request_id=request_id
    )
    logger.warning(f"[{request_id}] Validation error: {exc.errors()}", extra={"request_id": request_id})
    return JSONResponse(status_code=422, content=error_response.model_dump(mode="json"))

async def assessment_exception_handler(request: Request, exc: AssessmentError):
    request_id = _request_id(request)
    error_response = ErrorResponse(
        error=ErrorDetail(code=exc.code, message=exc.message, details=exc.details),
        path=str(request.url),
        request_id=request_id
    )
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(f"[{request_id}] {exc.code}: {exc.message}", extra={"request_id": request_id})
    return JSONResponse(status_code=exc.status_code, content=error_response.model_dump(mode="json"))

async def global_exception_handler(request: Request, exc: Exception):
    request_id = _request_id(request)

    if isinstance(exc, HTTPException):
        error_response = ErrorResponse(
            error=ErrorDetail(
                code=_get_error_code(exc.status_code),
                message=exc.detail if isinstance(exc.detail, str) else str(exc.detail)
            ),
            path=str(request.url),
            request_id=request_id
        )
        logger.warning(f"[{request_id}] HTTP {exc.status_code}: {exc.detail}", extra={"request_id": request_id})
        return JSONResponse(status_code=exc.status_code, content=error_response.model_dump(mode="json"))

    error_response = ErrorResponse(
        error=ErrorDetail(
            code="INTERNAL_SERVER_ERROR",
            message="An unexpected error occurred",
            details={"error_type": type(exc).__name__}
        ),
        path=str(request.url),
        request_id=request_id
    )
    logger.error(f"[{request_id}] Unhandled exception: {exc}", exc_info=True, extra={"request_id": request_id})
    return JSONResponse(status_code=500, content=error_response.model_dump(mode="json"))
