import logging
import re
import time
import uuid
from typing import Any, Dict, Optional

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
_REQUEST_ID_PATTERN = re.compile(r"^[A-Za-z0-9._-]{1,64}$")
_ATTEMPT_PATH = re.compile(r"/attempts/(\d+)")


def resolve_request_id(request: Request) -> str:
    """Reuse the caller's request id when it is a plain token, otherwise mint one."""
    supplied = request.headers.get(REQUEST_ID_HEADER)
    if supplied and _REQUEST_ID_PATTERN.match(supplied):
        return supplied
    return uuid.uuid4().hex


def attempt_id_from_path(path: str) -> Optional[int]:
    match = _ATTEMPT_PATH.search(path)
    return int(match.group(1)) if match else None


def _log_fields(request: Request, request_id: str, started: float, **fields: Any) -> Dict[str, Any]:
    data = {
        "request_id": request_id,
        "method": request.method,
        "path": request.url.path,
        "duration_ms": round((time.perf_counter() - started) * 1000, 2),
    }
    attempt_id = attempt_id_from_path(request.url.path)
    if attempt_id is not None:
        data["attempt_id"] = attempt_id
    data.update(fields)
    return data


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Tags every request with an id and logs one line per response.

    Attempt routes also carry the attempt id so a student's save/submit
    traffic can be followed through the logs.
    """

    async def dispatch(self, request: Request, call_next):
        request_id = resolve_request_id(request)
        request.state.request_id = request_id
        started = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception as exc:
            fields = _log_fields(request, request_id, started, error=str(exc))
            logger.error(f"[{request_id}] {request.method} {request.url.path} failed", extra=fields)
            raise

        fields = _log_fields(request, request_id, started, status_code=response.status_code)
        level = logging.WARNING if response.status_code >= 400 else logging.INFO
        logger.log(level, f"[{request_id}] {request.method} {request.url.path} -> {response.status_code}", extra=fields)

        response.headers[REQUEST_ID_HEADER] = request_id
        return response
