from typing import Any
import logging

from fastapi import Request, HTTPException, status
from fastapi.responses import JSONResponse

from volmed.middleware.tracing import TRACE_ID_CTX_VAR
from volmed.services.storage_errors import (
    FileTooLarge,
    InvalidMimeType,
    InvalidRecordId,
    RecordNotFound,
    StorageError,
)

logger = logging.getLogger("volmed")


def status_to_code(status_code: int) -> str:
    mapping = {
        400: "BAD_REQUEST",
        401: "UNAUTHORIZED",
        403: "FORBIDDEN",
        404: "NOT_FOUND",
        405: "METHOD_NOT_ALLOWED",
        413: "PAYLOAD_TOO_LARGE",
        415: "UNSUPPORTED_MEDIA_TYPE",
        422: "UNPROCESSABLE_ENTITY",
        429: "TOO_MANY_REQUESTS",
        500: "INTERNAL_SERVER_ERROR",
    }
    return mapping.get(status_code, f"HTTP_{status_code}")


# Store error kind -> (status, user-facing message); anything else is a 500
STORAGE_ERROR_STATUS = {
    InvalidMimeType: (415, "Unsupported file type"),
    FileTooLarge: (413, "File too large"),
    RecordNotFound: (404, "Patient not found"),
    InvalidRecordId: (400, "Invalid patient ID format"),
}


def _envelope(status_code: int, message: str, details: Any = None) -> JSONResponse:
    body = {"code": status_to_code(status_code), "message": message, "trace_id": TRACE_ID_CTX_VAR.get()}
    if details is not None:
        body["details"] = details
    return JSONResponse(status_code=status_code, content=body)


async def handle_http_exception(request: Request, exc: HTTPException):
    detail: Any = exc.detail
    message = detail if isinstance(detail, str) else "HTTP error"
    return _envelope(exc.status_code, message, detail)


async def handle_storage_error(request: Request, exc: StorageError):
    for kind, (status_code, message) in STORAGE_ERROR_STATUS.items():
        if isinstance(exc, kind):
            return _envelope(status_code, message, str(exc))
    logger.error({
        "function": "handle_storage_error",
        "path": str(request.url.path),
        "error": type(exc).__name__,
        "details": str(exc),
    })
    # disk paths stay in the log, not in the response
    return _envelope(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal storage error", type(exc).__name__)


async def handle_unhandled_exception(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s", request.url.path)
    return _envelope(status.HTTP_500_INTERNAL_SERVER_ERROR, "An unexpected error occurred", str(exc))
