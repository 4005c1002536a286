"""
Traducción de errores a respuestas HTTP

- Motor público (/api/public): {"detail": "<mensaje legible>"}
- Panel de administración (/api/admin): {"success": false, "error": {code, message, details}}
"""
from fastapi import Request, status
from fastapi.exception_handlers import http_exception_handler, request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from services.exceptions import LodgingError
from utils.logging_utils import log_error

ADMIN_PREFIX = "/api/admin"

_HTTP_CODES = {
    400: "BAD_REQUEST",
    401: "UNAUTHORIZED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
    429: "RATE_LIMITED",
}


def _is_admin(request: Request) -> bool:
    return request.url.path.startswith(ADMIN_PREFIX)


def admin_error(status_code: int, code: str, message: str, details=None, headers=None) -> JSONResponse:
    error = {"code": code, "message": message}
    if details:
        error["details"] = details
    return JSONResponse(status_code=status_code, content={"success": False, "error": error}, headers=headers)


async def lodging_error_handler(request: Request, exc: LodgingError) -> JSONResponse:
    if exc.status_code >= 500:
        log_error("api", None, f"{request.method} {request.url.path}", f"{exc.code}: {exc.message}")
    headers = {"Retry-After": "1"} if exc.retryable and exc.status_code >= 500 else None
    if _is_admin(request):
        return admin_error(exc.status_code, exc.code, exc.message, exc.details, headers)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message}, headers=headers)


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    if not _is_admin(request):
        return await request_validation_exception_handler(request, exc)

    details = {}
    for err in exc.errors():
        field = ".".join(str(part) for part in err.get("loc", ()) if part != "body") or "general"
        details.setdefault(field, []).append(err.get("msg"))
    return admin_error(status.HTTP_400_BAD_REQUEST, "VALIDATION_ERROR", "Validation failed", details)


async def admin_http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if not _is_admin(request):
        return await http_exception_handler(request, exc)
    return admin_error(
        exc.status_code,
        _HTTP_CODES.get(exc.status_code, "HTTP_ERROR"),
        str(exc.detail),
        headers=getattr(exc, "headers", None),
    )


def setup_error_handlers(app):
    app.add_exception_handler(LodgingError, lodging_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, admin_http_exception_handler)
