# backend/plantchat/errors.py
"""
Problem-JSON error responses for the REST surface.

Every error leaves the API as an RFC 7807 style body:
{"type", "title", "status", "detail", "instance", "code"?, "errors"?}
Domain exceptions keep their class name as ``code`` so clients can branch
on it the same way they branch on WebSocket ``error`` frames.
"""

from http import HTTPStatus
import logging
from typing import Any, Dict, Mapping, Optional, Tuple

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .core.exceptions import DomainException, RepositoryException

logger = logging.getLogger(__name__)


def _title_for(status_code: int) -> str:
    try:
        return HTTPStatus(status_code).phrase
    except ValueError:
        return "Error"


def _problem_response(
    request: Request,
    status_code: int,
    detail: Optional[str],
    code: Optional[str] = None,
    errors: Any = None,
    headers: Optional[Mapping[str, str]] = None,
) -> JSONResponse:
    problem: Dict[str, Any] = {
        "type": "about:blank",
        "title": _title_for(status_code),
        "status": status_code,
        "detail": detail or "",
        "instance": request.url.path,
    }
    if code:
        problem["code"] = code
    if errors:
        problem["errors"] = jsonable_encoder(errors)
    return JSONResponse(problem, status_code=status_code, headers=dict(headers) if headers else None)


def _split_detail(detail: Any) -> Tuple[Optional[str], Optional[str], Any]:
    """(message, code, errors) from an HTTPException detail."""
    if isinstance(detail, dict):
        message = detail.get("message") or detail.get("detail")
        code = detail.get("code")
        return (
            message if isinstance(message, str) else None,
            code if isinstance(code, str) else None,
            detail.get("details") or detail.get("errors"),
        )
    if detail is None:
        return None, None, None
    return str(detail), None, None


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(DomainException)
    async def domain_exception_handler(request: Request, exc: DomainException) -> JSONResponse:
        http_exc = exc.to_http_exception()
        return _problem_response(
            request,
            http_exc.status_code,
            exc.message,
            code=exc.code,
            errors=exc.details,
            headers=http_exc.headers,
        )

    @app.exception_handler(RepositoryException)
    async def repository_exception_handler(request: Request, exc: RepositoryException) -> JSONResponse:
        logger.error(f"[STORE] {request.method} {request.url.path} failed: {str(exc)}")
        return _problem_response(
            request,
            503,
            "The message store is unavailable, please retry",
            code="store_unavailable",
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        message, code, errors = _split_detail(exc.detail)
        return _problem_response(request, exc.status_code, message, code=code, errors=errors, headers=exc.headers)

    @app.exception_handler(RequestValidationError)
    async def request_validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        return _problem_response(
            request,
            422,
            "Request validation failed",
            code="validation_error",
            errors=exc.errors(),
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception(f"Unhandled error on {request.method} {request.url.path}")
        return _problem_response(request, 500, "Internal Server Error", code="internal_server_error")
