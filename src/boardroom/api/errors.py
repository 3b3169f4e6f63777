"""JSON error envelope for every failed request: ``{"ok": false, "error": {...}}``."""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from starlette.exceptions import HTTPException as StarletteHTTPException

from src.boardroom.board.agenda import AgendaValidationError

logger = structlog.get_logger(__name__)

_DEFAULT_CODES = {
    400: "BAD_REQUEST",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    422: "VALIDATION_ERROR",
    500: "INTERNAL_ERROR",
    503: "SERVICE_UNAVAILABLE",
}


class ErrorBody(BaseModel):
    code: str
    message: str
    details: list[dict[str, Any]] | None = None


class ErrorResponse(BaseModel):
    ok: bool = False
    error: ErrorBody


def api_error(code: str, message: str) -> dict[str, str]:
    """HTTPException detail carrying an explicit error code."""
    return {"code": code, "message": message}


def _error_response(status_code: int, body: ErrorBody) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=body).model_dump(exclude_none=True),
    )


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(AgendaValidationError)
    async def _handle_invalid_agenda(request: Request, exc: AgendaValidationError):  # type: ignore[unused-variable]
        logger.info("board.invalid_agenda", path=request.url.path, problems=len(exc.details))
        return _error_response(
            status.HTTP_400_BAD_REQUEST,
            ErrorBody(code="INVALID_AGENDA", message=exc.message, details=exc.details),
        )

    @app.exception_handler(StarletteHTTPException)
    async def _handle_http_exception(request: Request, exc: StarletteHTTPException):  # type: ignore[unused-variable]
        if isinstance(exc.detail, dict) and "code" in exc.detail:
            body = ErrorBody(code=exc.detail["code"], message=str(exc.detail.get("message", "")))
        else:
            body = ErrorBody(
                code=_DEFAULT_CODES.get(exc.status_code, "HTTP_ERROR"),
                message=str(exc.detail),
            )
        return _error_response(exc.status_code, body)

    @app.exception_handler(RequestValidationError)
    async def _handle_request_validation(request: Request, exc: RequestValidationError):  # type: ignore[unused-variable]
        return _error_response(
            422,
            ErrorBody(
                code="VALIDATION_ERROR",
                message="Request validation failed",
                details=[{"path": ".".join(str(p) for p in e["loc"]), "message": e["msg"]} for e in exc.errors()],
            ),
        )

    @app.exception_handler(Exception)
    async def _handle_unexpected(request: Request, exc: Exception):  # type: ignore[unused-variable]
        logger.error("unhandled_exception", path=request.url.path, exc_info=exc)
        return _error_response(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            ErrorBody(code="INTERNAL_ERROR", message="internal error"),
        )
