from __future__ import annotations

import logging
from datetime import datetime, timezone
from http import HTTPStatus
from typing import Any, Generic, TypeVar

from fastapi import FastAPI, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.requests import Request

from leaddesk.context import get_correlation_id

T = TypeVar("T")

logger = logging.getLogger("leaddesk.errors")


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


class Envelope(BaseModel, Generic[T]):
    model_config = ConfigDict(populate_by_name=True)

    status_code: int = Field(alias="statusCode")
    data: T | None = None
    timestamp: str


class MessageRead(BaseModel):
    message: str


def ok(data: Any, status_code: int = status.HTTP_200_OK) -> dict[str, Any]:
    return {"statusCode": status_code, "data": data, "timestamp": utc_timestamp()}


def deleted(entity: str) -> dict[str, Any]:
    return ok(MessageRead(message=f"{entity} deleted"))


def _reason_phrase(status_code: int) -> str:
    try:
        return HTTPStatus(status_code).phrase
    except ValueError:
        return "Error"


def error_response(request: Request, *, status_code: int, message: Any) -> JSONResponse:
    correlation_id = get_correlation_id() or getattr(request.state, "correlation_id", None)
    response = JSONResponse(
        status_code=status_code,
        content={
            "statusCode": status_code,
            "error": _reason_phrase(status_code),
            "message": message,
            "timestamp": utc_timestamp(),
        },
    )
    if correlation_id:
        response.headers["X-Correlation-Id"] = correlation_id
    return response


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    response = error_response(request, status_code=exc.status_code, message=exc.detail)
    for key, value in (getattr(exc, "headers", None) or {}).items():
        response.headers[key] = value
    return response


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    messages = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        messages.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
    return error_response(request, status_code=status.HTTP_400_BAD_REQUEST, message=messages)


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled_exception", extra={"path": request.url.path, "method": request.method})
    return error_response(
        request,
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        message="Internal server error",
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, validation_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, unhandled_exception_handler)
