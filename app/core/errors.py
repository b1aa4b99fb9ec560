from __future__ import annotations

import logging
import re
from typing import Any, Iterable

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.core.config import settings

_LOG = logging.getLogger("app.errors")

_SQLITE_UNIQUE_RE = re.compile(r"UNIQUE constraint failed: ([\w.]+(?:, [\w.]+)*)")
_POSTGRES_UNIQUE_RE = re.compile(r"Key \(([^)]+)\)=\(([^)]*)\) already exists")
_REQUEST_LOC_PREFIXES = {"body", "query", "path", "header", "cookie"}


def _status_label(status_code: int) -> str:
    return "fail" if 400 <= int(status_code) < 500 else "error"


def error_response(status_code: int, message: str, *, headers: dict[str, str] | None = None, **extra: Any) -> JSONResponse:
    content: dict[str, Any] = {"status": _status_label(status_code), "message": message}
    content.update(extra)
    return JSONResponse(status_code=status_code, content=content, headers=headers)


def validation_message(errors: Iterable[dict[str, Any]]) -> str:
    parts = []
    for item in errors:
        loc = [str(part) for part in item.get("loc", ())]
        if loc and loc[0] in _REQUEST_LOC_PREFIXES:
            loc = loc[1:]
        field = ".".join(loc)
        msg = str(item.get("msg") or "invalid value")
        parts.append(f"{field}: {msg}" if field else msg)
    return "Invalid input data. " + ". ".join(parts)


def duplicate_field_message(exc: IntegrityError) -> str | None:
    text = str(getattr(exc, "orig", None) or exc)
    match = _SQLITE_UNIQUE_RE.search(text)
    if match:
        fields = [name.split(".")[-1] for name in match.group(1).split(", ")]
        return f"Duplicate field value: {', '.join(fields)}. Please use another value"
    match = _POSTGRES_UNIQUE_RE.search(text)
    if match:
        return f"Duplicate field value: {match.group(1)}={match.group(2)}. Please use another value"
    return None


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(StarletteHTTPException)
    async def _http_error(request: Request, exc: StarletteHTTPException):
        message = str(exc.detail)
        if exc.status_code == 404 and exc.detail == "Not Found":
            message = f"Can't find {request.url.path} on this server!"
        return error_response(exc.status_code, message, headers=getattr(exc, "headers", None))

    @app.exception_handler(RequestValidationError)
    async def _request_validation_error(request: Request, exc: RequestValidationError):
        _LOG.info("validation error on %s: %s", request.url.path, exc.errors())
        return error_response(400, validation_message(exc.errors()))

    @app.exception_handler(ValidationError)
    async def _schema_validation_error(request: Request, exc: ValidationError):
        _LOG.info("schema validation error on %s: %s", request.url.path, exc.errors())
        return error_response(400, validation_message(exc.errors()))

    @app.exception_handler(IntegrityError)
    async def _integrity_error(request: Request, exc: IntegrityError):
        message = duplicate_field_message(exc)
        if message is None:
            _LOG.warning("integrity error on %s: %s", request.url.path, exc.orig)
            message = "Data constraint violated"
        return error_response(400, message)

    @app.exception_handler(Exception)
    async def _unhandled_error(request: Request, exc: Exception):
        _LOG.error("unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
        if settings.is_development:
            return error_response(500, "Something went very wrong!", error=repr(exc))
        return error_response(500, "Something went very wrong!")
