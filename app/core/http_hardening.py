from __future__ import annotations

import logging
import re
from time import perf_counter
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.concurrency import run_in_threadpool

from app.core.config import settings
from app.core.errors import error_response
from app.services.rate_limit import client_ip, get_rate_limiter

REQUEST_ID_HEADER = "X-Request-ID"
_REQUEST_ID_RE = re.compile(r"^[A-Za-z0-9._-]{1,128}$")
_LOG = logging.getLogger("app.http")

RATE_LIMITED_PREFIX = "/api"
RATE_LIMIT_MESSAGE = "Too many requests from this IP, please try again in an hour!"

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "no-referrer",
    "X-Permitted-Cross-Domain-Policies": "none",
    "Cross-Origin-Opener-Policy": "same-origin",
    "Cross-Origin-Embedder-Policy": "credentialless",
    "Cross-Origin-Resource-Policy": "same-origin",
    "Permissions-Policy": "geolocation=(), microphone=(), camera=(), payment=(), usb=()",
    "Content-Security-Policy": "default-src 'self'; object-src 'none'; frame-ancestors 'none'; base-uri 'self'; form-action 'self'",
}


def _request_id_from_header(raw: str | None) -> str:
    value = str(raw or "").strip()
    if not value:
        return uuid4().hex
    if not _REQUEST_ID_RE.fullmatch(value):
        return uuid4().hex
    return value


def _rate_limited(request: Request):
    if not settings.API_RATE_LIMIT_ENABLED or not request.url.path.startswith(RATE_LIMITED_PREFIX):
        return None
    ip = client_ip(request)
    result = get_rate_limiter().hit(
        f"rate:api:{ip}",
        limit=int(settings.API_RATE_LIMIT),
        window_seconds=int(settings.API_RATE_LIMIT_WINDOW_SECONDS),
    )
    if result.allowed:
        return None
    _LOG.warning("rate limit exceeded ip=%s hits=%s", ip, result.hits)
    return error_response(429, RATE_LIMIT_MESSAGE, headers={"Retry-After": str(result.retry_after)})


def install_http_hardening(app: FastAPI) -> None:
    @app.middleware("http")
    async def _http_hardening_middleware(request: Request, call_next):
        request_id = _request_id_from_header(request.headers.get(REQUEST_ID_HEADER))
        request.state.request_id = request_id
        started_at = perf_counter()

        response = await run_in_threadpool(_rate_limited, request)
        if response is None:
            response = await call_next(request)

        for key, value in SECURITY_HEADERS.items():
            response.headers[key] = value
        response.headers["Cache-Control"] = "no-store"
        response.headers["Pragma"] = "no-cache"
        response.headers["Expires"] = "0"
        response.headers[REQUEST_ID_HEADER] = request_id

        duration_ms = (perf_counter() - started_at) * 1000.0
        _LOG.info(
            "%s %s status=%s duration_ms=%.2f request_id=%s",
            request.method,
            request.url.path,
            response.status_code,
            duration_ms,
            request_id,
        )
        return response
