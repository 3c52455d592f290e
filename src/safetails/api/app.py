# src/safetails/api/app.py
"""
FastAPI application wiring.

This file creates the `FastAPI` instance, installs CORS and the JSON error envelope
(`{success: false, message}`). Query logic lives in `safetails.api.routes` and
`safetails.proximity`.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.cors import CORSMiddleware

from safetails.config.settings import get_settings
from safetails.core.logging import configure_logging

from .routes import router

configure_logging()

logger = logging.getLogger(__name__)

app = FastAPI(title="SafeTails API", version="0.1.0")

# CORS (dev-friendly): allow local frontends to call this API.
# Configure via `api.cors_origins` / `api.cors_allow_local` in settings.
_api_settings = get_settings().api
cors_origin_regex = (
    r"^https?://(localhost|127\.0\.0\.1)(:\d+)?$"
    if _api_settings.cors_allow_local and not _api_settings.cors_origins
    else ""
)
if _api_settings.cors_origins or cors_origin_regex:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=_api_settings.cors_origins,
        allow_origin_regex=cors_origin_regex or None,
        allow_credentials=False,
        allow_methods=["GET"],
        allow_headers=["*"],
    )

app.include_router(router)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    return JSONResponse(status_code=exc.status_code, content={"success": False, "message": message})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    # Missing or ill-typed query params are client input errors (400, not 422).
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()) if p != "query")
        parts.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return JSONResponse(status_code=400, content={"success": False, "message": "; ".join(parts)})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"success": False, "message": "Internal server error"})
