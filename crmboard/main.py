"""
crm-board — kanban CRM back end

Mounts the routers, configures logging on startup, closes the shared
HTTP client on shutdown and maps the error taxonomy onto HTTP:

  ValidationFailure   → 422
  NotFoundOrForbidden → 404
  PersistenceTimeout  → 504
  RemoteError         → 502
"""

import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from loguru import logger
from pydantic import ValidationError

from .errors import (
    CrmError,
    NotFoundOrForbidden,
    PersistenceTimeout,
    RemoteError,
    ValidationFailure,
    from_validation_error,
)
from .http_client import close_clients
from .logging_config import setup_logging
from .routers import admin, board, campaigns, chat, greetings, leads, pipelines, preferences
from .schemas.errors import ErrorResponse

VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    logger.info(f"crm-board {VERSION} starting")
    yield
    await close_clients()


app = FastAPI(title="crm-board", version=VERSION, lifespan=lifespan)

for module in (board, pipelines, leads, admin, campaigns, greetings, chat, preferences):
    app.include_router(module.router)


# ── Error mapping ────────────────────────────────────────────────────


def _status_for(exc: CrmError) -> int:
    if isinstance(exc, ValidationFailure):
        return 422
    if isinstance(exc, NotFoundOrForbidden):
        return 404
    if isinstance(exc, PersistenceTimeout):
        return 504
    if isinstance(exc, RemoteError):
        return 502
    return 400


def _error_body(status: int, message: str, detail=None) -> JSONResponse:
    body = ErrorResponse(
        error=message,
        status_code=status,
        request_id=uuid.uuid4().hex[:12],
        detail=detail if isinstance(detail, list) else None,
    )
    return JSONResponse(status_code=status, content=body.model_dump(mode="json"))


@app.exception_handler(CrmError)
async def crm_error_handler(request: Request, exc: CrmError):
    status = _status_for(exc)
    if status >= 500:
        logger.warning(f"{request.method} {request.url.path} → {status}: {exc.message}")
    return _error_body(status, exc.message, exc.detail)


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    failure = from_validation_error(exc)
    return _error_body(422, failure.message)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    message = str(errors[0].get("msg", "Invalid request")) if errors else "Invalid request"
    return _error_body(422, message.removeprefix("Value error, "))


@app.get("/health")
async def health():
    return {"status": "ok", "version": VERSION}
