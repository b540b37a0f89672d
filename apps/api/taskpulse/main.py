from __future__ import annotations

import logging
from time import monotonic

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.middleware.trustedhost import TrustedHostMiddleware

from taskpulse.config import settings
from taskpulse.db import create_schema
from taskpulse.errors import InternalError, TaskPulseError
from taskpulse.logging_setup import setup_logging
from taskpulse.metrics import request_metrics
from taskpulse.notifications.service import WebSocketHub
from taskpulse.routers.audit import router as audit_router
from taskpulse.routers.auth import router as auth_router
from taskpulse.routers.notifications import router as notifications_router
from taskpulse.routers.realtime import router as realtime_router
from taskpulse.routers.system_status import router as system_status_router
from taskpulse.routers.tasks import router as tasks_router
from taskpulse.routers.users import router as users_router

logger = logging.getLogger(__name__)

app = FastAPI(
  title="TaskPulse API",
  version="0.1.0",
  docs_url="/docs" if settings.api_docs_enabled else None,
  redoc_url="/redoc" if settings.api_docs_enabled else None,
  openapi_url="/openapi.json" if settings.api_docs_enabled else None,
)
app.state.channel = WebSocketHub()


@app.exception_handler(TaskPulseError)
async def _taskpulse_error_handler(_, exc: TaskPulseError) -> JSONResponse:
  return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail()})


@app.exception_handler(SQLAlchemyError)
async def _db_error_handler(request, exc: SQLAlchemyError) -> JSONResponse:
  # Store failures surface without driver detail.
  logger.error("database error: %s", exc, exc_info=exc)
  return await _taskpulse_error_handler(request, InternalError("Internal error"))


app.add_middleware(
  CORSMiddleware,
  allow_origins=settings.cors_origin_list(),
  allow_origin_regex=settings.cors_origin_regex,
  allow_credentials=True,
  allow_methods=["*"],
  allow_headers=["*"],
)
app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.trusted_host_list())

app.include_router(auth_router)
app.include_router(users_router)
app.include_router(tasks_router)
app.include_router(notifications_router)
app.include_router(audit_router)
app.include_router(realtime_router)
app.include_router(system_status_router)


@app.middleware("http")
async def _request_metrics_middleware(request, call_next):
  start = monotonic()
  response = await call_next(request)
  request_metrics.observe(response.status_code, (monotonic() - start) * 1000.0)
  response.headers.setdefault("X-Content-Type-Options", "nosniff")
  response.headers.setdefault("X-Frame-Options", "DENY")
  response.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
  return response


@app.on_event("startup")
async def _startup() -> None:
  setup_logging(level=settings.log_level, log_dir=settings.log_dir)
  if not settings.is_test_db() and settings.app_secret.strip().lower() in {"", "dev-secret-change-me"}:
    raise RuntimeError("APP_SECRET is required and must not be a placeholder")
  await create_schema()
  logger.info("TaskPulse API %s started", settings.app_version)
