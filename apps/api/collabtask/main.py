from __future__ import annotations

import uuid
from time import monotonic

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.trustedhost import TrustedHostMiddleware

from collabtask.config import settings
from collabtask.db import create_schema
from collabtask.errors import PreconditionMissing, StorageUnavailable, UnmappedOutcomeError, ValidationFailed
from collabtask.logging_config import bind_request_context, clear_request_context, get_logger, setup_logging
from collabtask.metrics import runtime_metrics
from collabtask.routers.activities import router as activities_router
from collabtask.routers.assignments import router as assignments_router
from collabtask.routers.auth import router as auth_router
from collabtask.routers.columns import router as columns_router
from collabtask.routers.lanes import router as lanes_router
from collabtask.routers.members import router as members_router
from collabtask.routers.notes import router as notes_router
from collabtask.routers.projects import router as projects_router
from collabtask.routers.realtime import router as realtime_router
from collabtask.routers.system import router as system_router
from collabtask.routers.tasks import router as tasks_router
from collabtask.routers.users import router as users_router
from collabtask.seed import seed

setup_logging(settings.log_level, settings.log_format)
logger = get_logger(__name__)

app = FastAPI(
  title="CollabTask API",
  version="0.1.0",
  docs_url="/docs" if settings.api_docs_enabled else None,
  redoc_url="/redoc" if settings.api_docs_enabled else None,
  openapi_url="/openapi.json" if settings.api_docs_enabled else None,
)


@app.exception_handler(ValidationFailed)
async def _validation_failed_handler(_, exc: ValidationFailed) -> JSONResponse:
  return JSONResponse(
    status_code=400,
    content={"detail": {"message": "Validation failed", "errors": [e.as_dict() for e in exc.errors]}},
  )


@app.exception_handler(PreconditionMissing)
async def _precondition_missing_handler(_, exc: PreconditionMissing) -> JSONResponse:
  return JSONResponse(status_code=428, content={"detail": exc.message})


@app.exception_handler(StorageUnavailable)
async def _storage_unavailable_handler(_, exc: StorageUnavailable) -> JSONResponse:
  # Driver details stay in the logs.
  return JSONResponse(status_code=503, content={"detail": "Service temporarily unavailable"})


@app.exception_handler(UnmappedOutcomeError)
async def _unmapped_outcome_handler(_, exc: UnmappedOutcomeError) -> JSONResponse:
  logger.error("unmapped_write_outcome", error=str(exc))
  return JSONResponse(status_code=500, content={"detail": "Internal server error"})


app.add_middleware(
  CORSMiddleware,
  allow_origins=settings.cors_origin_list(),
  allow_origin_regex=settings.cors_origin_regex,
  allow_credentials=True,
  allow_methods=["*"],
  allow_headers=["*"],
  expose_headers=["ETag", "Location"],
)
app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.trusted_host_list())

app.include_router(auth_router)
app.include_router(users_router)
app.include_router(projects_router)
app.include_router(members_router)
app.include_router(lanes_router)
app.include_router(columns_router)
app.include_router(tasks_router)
app.include_router(notes_router)
app.include_router(assignments_router)
app.include_router(activities_router)
app.include_router(realtime_router)
app.include_router(system_router)


@app.middleware("http")
async def _request_metrics_middleware(request, call_next):
  start = monotonic()
  clear_request_context()
  bind_request_context(request_id=request.headers.get("x-request-id") or uuid.uuid4().hex)
  try:
    response = await call_next(request)
  finally:
    clear_request_context()
  elapsed_ms = (monotonic() - start) * 1000.0
  runtime_metrics.observe_request(response.status_code, elapsed_ms)
  response.headers.setdefault("X-Content-Type-Options", "nosniff")
  response.headers.setdefault("X-Frame-Options", "DENY")
  response.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
  response.headers.setdefault("Permissions-Policy", "geolocation=(), microphone=(), camera=()")
  return response


def _is_test_db() -> bool:
  return "test" in settings.database_url.rsplit("/", 1)[-1]


@app.on_event("startup")
async def _startup() -> None:
  if _is_test_db():
    return
  if not settings.jwt_secret or settings.jwt_secret.strip().lower() in {"dev-secret-change-me", "replace_with_strong_random_secret"}:
    raise RuntimeError("JWT_SECRET is required and must not be a placeholder")
  await create_schema()
  await seed()
