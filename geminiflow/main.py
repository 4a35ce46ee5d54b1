from __future__ import annotations

import logging
from pathlib import Path
from time import monotonic

from fastapi import APIRouter, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse

from geminiflow.config import PLACEHOLDER_FERNET_KEYS, PLACEHOLDER_SECRETS, settings
from geminiflow.db import create_all, database_name
from geminiflow.logging_setup import configure_logging
from geminiflow.metrics import runtime_metrics
from geminiflow.routers.ai import router as ai_router
from geminiflow.routers.attachments import router as attachments_router
from geminiflow.routers.audit import router as audit_router
from geminiflow.routers.auth import router as auth_router
from geminiflow.routers.backup import router as backup_router
from geminiflow.routers.channels import router as channels_router
from geminiflow.routers.projects import router as projects_router
from geminiflow.routers.settings import router as settings_router
from geminiflow.routers.system_status import router as system_status_router
from geminiflow.routers.tasks import router as tasks_router
from geminiflow.routers.users import router as users_router
from geminiflow.routers.views import router as views_router
from geminiflow.security import ChannelSecretDecryptError

logger = logging.getLogger("geminiflow")
http_logger = logging.getLogger("geminiflow.http")

app = FastAPI(title="GeminiFlow API", version=settings.app_version)


@app.exception_handler(ChannelSecretDecryptError)
async def _channel_secret_error_handler(_, exc: ChannelSecretDecryptError) -> JSONResponse:
  return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(Exception)
async def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
  logger.error("unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
  return JSONResponse(status_code=500, content={"detail": "Internal server error"})


app.add_middleware(
  CORSMiddleware,
  allow_origins=settings.cors_origin_list(),
  allow_credentials="*" not in settings.cors_origin_list(),
  allow_methods=["*"],
  allow_headers=["*"],
)

api = APIRouter(prefix="/api")
api.include_router(auth_router)
api.include_router(users_router)
api.include_router(projects_router)
api.include_router(tasks_router)
api.include_router(views_router)
api.include_router(settings_router)
api.include_router(channels_router)
api.include_router(ai_router)
api.include_router(attachments_router)
api.include_router(backup_router)
api.include_router(audit_router)
api.include_router(system_status_router)
app.include_router(api)


@app.middleware("http")
async def _request_metrics_middleware(request, call_next):
  start = monotonic()
  try:
    response = await call_next(request)
  except Exception:
    # the 500 body is produced by the outer error handler
    elapsed_ms = (monotonic() - start) * 1000.0
    runtime_metrics.record(500, elapsed_ms)
    http_logger.info("%s %s -> 500 (%.1fms)", request.method, request.url.path, elapsed_ms)
    raise
  elapsed_ms = (monotonic() - start) * 1000.0
  runtime_metrics.record(response.status_code, elapsed_ms)
  http_logger.info("%s %s -> %s (%.1fms)", request.method, request.url.path, response.status_code, elapsed_ms)
  response.headers.setdefault("X-Content-Type-Options", "nosniff")
  response.headers.setdefault("X-Frame-Options", "DENY")
  response.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
  response.headers.setdefault("Permissions-Policy", "geolocation=(), microphone=(), camera=()")
  return response


@app.get("/health")
async def health() -> dict:
  return {"ok": True}


@app.get("/version")
async def version() -> dict:
  return {"version": settings.app_version, "buildSha": settings.build_sha}


def _is_test_db() -> bool:
  return "test" in database_name()


def _check_secrets() -> None:
  placeholder_secret = not settings.app_secret or settings.app_secret.strip().lower() in PLACEHOLDER_SECRETS
  placeholder_key = not settings.fernet_key or settings.fernet_key.strip() in PLACEHOLDER_FERNET_KEYS
  if not (placeholder_secret or placeholder_key):
    return
  if settings.is_sqlite():
    logger.warning("running with placeholder APP_SECRET/FERNET_KEY; set real values before deploying")
    return
  if placeholder_secret:
    raise RuntimeError("APP_SECRET is required and must not be a placeholder")
  raise RuntimeError("FERNET_KEY is required and must not be a placeholder")


@app.on_event("startup")
async def _startup() -> None:
  configure_logging()
  if _is_test_db():
    return
  _check_secrets()
  if settings.db_auto_create:
    await create_all()
  logger.info("GeminiFlow %s (%s) started on %s", settings.app_version, settings.build_sha, database_name() or "database")


def _mount_frontend(static_dir: str | None) -> None:
  if not static_dir:
    return
  root = Path(static_dir).resolve()
  index = root / "index.html"
  if not index.is_file():
    logger.warning("STATIC_DIR %s has no index.html; frontend not served", root)
    return

  @app.get("/{path:path}", include_in_schema=False, response_model=None)
  async def _spa(path: str):
    if path == "api" or path.startswith("api/"):
      return JSONResponse(status_code=404, content={"detail": "Not Found"})
    candidate = (root / path).resolve()
    if path and candidate.is_file() and root in candidate.parents:
      return FileResponse(candidate)
    return FileResponse(index)


_mount_frontend(settings.static_dir)
