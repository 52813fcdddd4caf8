from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.trustedhost import TrustedHostMiddleware

from tasklane.config import settings
from tasklane.github.client import GitHubApiError
from tasklane.github.importer import GitHubSyncNotConfiguredError
from tasklane.github.project_sync import ProjectNotFoundError, ProjectScopeError
from tasklane.security import IntegrationSecretDecryptError
from tasklane.routers.audit import router as audit_router
from tasklane.routers.github import router as github_router
from tasklane.routers.tasks import router as tasks_router

logging.basicConfig(
  level=settings.log_level.upper(),
  format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
  title="Tasklane API",
  version="0.1.0",
  docs_url="/docs" if settings.api_docs_enabled else None,
  redoc_url="/redoc" if settings.api_docs_enabled else None,
  openapi_url="/openapi.json" if settings.api_docs_enabled else None,
)


@app.exception_handler(GitHubApiError)
async def _github_api_error_handler(_, exc: GitHubApiError) -> JSONResponse:
  return JSONResponse(
    status_code=400,
    content={"detail": {"message": exc.message, "statusCode": exc.status_code, "github": exc.details}},
  )


@app.exception_handler(GitHubSyncNotConfiguredError)
async def _sync_not_configured_handler(_, exc: GitHubSyncNotConfiguredError) -> JSONResponse:
  return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(ProjectScopeError)
async def _project_scope_error_handler(_, exc: ProjectScopeError) -> JSONResponse:
  return JSONResponse(status_code=400, content={"detail": str(exc), "code": "github_missing_project_scope"})


@app.exception_handler(ProjectNotFoundError)
async def _project_not_found_handler(_, exc: ProjectNotFoundError) -> JSONResponse:
  return JSONResponse(status_code=404, content={"detail": str(exc), "code": "github_project_not_found"})


@app.exception_handler(IntegrationSecretDecryptError)
async def _integration_secret_error_handler(_, exc: IntegrationSecretDecryptError) -> JSONResponse:
  return JSONResponse(status_code=400, content={"detail": str(exc)})

app.add_middleware(
  CORSMiddleware,
  allow_origins=settings.cors_origin_list(),
  allow_origin_regex=settings.cors_origin_regex,
  allow_credentials=True,
  allow_methods=["*"],
  allow_headers=["*"],
)
app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.trusted_host_list())

app.include_router(tasks_router)
app.include_router(github_router)
app.include_router(audit_router)


@app.middleware("http")
async def _security_headers_middleware(request, call_next):
  response = await call_next(request)
  response.headers.setdefault("X-Content-Type-Options", "nosniff")
  response.headers.setdefault("X-Frame-Options", "DENY")
  response.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
  return response


@app.get("/health")
async def health() -> dict:
  return {"ok": True}


@app.get("/version")
async def version() -> dict:
  return {"version": settings.app_version, "buildSha": settings.build_sha}


def _is_test_db() -> bool:
  try:
    db_name = settings.database_url.rsplit("/", 1)[-1]
    return "test" in db_name
  except Exception:
    return False


@app.on_event("startup")
async def _startup() -> None:
  if _is_test_db():
    return
  if not settings.fernet_key or settings.fernet_key.strip() in {"AAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAA=", "REPLACE_WITH_FERNET_KEY"}:
    raise RuntimeError("FERNET_KEY is required and must not be a placeholder")
  if not (settings.github_webhook_secret or "").strip():
    logger.warning("GITHUB_WEBHOOK_SECRET is not set; GitHub webhook deliveries will be rejected")


def run() -> None:
  import uvicorn

  uvicorn.run("tasklane.main:app", host=settings.api_host, port=settings.api_port, log_level=settings.log_level.lower())
