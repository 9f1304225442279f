from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from src.telecare.api.v1.routes_accounts import router as accounts_router_v1
from src.telecare.api.v1.routes_dashboard import router as dashboard_router_v1
from src.telecare.api.v1.routes_reports import router as reports_router_v1
from src.telecare.api.v1.routes_sessions import router as sessions_router_v1
from src.telecare.api.v1.routes_system import router as system_router_v1
from src.telecare.config import settings
from src.telecare.errors import ValidationFailed, WorkflowError
from src.telecare.infra.db.bootstrap import init_sql_repositories
from src.telecare.logging_setup import configure_logging

app = FastAPI(title="Telecare Report Review API")


@app.on_event("startup")
async def on_startup() -> None:
    """Application startup hook.

    Configures logging and, when USE_SQL_REPOS is enabled and a DATABASE_URL
    is configured, swaps in SQL-backed repositories for accounts, clinical
    sessions and reports. Otherwise the in-memory repositories remain active.
    """

    configure_logging(settings.log_level)
    init_sql_repositories()


@app.exception_handler(WorkflowError)
async def workflow_error_handler(request: Request, exc: WorkflowError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code},
    )


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed payloads are VALIDATION_FAILED (400), not FastAPI's default 422."""

    return JSONResponse(
        status_code=ValidationFailed.status_code,
        content={"detail": jsonable_encoder(exc.errors()), "code": ValidationFailed.code},
    )


# CORS configuration – permissive by default for development. Tighten via
# CORS_ALLOW_ORIGINS in production deployments.
allow_origins = [origin.strip() for origin in settings.cors_allow_origins.split(",") if origin.strip()] or ["*"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=allow_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health", tags=["system"])
async def health_check() -> dict:
    """Basic liveness check for the API root."""
    return {"status": "ok"}


# Versioned API routers
app.include_router(system_router_v1, prefix="/api/v1")
app.include_router(accounts_router_v1, prefix="/api/v1")
app.include_router(sessions_router_v1, prefix="/api/v1")
app.include_router(reports_router_v1, prefix="/api/v1")
app.include_router(dashboard_router_v1, prefix="/api/v1")
