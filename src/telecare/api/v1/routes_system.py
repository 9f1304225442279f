from fastapi import APIRouter

from src.telecare.config import settings
from src.telecare.infra.db import inmemory as repos
from src.telecare.infra.db.inmemory import InMemoryReportRepository

router = APIRouter(prefix="", tags=["system"])


@router.get("/health")
async def health_check_v1() -> dict:
    """API v1 health endpoint."""
    return {"status": "ok", "version": "v1"}


@router.get("/system/config")
async def system_config_v1() -> dict:
    """Non-secret runtime configuration, for operators checking a deployment.

    Reports which drafting backend and storage are active and the
    regeneration policy in force.
    """

    return {
        "drafting_backend": settings.drafting_backend,
        "drafting_timeout_seconds": settings.drafting_timeout_seconds,
        "regeneration_rating_threshold": settings.regeneration_rating_threshold,
        "storage": "memory" if isinstance(repos.report_repository, InMemoryReportRepository) else "sql",
    }
