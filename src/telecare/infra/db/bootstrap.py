from __future__ import annotations

import logging
from typing import Optional

from src.telecare.config import settings
from src.telecare.infra.db import inmemory as inmemory_repos
from src.telecare.infra.db.models import Base
from src.telecare.infra.db.session import create_engine_for_url, create_sqlalchemy_session_factory
from src.telecare.infra.db.sql_accounts import SqlAccountRepository
from src.telecare.infra.db.sql_reports import SqlClinicalSessionRepository, SqlReportRepository

logger = logging.getLogger("telecare.db")


def install_sql_repositories(database_url: str) -> None:
    """Swap the module-level repositories for SQL-backed implementations."""

    engine = create_engine_for_url(database_url)

    # Create tables if they do not exist. Real deployments manage the schema
    # with migrations; this keeps fresh local setups working.
    Base.metadata.create_all(engine)

    session_factory = create_sqlalchemy_session_factory(engine)

    inmemory_repos.account_repository = SqlAccountRepository(session_factory)
    inmemory_repos.clinical_session_repository = SqlClinicalSessionRepository(session_factory)
    inmemory_repos.report_repository = SqlReportRepository(session_factory)


def init_sql_repositories(database_url: Optional[str] = None) -> None:
    """Optionally switch in-memory repositories to SQL-backed implementations.

    If USE_SQL_REPOS is not enabled this is a no-op and the in-memory
    repositories remain active.
    """

    if not settings.use_sql_repos:
        return

    db_url = database_url or settings.database_url
    if not db_url:
        logger.warning("USE_SQL_REPOS is enabled but DATABASE_URL is not set; keeping in-memory repositories")
        return

    install_sql_repositories(db_url)
    logger.info("SQL repositories enabled")
