from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional


@dataclass
class Settings:
    """Centralized application settings.

    This keeps environment-variable handling in one place so other modules can
    depend on strongly-typed attributes instead of calling os.getenv
    directly.
    """

    # Drafting model backend selection: "demo" (default) or "llm".
    drafting_backend: str = os.getenv("DRAFTING_BACKEND", "demo")

    # Optional settings for the external drafting model.
    openai_api_key: Optional[str] = os.getenv("OPENAI_API_KEY")
    llm_model: str = os.getenv("LLM_MODEL", "gpt-4.1-mini")

    # Upper bound (seconds) for a single drafting model call. A call that does
    # not finish in time is reported as a failed regeneration.
    drafting_timeout_seconds: float = float(os.getenv("DRAFTING_TIMEOUT_SECONDS", "30"))

    # A reject carrying a star rating at or below this value triggers an
    # automatic regeneration of the report.
    regeneration_rating_threshold: int = int(os.getenv("REGENERATION_RATING_THRESHOLD", "2"))

    # Number of already-reviewed reports shown on a doctor's dashboard.
    doctor_reviewed_limit: int = int(os.getenv("DOCTOR_REVIEWED_LIMIT", "20"))

    # Optional database configuration for SQL-backed repositories.
    database_url: Optional[str] = os.getenv("DATABASE_URL")
    use_sql_repos: bool = os.getenv("USE_SQL_REPOS", "false").lower() == "true"

    # Basic API authentication for the upstream session gateway.
    # When ENABLE_API_AUTH=true, every request must carry a valid API key in
    # addition to the forwarded account id.
    enable_api_auth: bool = os.getenv("ENABLE_API_AUTH", "false").lower() == "true"
    # Comma-separated list of allowed API keys when auth is enabled.
    api_keys: Optional[str] = os.getenv("API_KEYS")

    # CORS configuration: comma-separated origins (e.g. "https://app.example.com").
    # Default is "*" (allow all) which is acceptable for local development but
    # should be tightened in production.
    cors_allow_origins: str = os.getenv("CORS_ALLOW_ORIGINS", "*")

    log_level: str = os.getenv("LOG_LEVEL", "INFO")


settings = Settings()
