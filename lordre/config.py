"""L'Ordre — Application configuration via environment variables."""

from __future__ import annotations

from pydantic_settings import BaseSettings


class LOrdreSettings(BaseSettings):
    """Central configuration loaded from environment / .env file."""

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    # ── Persistent store ───────────────────────────────────────
    database_url: str = ""
    postgres_user: str = "lordre"
    postgres_password: str = "change-me-in-production"
    postgres_db: str = "lordre"
    postgres_host: str = "localhost"
    postgres_port: int = 5432

    @property
    def database_url_sync(self) -> str:
        if self.database_url:
            return self.database_url
        return (
            f"postgresql+psycopg2://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    # ── Identity provider ──────────────────────────────────────
    identity_backend: str = "local"  # "local" or "gotrue"
    supabase_url: str = ""
    supabase_anon_key: str = ""
    supabase_service_role_key: str = ""
    identity_timeout_seconds: float = 30.0

    # ── Tokens ─────────────────────────────────────────────────
    jwt_secret_key: str = "change-me-generate-a-random-secret"
    jwt_algorithm: str = "HS256"
    jwt_audience: str = "authenticated"
    jwt_expiration_minutes: int = 1440

    # ── API ────────────────────────────────────────────────────
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    cors_allow_origin: str = "*"

    # ── Action history / dashboard ─────────────────────────────
    history_page_limit: int = 200
    refresh_interval_seconds: int = 30

    # ── Logging ────────────────────────────────────────────────
    log_level: str = "INFO"
    log_format: str = "json"


settings = LOrdreSettings()
