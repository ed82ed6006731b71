"""Application settings and environment configuration."""

from typing import Optional
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


BASE_DIR = Path(__file__).resolve().parents[2]
ENV_FILE = BASE_DIR / ".env"


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Application
    app_name: str = "Galleria"
    debug: bool = False
    environment: str = "dev"  # 'dev' or 'prod'
    log_level: str = "INFO"

    # Database
    database_url: str = "postgresql://localhost/galleria"
    db_pool_size: int = 10
    db_max_overflow: int = 20
    db_pool_timeout: int = 30
    db_pool_recycle: int = 1800
    db_pool_pre_ping: bool = True
    db_connect_timeout: int = 10
    # Postgres statement_timeout; 0 disables it.
    db_statement_timeout_ms: int = 15000

    # Embeddings
    # 'minilm' is text-only (all-MiniLM-L6-v2); 'clip' embeds both text and images.
    embedding_provider: str = "minilm"
    embedding_model_name: Optional[str] = None
    # Cold model loads can take a while; the first request pays for it.
    embedding_timeout_seconds: float = 30.0

    # Vector search
    vector_match_threshold: float = 0.70
    vector_match_timeout_seconds: float = 10.0
    vector_search_rate_limit: str = "30/minute"

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 4000
    api_workers: int = 4

    # Frontend origin (CORS)
    app_url: str = "http://localhost:3000"

    # Supabase Authentication
    supabase_url: Optional[str] = None
    supabase_anon_key: Optional[str] = None
    supabase_service_role_key: Optional[str] = None

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment.lower() == "prod"

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment.lower() == "dev"

    def embedding_config_audit(self) -> dict:
        """Return startup embedding/search config metadata for logging."""
        return {
            "embedding_provider": self.embedding_provider,
            "embedding_model_name": self.embedding_model_name,
            "embedding_timeout_seconds": self.embedding_timeout_seconds,
            "vector_match_threshold": self.vector_match_threshold,
            "vector_match_timeout_seconds": self.vector_match_timeout_seconds,
        }


settings = Settings()
