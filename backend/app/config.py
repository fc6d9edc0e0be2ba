"""
Configuration settings for the CrossDoc service.

Reads settings from the project .env file and provides typed settings.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict

from crossdoc_analyzer.models.alignment import AlignmentThresholds


# Resolve paths
BACKEND_DIR = Path(__file__).parent.parent
PROJECT_ROOT = BACKEND_DIR.parent
ENV_FILE = PROJECT_ROOT / ".env"


class Settings(BaseSettings):
    """Application settings loaded from .env file."""

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Database - SQLite by default, PostgreSQL via DATABASE_URL
    database_url: str = Field(
        default=f"sqlite:///{BACKEND_DIR / 'crossdoc.db'}",
        alias="DATABASE_URL",
        description="SQLAlchemy connection URL"
    )

    # Application settings
    debug: bool = Field(default=False, alias="DEBUG")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Alignment thresholds (per call site)
    objective_threshold: float = Field(
        default=0.7,
        alias="CROSSDOC_OBJECTIVE_THRESHOLD",
        description="Minimum similarity for an IB objective to align with a Protocol objective"
    )
    endpoint_threshold: float = Field(
        default=0.7,
        alias="CROSSDOC_ENDPOINT_THRESHOLD",
        description="Minimum similarity for a Protocol endpoint to align with SAP/CSR endpoints"
    )
    dose_threshold: float = Field(
        default=0.7,
        alias="CROSSDOC_DOSE_THRESHOLD",
        description="Minimum regimen score for an IB dose to align with a treatment arm"
    )
    low_similarity_threshold: float = Field(
        default=0.8,
        alias="CROSSDOC_LOW_SIMILARITY_THRESHOLD",
        description="Aligned primary objectives below this score get a wording warning"
    )

    # Engine settings
    max_workers: int = Field(
        default=1,
        alias="CROSSDOC_MAX_WORKERS",
        description="Thread pool size for rule evaluation (1 = sequential)"
    )
    rules_config_path: str = Field(
        default=str(BACKEND_DIR / "config.yaml"),
        alias="CROSSDOC_RULES_CONFIG",
        description="YAML file with rule enable/disable overrides"
    )

    # DB retry settings (transient OperationalError on block updates)
    db_retry_attempts: int = Field(default=3, alias="CROSSDOC_DB_RETRY_ATTEMPTS")

    @property
    def alignment_thresholds(self) -> AlignmentThresholds:
        """Thresholds passed into the engine."""
        return AlignmentThresholds(
            objectives=self.objective_threshold,
            endpoints=self.endpoint_threshold,
            doses=self.dose_threshold,
            low_similarity=self.low_similarity_threshold,
        )

    @computed_field
    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Convenience accessors
settings = get_settings()
