# ==============================================================================
# Application Configuration
# ==============================================================================
"""
Configuration management using pydantic-settings.

All configuration is loaded from environment variables, with support for
.env files via python-dotenv.
"""

from functools import lru_cache

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load .env file before any settings are instantiated
load_dotenv()


class PostgresSettings(BaseSettings):
    """PostgreSQL connection settings."""

    model_config = SettingsConfigDict(env_prefix="PG_")

    host: str = Field(default="localhost", description="PostgreSQL host")
    port: int = Field(default=5432, description="PostgreSQL port")
    user: str = Field(default="postgres", description="PostgreSQL username")
    password: str = Field(default="postgres", description="PostgreSQL password")
    database: str = Field(default="apptales", description="Database name")
    schema_name: str = Field(default="apptales", description="Schema name")
    sslmode: str = Field(default="prefer", description="SSL mode")
    pool_min_connections: int = Field(default=1, description="Minimum pooled connections")
    pool_max_connections: int = Field(default=10, description="Maximum pooled connections")

    @property
    def connection_string(self) -> str:
        """Build PostgreSQL connection string."""
        return (
            f"postgresql://{self.user}:{self.password}@"
            f"{self.host}:{self.port}/{self.database}?sslmode={self.sslmode}"
        )


class TransitionSettings(BaseSettings):
    """Transition engine settings.

    top_n and depth bounds protect graph traversal cost. The compute timeout
    bounds a full recompute, which may be triggered from a user request when
    a project has no transitions yet.
    """

    model_config = SettingsConfigDict(env_prefix="TRANSITIONS_")

    default_top_n: int = Field(default=5, description="Default limit for top-K queries")
    max_top_n: int = Field(default=20, description="Maximum top_n accepted by graph builds")
    max_depth: int = Field(default=5, description="Maximum depth accepted by graph builds")
    default_depth: int = Field(default=3, description="Default depth for graph builds")
    compute_timeout_seconds: float = Field(
        default=120.0, description="Deadline for a single full recompute"
    )
    incremental_weighted_avg: bool = Field(
        default=False,
        description="Fold session durations into a weighted running average "
        "instead of replacing avg_duration_ms on incremental updates",
    )
    graph_query_workers: int = Field(
        default=8, description="Concurrent per-parent queries within one graph level"
    )
    job_max_workers: int = Field(
        default=4, description="Projects recomputed in parallel by the transition job"
    )
    recent_hours_threshold: int = Field(
        default=24, description="Activity window for the recent-projects sweep"
    )
    job_interval_minutes: int = Field(
        default=60, description="Interval between recent-projects sweeps"
    )
    full_sweep_hours: int = Field(default=24, description="Interval between full sweeps")


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        extra="ignore",
    )

    # Nested settings
    postgres: PostgresSettings = Field(default_factory=PostgresSettings)
    transitions: TransitionSettings = Field(default_factory=TransitionSettings)

    # General settings
    log_level: str = Field(default="INFO", description="Logging level")


@lru_cache
def get_settings() -> Settings:
    """
    Get cached application settings.

    Settings are loaded once and cached for subsequent calls.
    """
    return Settings()
