"""
Feed service settings.

Configuration loaded from environment variables and an optional .env file.
"""
import json
from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

from feed_service.internal.domain.source import DataSourceConfig


class Settings(BaseSettings):
    """Feed service configuration."""

    # Fetcher
    fetch_timeout_seconds: float = 60.0
    fetch_max_attempts: int = 3
    fetch_backoff_seconds: float = 2.0
    fetch_user_agent: str = "feed-service/0.1 (+catalog sync)"

    # Aggregation
    max_concurrent_sources: int = 4
    aggregation_timeout_seconds: Optional[float] = None
    sources_file: str = "sources.json"

    # Sync jobs
    max_concurrent_jobs: int = 5
    job_timeout_minutes: int = 30
    retry_delay_seconds: int = 300
    job_retention_days: int = 30
    poll_interval_seconds: float = 10.0
    reaper_interval_seconds: float = 60.0
    dataset_sync_interval_minutes: int = 60
    dataset_id: str = "default"

    # Kafka
    kafka_enabled: bool = False
    kafka_bootstrap_servers: str = "localhost:9092"
    kafka_client_id: str = "feed-service"
    kafka_catalog_topic: str = "catalog-groups"
    kafka_compression_type: str = "gzip"

    # Logging / metrics
    log_level: str = "INFO"
    log_format: str = "json"
    metrics_port: int = 9108

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    def load_sources(self) -> List[DataSourceConfig]:
        """
        Read the configured feed sources.

        The file holds a JSON list of objects with ``platform_type``, ``url``
        and optional ``headers``, ``export_unavailable`` and ``name``.

        Returns:
            Parsed source configurations; empty if the file does not exist.
        """
        path = Path(self.sources_file)
        if not path.exists():
            return []
        raw = json.loads(path.read_text(encoding="utf-8"))
        return [DataSourceConfig.model_validate(item) for item in raw]


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
