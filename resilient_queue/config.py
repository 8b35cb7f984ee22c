"""
Application configuration using Pydantic Settings.
Loads configuration from environment variables with sensible defaults.
"""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Circuit Breaker
    circuit_breaker_failure_threshold: int = 5
    circuit_breaker_open_timeout_ms: int = 60_000

    # Retry
    retry_max_retries: int = 3
    retry_backoff_multiplier: float = 2.0
    retry_max_backoff_ms: int = 30_000
    retry_initial_delay_ms: int = 1_000

    # Deduplication
    dedup_strategy: str = "content"  # content, timestamp or hybrid
    dedup_hash_algorithm: str = "sha256"
    dedup_hash_length: int = 32
    dedup_cache_expiry_ms: int = 300_000

    # Processing Engine
    processing_mode: str = "sequential"  # sequential or parallel
    processing_batch_size: int = 5
    processing_max_concurrency: int = 10
    processing_throttle_delay_ms: int = 0
    processing_handler_timeout_seconds: float | None = None

    # Consumer
    consumer_max_messages: int = 10
    consumer_wait_time_seconds: int = 20
    consumer_visibility_timeout_seconds: int = 30
    consumer_polling_interval_ms: int = 1_000
    consumer_throttle_delay_ms: int = 0
    consumer_handler: str = "echo"

    # Publisher
    publisher_fifo: bool = False
    publisher_message_group_id: str | None = None
    publisher_enable_deduplication: bool = True

    # Observability
    otel_exporter_otlp_endpoint: str = "http://localhost:4317"
    otel_service_name: str = "resilient-queue"
    tracing_enabled: bool = False
    prometheus_port: int = 9090
    log_level: str = "INFO"
    log_format: str = "json"  # json or console


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
