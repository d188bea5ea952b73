from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_name: str = "Sales Knowledge Engine API"
    environment: str = "dev"
    api_prefix: str = "/v1"
    log_level: str = "INFO"
    cors_allow_origins: str = ""

    vector_pg_dsn: str = "sqlite:///./knowledge.db"
    db_pool_size: int = Field(default=20, ge=1, le=200)
    db_max_overflow: int = Field(default=40, ge=0, le=400)
    db_pool_timeout_seconds: int = Field(default=60, ge=1, le=600)
    db_pool_recycle_seconds: int = Field(default=1800, ge=30, le=86400)
    vector_collection_name: str = "successful_conversations"

    # Empty URI selects the in-process graph backend.
    neo4j_uri: str = ""
    neo4j_user: str = ""
    neo4j_password: str = ""
    neo4j_database: str = ""
    neo4j_max_connection_pool_size: int = Field(default=50, ge=1, le=500)
    neo4j_connection_timeout_seconds: float = Field(default=30.0, gt=0.0, le=300.0)

    redis_url: str = "redis://redis:6379/0"
    queue_name: str = "knowledge"
    queue_mode: str = "redis"
    queue_retry_max: int = Field(default=2, ge=0, le=10)
    queue_retry_interval_seconds: int = Field(default=60, ge=5, le=3600)
    queue_job_timeout_seconds: int = Field(default=300, ge=10, le=3600)

    embedding_provider: str = "openai"
    embedding_model: str = "text-embedding-3-small"
    embedding_dim: int = 1536

    success_score_threshold: float = Field(default=70.0, ge=0.0, le=100.0)
    strategy_key_sort_types: bool = False
    graph_merge_retry_max: int = Field(default=3, ge=0, le=10)
    graph_merge_retry_backoff_seconds: float = Field(default=0.05, ge=0.0, le=10.0)

    retrieval_timeout_seconds: float = Field(default=10.0, gt=0.0, le=300.0)
    retrieval_max_workers: int = Field(default=7, ge=1, le=32)
    similar_leads_limit: int = Field(default=5, ge=1, le=100)
    similar_leads_min_success_rate: float = Field(default=0.5, ge=0.0, le=1.0)
    similar_leads_min_total_calls: int = Field(default=3, ge=1, le=1000)
    strategies_limit: int = Field(default=10, ge=1, le=100)
    strategies_min_confidence: float = Field(default=0.6, ge=0.0, le=1.0)
    objections_limit: int = Field(default=5, ge=1, le=100)
    handling_strategies_per_objection: int = Field(default=3, ge=1, le=20)
    patterns_limit: int = Field(default=10, ge=1, le=100)
    patterns_min_success_rate: float = Field(default=0.6, ge=0.0, le=1.0)
    signals_limit: int = Field(default=10, ge=1, le=100)
    semantic_results_limit: int = Field(default=5, ge=1, le=50)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
