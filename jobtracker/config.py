from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Paths
    base_dir: Path = Path(__file__).resolve().parent.parent
    data_dir: Path = base_dir / "data"
    db_path: Path = data_dir / "jobs.duckdb"

    # Server
    host: str = "127.0.0.1"
    port: int = 3000
    environment: Literal["development", "production", "test"] = "development"
    log_level: str = "INFO"
    frontend_url: str = "http://localhost:5173"

    # Storage
    job_backend: Literal["duckdb", "redis"] = "duckdb"
    kv_backend: Literal["redis", "memory"] = "redis"
    redis_host: str = "127.0.0.1"
    redis_port: int = 6379
    redis_password: str | None = None
    redis_db: int = 0
    rebuild_index_on_startup: bool = False

    # LLM
    llm_mode: Literal["cloud", "local"] = "cloud"
    local_model: str = "qwen3-coder"
    local_ollama_url: str = "http://localhost:11434"
    ai_model: str = "claude"  # label stored with cached responses in cloud mode

    # AI response cache
    cache_expiry_days: int = 60

    # Remote call retry
    retry_max_attempts: int = 3
    retry_initial_delay: float = 1.0  # seconds
    retry_max_delay: float = 10.0  # seconds
    retry_backoff_multiplier: float = 2.0

    model_config = {"env_prefix": "JOB_TRACKER_", "env_file": ".env", "extra": "ignore"}


settings = Settings()
