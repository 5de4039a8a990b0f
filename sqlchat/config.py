from __future__ import annotations

import functools
import os
import pathlib
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, ValidationInfo, field_validator


class RetryConfig(BaseModel):
    attempts: int = Field(default=2, ge=1)
    backoff_seconds: float = Field(default=1.0, ge=0)


class AppConfig(BaseModel):
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "info"
    log_format: str = Field(default="console", pattern="^(console|json)$")


class PostgresConfig(BaseModel):
    dsn: str
    min_pool_size: int = Field(default=1, ge=1)
    max_pool_size: int = Field(default=10, ge=1)
    statement_timeout_ms: int = Field(default=5000, ge=100)
    allow_self_signed: bool = False

    @field_validator("max_pool_size")
    @classmethod
    def validate_pool_sizes(cls, v: int, info: ValidationInfo) -> int:
        min_size = info.data.get("min_pool_size", 1)
        if v < min_size:
            raise ValueError("max_pool_size must be >= min_pool_size")
        return v


class RedisConfig(BaseModel):
    url: str
    key_prefix: str = "sqlchat"


class LLMConfig(BaseModel):
    provider: str = "groq"
    model: str = "llama-3.1-8b-instant"
    base_url: Optional[str] = None
    temperature: float = Field(default=0.0, ge=0.0, le=1.0)
    max_tokens: int = Field(default=1400, ge=1)
    request_timeout_s: float = Field(default=30.0, gt=0)
    retry: RetryConfig = Field(default_factory=RetryConfig)


class IntrospectionConfig(BaseModel):
    schemas: List[str] = Field(default_factory=lambda: ["public"])
    cache_ttl_s: int = Field(default=600, ge=1)
    max_tables: int = Field(default=8, ge=1)


class PromptsConfig(BaseModel):
    history_turns: int = Field(default=6, ge=0, le=10)
    max_columns_per_table: int = Field(default=50, ge=1)
    repair_clip_chars: int = Field(default=4000, ge=1)


class SQLGuardConfig(BaseModel):
    default_limit: int = Field(default=200, ge=1)
    max_limit: int = Field(default=500, ge=1)
    disallow_select_star: bool = True
    block_pii_columns: bool = True
    extra_blocked_keywords: List[str] = Field(default_factory=list)
    verify_structure: bool = True

    @field_validator("max_limit")
    @classmethod
    def validate_max_limit(cls, v: int, info: ValidationInfo) -> int:
        default_limit = info.data.get("default_limit", 1)
        if v < default_limit:
            raise ValueError("max_limit must be >= default_limit")
        return v


class ObservabilityConfig(BaseModel):
    service_name: str = "sqlchat"
    metrics_port: int = Field(default=0, ge=0)
    audit_log_path: Optional[str] = "logs/audit.log"


class SecurityConfig(BaseModel):
    enable_rate_limiting: bool = True
    max_requests_per_minute: int = Field(default=30, ge=1)


class Settings(BaseModel):
    environment: str = "development"
    app: AppConfig = Field(default_factory=AppConfig)
    postgres: PostgresConfig
    redis: Optional[RedisConfig] = None
    llm: LLMConfig = Field(default_factory=LLMConfig)
    introspection: IntrospectionConfig = Field(default_factory=IntrospectionConfig)
    prompts: PromptsConfig = Field(default_factory=PromptsConfig)
    sql_guard: SQLGuardConfig = Field(default_factory=SQLGuardConfig)
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)
    security: SecurityConfig = Field(default_factory=SecurityConfig)


def _load_yaml(path: pathlib.Path) -> Dict[str, Any]:
    with path.open("r", encoding="utf-8") as fh:
        return yaml.safe_load(fh) or {}


def _apply_env_overrides(raw: Dict[str, Any]) -> Dict[str, Any]:
    dsn = os.environ.get("DATABASE_URL")
    if dsn:
        raw.setdefault("postgres", {})["dsn"] = dsn
    return raw


@functools.lru_cache(maxsize=1)
def load_settings(path: Optional[str] = None) -> Settings:
    cfg_path = pathlib.Path(path or os.environ.get("SQLCHAT_CONFIG", "config.yaml")).resolve()
    if not cfg_path.exists():
        raise FileNotFoundError(f"Config file not found at {cfg_path}")
    raw = _apply_env_overrides(_load_yaml(cfg_path))
    return Settings(**raw)


def get_settings() -> Settings:
    return load_settings()
