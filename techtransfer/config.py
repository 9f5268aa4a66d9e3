"""Runtime configuration for the portal clients and workers."""

import os
from typing import List, Optional

from pydantic import BaseModel, Field

DEFAULT_FEATURED_SEEDS = ["aeronautics", "robotics", "sensors", "materials", "propulsion"]


def _env_list(name: str, default: List[str]) -> List[str]:
    raw = os.getenv(name)
    if not raw:
        return list(default)
    return [item.strip() for item in raw.split(",") if item.strip()]


class Settings(BaseModel):
    """Settings shared by every component of the pipeline."""

    api_base_url: str = "https://technology.nasa.gov/api/api"
    portal_origin: str = "https://technology.nasa.gov"
    request_timeout: float = Field(default=30.0, gt=0)
    user_agent: str = "techtransfer-pipeline/1.0"

    # Browse / featured heuristics
    browse_all_query: str = "technology"
    category_min_word_length: int = 3
    category_fail_open: bool = True
    featured_seeds: List[str] = Field(default_factory=lambda: list(DEFAULT_FEATURED_SEEDS))
    featured_per_seed_limit: int = Field(default=3, ge=1)
    fanout_concurrency: int = Field(default=1, ge=1)

    # Problem matching
    max_keywords: int = Field(default=4, ge=1)
    ai_model: str = "claude-3-5-haiku-20241022"
    ai_max_tokens: int = 2048
    ai_description_chars: int = 300

    # Retry hook, disabled unless max_retries > 0
    max_retries: int = Field(default=0, ge=0)
    retry_delay: float = Field(default=1.0, ge=0)

    # Worker / ambient
    nats_url: str = "nats://localhost:4222"
    sentry_dsn: Optional[str] = None
    environment: str = "development"
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from environment variables, falling back to defaults."""
        defaults = cls()
        return cls(
            api_base_url=os.getenv("TT_API_BASE_URL", defaults.api_base_url).rstrip("/"),
            portal_origin=os.getenv("TT_PORTAL_ORIGIN", defaults.portal_origin).rstrip("/"),
            request_timeout=float(os.getenv("TT_REQUEST_TIMEOUT", defaults.request_timeout)),
            featured_seeds=_env_list("TT_FEATURED_SEEDS", defaults.featured_seeds),
            featured_per_seed_limit=int(
                os.getenv("TT_FEATURED_PER_SEED_LIMIT", defaults.featured_per_seed_limit)
            ),
            category_min_word_length=int(
                os.getenv("TT_CATEGORY_MIN_WORD_LENGTH", defaults.category_min_word_length)
            ),
            max_keywords=int(os.getenv("TT_MAX_KEYWORDS", defaults.max_keywords)),
            fanout_concurrency=int(os.getenv("TT_FANOUT_CONCURRENCY", defaults.fanout_concurrency)),
            max_retries=int(os.getenv("TT_MAX_RETRIES", defaults.max_retries)),
            retry_delay=float(os.getenv("TT_RETRY_DELAY", defaults.retry_delay)),
            ai_model=os.getenv("TT_AI_MODEL", defaults.ai_model),
            ai_max_tokens=int(os.getenv("TT_AI_MAX_TOKENS", defaults.ai_max_tokens)),
            nats_url=os.getenv("NATS_URL", defaults.nats_url),
            sentry_dsn=os.getenv("SENTRY_DSN") or None,
            environment=os.getenv("TT_ENVIRONMENT", defaults.environment),
            log_level=os.getenv("TT_LOG_LEVEL", defaults.log_level),
        )
