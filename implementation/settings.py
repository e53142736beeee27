"""
Runtime settings for the rating enrichment service.

All configuration comes from environment variables (optionally loaded from a
.env file). Settings are read once at process start and passed explicitly to
every component that needs them.
"""

import os
from dataclasses import dataclass

from dotenv import load_dotenv


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


@dataclass(frozen=True, slots=True)
class Settings:
    tmdb_api_key: str = ""
    omdb_api_key: str = ""
    redis_url: str = ""
    redis_token: str = ""
    cron_secret: str = ""
    app_env: str = "development"
    require_production: bool = True
    key_prefix: str = "imdb"
    log_level: str = "INFO"

    # Cache tiers
    memory_ttl_seconds: int = 60 * 60          # local tier lifetime
    memory_max_entries: int = 10_000
    no_mapping_ttl_seconds: int = 7 * 24 * 60 * 60
    run_lock_ttl_seconds: int = 60 * 60

    # Enrichment / population job
    chunk_size: int = 5
    days_in_cycle: int = 30
    max_catalog_pages: int = 500
    target_new_ratings: int = 1000
    popular_enrich_limit: int = 20

    # HTTP
    show_detail_timeout_seconds: float = 30.0

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"

    @property
    def cache_configured(self) -> bool:
        """True when a remote-tier URL is set. The token is optional for unauthenticated servers."""
        return bool(self.redis_url)

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from the process environment (and .env, if present)."""
        load_dotenv()
        return cls(
            tmdb_api_key=os.getenv("TMDB_API_KEY", ""),
            omdb_api_key=os.getenv("OMDB_API_KEY", ""),
            redis_url=os.getenv("IMDB_RATINGS_REDIS_URL", ""),
            redis_token=os.getenv("IMDB_RATINGS_REDIS_TOKEN", ""),
            cron_secret=os.getenv("CRON_SECRET", ""),
            app_env=os.getenv("APP_ENV", "development"),
            require_production=_env_bool("IMDB_CACHE_REQUIRE_PRODUCTION", True),
            key_prefix=os.getenv("REDIS_KEY_PREFIX", "imdb"),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            memory_ttl_seconds=_env_int("IMDB_MEMORY_TTL_SECONDS", 60 * 60),
            target_new_ratings=_env_int("IMDB_TARGET_NEW_RATINGS", 1000),
            max_catalog_pages=_env_int("IMDB_MAX_CATALOG_PAGES", 500),
        )
