from pathlib import Path
from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field

# .env at the repo root, for local runs
ENV_PATH = Path(__file__).resolve().parents[1] / ".env"
load_dotenv(dotenv_path=ENV_PATH)


class Settings(BaseSettings):
    """Environment-driven settings; every field maps to an upper-case variable."""

    model_config = SettingsConfigDict(case_sensitive=True, populate_by_name=True)

    # reporting
    local_tz: str = Field(default="Europe/Madrid", alias="LOCAL_TZ")
    benchmark_symbol: str = Field(default="^GSPC", alias="BENCHMARK_SYMBOL")

    # risk metrics
    risk_free_rate: float = Field(default=0.03, alias="RISK_FREE_RATE")
    trading_days_per_year: int = Field(default=252, alias="TRADING_DAYS_PER_YEAR")
    beta_min_overlap: int = Field(default=30, alias="BETA_MIN_OVERLAP")

    # xirr solver
    xirr_guess: float = Field(default=0.1, alias="XIRR_GUESS")
    xirr_tolerance: float = Field(default=1e-6, alias="XIRR_TOLERANCE")
    xirr_max_iterations: int = Field(default=100, alias="XIRR_MAX_ITERATIONS")

    # market data
    yf_enable: int = Field(default=1, alias="YF_ENABLE")
    fetch_max_workers: int = Field(default=4, alias="FETCH_MAX_WORKERS")
    market_rate_limit_seconds: float = Field(default=0.2, alias="MARKET_RATE_LIMIT_SECONDS")
    market_retry_attempts: int = Field(default=2, alias="MARKET_RETRY_ATTEMPTS")
    http_retry_backoff_seconds: float = Field(default=1.0, alias="HTTP_RETRY_BACKOFF_SECONDS")

    # cache
    cache_enabled: int = Field(default=1, alias="CACHE_ENABLED")
    cache_dir: str = Field(default="./.cache", alias="CACHE_DIR")
    cache_db_path: str = Field(default="./data/cache.sqlite3", alias="CACHE_DB_PATH")
    cache_ttl_hours: float = Field(default=24, alias="CACHE_TTL_HOURS")
    quote_ttl_minutes: int = Field(default=15, alias="QUOTE_TTL_MINUTES")


settings = Settings()
