# options_analyzer/config.py
import logging
import os
from dataclasses import dataclass
from dotenv import load_dotenv

# Loads variables from a local .env file into environment variables (dev only).
load_dotenv()

log = logging.getLogger("config")


@dataclass(frozen=True)
class Settings:
    # App config
    app_env: str
    log_level: str
    api_host: str
    api_port: int

    # Primary provider (Alpha Vantage)
    alpha_vantage_base_url: str
    alpha_vantage_api_key: str

    # Secondary provider (Yahoo chart API, optionally behind a pass-through relay)
    yahoo_base_url: str
    yahoo_relay_url: str
    http_timeout_seconds: float

    # Recommendation oracle
    openai_api_key: str
    openai_models: list[str]
    oracle_max_attempts: int
    oracle_backoff_seconds: float

    # Ledger / polling / throttling
    trades_dir: str
    poll_interval_seconds: float
    symbol_delay_seconds: float
    bundle_cache_ttl_seconds: float


def get_settings() -> Settings:
    """
    Reads env vars and returns a Settings object.
    """
    api_key = os.getenv("ALPHA_VANTAGE_API_KEY", "").strip()
    if not api_key:
        log.warning("ALPHA_VANTAGE_API_KEY is missing, using the rate-limited 'demo' key")
        api_key = "demo"

    models = [m.strip() for m in os.getenv("OPENAI_MODELS", "gpt-4o,gpt-4o-mini").split(",") if m.strip()]

    return Settings(
        app_env=os.getenv("APP_ENV", "local"),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        api_host=os.getenv("API_HOST", "127.0.0.1"),
        api_port=int(os.getenv("API_PORT", "8000")),
        alpha_vantage_base_url=os.getenv("ALPHA_VANTAGE_BASE_URL", "https://www.alphavantage.co/query"),
        alpha_vantage_api_key=api_key,
        yahoo_base_url=os.getenv("YAHOO_BASE_URL", "https://query1.finance.yahoo.com/v8/finance/chart"),
        yahoo_relay_url=os.getenv("YAHOO_RELAY_URL", "").strip(),
        http_timeout_seconds=float(os.getenv("HTTP_TIMEOUT_SECONDS", "20")),
        openai_api_key=os.getenv("OPENAI_API_KEY", "").strip(),
        openai_models=models,
        oracle_max_attempts=int(os.getenv("ORACLE_MAX_ATTEMPTS", "3")),
        oracle_backoff_seconds=float(os.getenv("ORACLE_BACKOFF_SECONDS", "2")),
        trades_dir=os.getenv("TRADES_DIR", "data"),
        poll_interval_seconds=float(os.getenv("POLL_INTERVAL_SECONDS", "300")),
        symbol_delay_seconds=float(os.getenv("SYMBOL_DELAY_SECONDS", "12")),
        bundle_cache_ttl_seconds=float(os.getenv("BUNDLE_CACHE_TTL_SECONDS", "300")),
    )
