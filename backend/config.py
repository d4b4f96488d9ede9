"""Application configuration via environment variables."""

from pathlib import Path
from pydantic_settings import BaseSettings

PROJECT_ROOT = Path(__file__).resolve().parent.parent


class Settings(BaseSettings):
    database_url: str = f"sqlite:///{PROJECT_ROOT / 'data' / 'portfolio.db'}"
    log_level: str = "INFO"
    debug: bool = False  # expose internal error detail in API responses
    cors_origins: list[str] = ["http://localhost:5173"]  # Vite dev server

    # Commissions
    default_broker: str = "galicia"
    seed_default_configs: bool = True

    # Inflation
    annual_inflation_rate: float = 0.12  # fallback when UVA history is missing
    uva_api_url: str = "https://api.estadisticasbcra.com/uva"
    uva_api_token: str = ""
    uva_request_timeout: float = 15.0

    # Market hours (local exchange time)
    market_timezone: str = "America/Argentina/Buenos_Aires"
    market_open: str = "11:00"
    market_close: str = "17:00"
    quote_symbol_suffix: str = ".BA"  # Yahoo suffix for BYMA listings

    # Jobs
    scheduler_enabled: bool = True
    quote_update_minutes: int = 2
    quote_market_hours_only: bool = True
    quote_retry_attempts: int = 3
    quote_retry_delay_seconds: float = 5.0
    uva_update_cron: str = "0 18 * * 1-5"  # 6 PM business days
    custody_fee_cron: str = "0 9 1 * *"  # 1st of month, 9 AM
    custody_dry_run: bool = False
    sell_monitor_minutes: int = 5

    # Telegram
    telegram_bot_token: str = ""
    telegram_chat_ids: list[int] = []

    model_config = {"env_prefix": "CP_", "env_file": ".env"}


settings = Settings()
