from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    openrouter_api_key: str = ""
    telegram_bot_token: str = ""
    db_path: str = "expense_ledger.json"
    llm_model: str = "google/gemini-2.0-flash-exp"
    log_level: str = "INFO"
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    # Workflow tuning
    lookup_window_days: int = 30
    duplicate_window_days: int = 2
    duplicate_confirm_timeout: float = 30.0
    pending_operation_ttl: float = 300.0
    recent_default_limit: int = 5
    currency_symbol: str = "$"


@lru_cache
def get_settings() -> Settings:
    return Settings()
