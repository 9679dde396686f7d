"""
Configuration management for the Trade Copilot pipeline.
"""
from pathlib import Path
from functools import lru_cache
from typing import Literal
from pydantic import Field
from pydantic_settings import BaseSettings

# Get base directory at module level
_BASE_DIR = Path(__file__).parent.parent


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Reasoning engine
    openai_api_key: str = Field(default="", alias="OPENAI_API_KEY")
    openai_model: str = Field(default="gpt-4o-mini", alias="OPENAI_MODEL")
    llm_temperature: float = Field(default=0.2, alias="LLM_TEMPERATURE")
    llm_max_tokens: int = Field(default=800, alias="LLM_MAX_TOKENS")
    structured_output: bool = Field(default=True, alias="STRUCTURED_OUTPUT")

    # Market data
    data_mode: Literal["live", "demo"] = Field(default="live", alias="DATA_MODE")
    market_cache_ttl_minutes: int = Field(default=15, alias="MARKET_CACHE_TTL_MINUTES")
    history_period: str = Field(default="1y", alias="HISTORY_PERIOD")

    # Market data fetches and reasoning engine calls are bounded by this
    call_timeout_seconds: float = Field(default=10.0, alias="CALL_TIMEOUT_SECONDS")

    # Proposal defaults
    default_quantity: int = Field(default=10, alias="DEFAULT_QUANTITY")
    macd_smoothing: bool = Field(default=True, alias="MACD_SMOOTHING")

    # Paths
    base_dir: Path = _BASE_DIR
    db_path: Path = Field(default=_BASE_DIR / "data" / "trade_copilot.db", alias="DB_PATH")
    log_dir: Path = Field(default=_BASE_DIR / "logs", alias="LOG_DIR")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Alerting
    telegram_bot_token: str = Field(default="", alias="TELEGRAM_BOT_TOKEN")
    telegram_chat_id: str = Field(default="", alias="TELEGRAM_CHAT_ID")
    alert_env: str = Field(default="DEV", alias="ALERT_ENV")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
        "populate_by_name": True,
    }

    @property
    def is_demo(self) -> bool:
        return self.data_mode == "demo"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
