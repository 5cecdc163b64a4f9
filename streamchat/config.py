from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Database settings
    local_chat_store_path: Path = Path("data/chats.json")

    # LLM settings
    openai_api_key: str | None = None  # Falls back to the OPENAI_API_KEY env var in the client
    openai_base_url: str | None = None
    completion_model: str = "gpt-4o-mini"
    completion_temperature: float = 0.7

    # Client settings
    api_base_url: str = "http://localhost:8000"

    log_level: str = "INFO"  # Can be DEBUG, INFO, WARNING, ERROR, CRITICAL


settings = Settings()
