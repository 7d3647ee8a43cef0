"""Application configuration using pydantic-settings."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "Gem Chat"
    environment: str = "development"
    log_level: str = "debug"
    debug: bool = True

    # Google AI (an empty key leaves the backend unavailable)
    google_api_key: str = ""
    gemini_model: str = "gemini-2.5-flash"
    temperature: float = 0.7
    enable_web_search: bool = True

    # Persistence
    storage_backend: str = "mongodb"
    mongodb_uri: str = "mongodb://localhost:27017"
    mongodb_database: str = "gem_chat"
    mongodb_collection: str = "kv_store"
    storage_key_prefix: str = "gemini"

    # Persona
    personality_path: str = ""

    # CORS
    frontend_url: str = "http://localhost:3000"

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    @property
    def uses_memory_storage(self) -> bool:
        return self.storage_backend.strip().lower() == "memory"


settings = Settings()


def get_settings() -> Settings:
    """FastAPI dependency for injecting settings."""
    return settings
