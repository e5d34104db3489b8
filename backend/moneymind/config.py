from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "Money Mind API"
    gemini_api_key: str = ""
    # must support generateContent with JSON response mode
    gemini_model: str = "gemini-2.5-flash"  # override via GEMINI_MODEL in .env if needed
    database_url: str = ""
    # Comma-separated origins for CORS.
    cors_allow_origins: str = "*"
    jwt_secret_key: str
    jwt_algorithm: str = "HS256"
    # One provider call is retried at most once before surfacing "try again".
    llm_timeout_seconds: int = 25
    llm_max_retries: int = 1
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore")


settings = Settings()
