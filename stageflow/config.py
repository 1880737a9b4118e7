from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Practice service (authoritative backend)
    service_base_url: str = "http://127.0.0.1:8001"
    request_timeout_seconds: float = 30.0
    upload_timeout_seconds: float = 120.0
    max_concurrent_uploads: int = 4
    max_tracked_transitions: int = 1000

    # Practice service stand-in
    database_url: str = "sqlite:///./stageflow.sqlite3"

    model_config = SettingsConfigDict(env_file=".env", env_prefix="STAGEFLOW_")


settings = Settings()
