from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_env: str = "dev"
    log_level: str = "INFO"

    db_host: str = "localhost"
    db_port: int = 5432
    db_database: str = "muse"
    db_username: str = "postgres"
    db_password: str = "password"
    notification_channel: str = "upload_notification"

    song_root_url: str = "http://localhost:8080"
    score_root_url: str = "http://localhost:8087"
    system_api_token: str = ""
    http_timeout_seconds: float | None = None

    stage_timeout_seconds: float | None = None
    file_poll_attempts: int = 1
    file_poll_interval_seconds: float = 1.0

    subscriber_queue_size: int = 100
