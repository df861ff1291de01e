from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_env: str = "dev"
    log_level: str = "INFO"
    worker_role: str = "all"

    db_host: str = "host.docker.internal"
    db_port: int = 5432
    db_database: str = "trust_safety"
    db_username: str = "trust_safety"
    db_password: str = "secret"
    db_pool_min_size: int = 1
    db_pool_max_size: int = 10

    upload_max_bytes: int = 10 * 1024 * 1024
    upload_min_bytes: int = 1024
    upload_allowed_media_types: list[str] = [
        "image/jpeg",
        "image/jpg",
        "image/png",
        "image/gif",
        "image/webp",
    ]
    storage_root: str = "/app/files"

    analysis_poll_interval_seconds: int = 5
    provider_timeout_seconds: float = 10.0

    content_safety_provider: str = "example"
    content_safety_openai_api_key: str = ""
    content_safety_openai_model_name: str = "omni-moderation-latest"
    content_safety_openai_timeout_seconds: int = 30
    content_safety_openai_base_url: str | None = None

    notification_max_retries: int = 3
    notification_batch_size: int = 100
    notification_poll_interval_seconds: int = 5
    notification_attempt_timeout_seconds: float = 10.0
    notification_lease_seconds: int = 60

    email_provider: str = "example"
    email_api_url: str = "https://api.resend.com/emails"
    email_api_key: str = ""
    email_from_address: str = "notifications@bazari.com"

    push_provider: str = "example"
    push_gateway_url: str = ""
    push_api_key: str = ""

    security_team_recipient: str = "security@bazari.com"
    moderation_team_recipient: str = "moderation@bazari.com"
