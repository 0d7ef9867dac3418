from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Database (SQLite by default; postgresql+asyncpg://... also works)
    database_url: str = "sqlite+aiosqlite:///./data/voice.db"

    # Redis (Celery broker for maintenance tasks)
    redis_url: str = "redis://localhost:6379/0"

    # ElevenLabs
    elevenlabs_api_key: str = ""
    elevenlabs_base_url: str = "https://api.elevenlabs.io/v1"
    elevenlabs_timeout: float = 30.0  # seconds, per provider call
    elevenlabs_max_concurrent: int = 5
    elevenlabs_dispatch_delay: float = 0.1  # pause before refilling a freed slot
    elevenlabs_model_id: str = ""  # empty = provider default

    # Files
    uploads_dir: str = "uploads"
    temp_dir: str = "temp"
    max_audio_size: int = 50 * 1024 * 1024
    min_audio_size: int = 1024
    max_text_length: int = 5000

    # Maintenance
    temp_file_max_age_hours: int = 24
    retention_days: int = 30

    # App
    app_env: str = "development"
    app_debug: bool = True
    app_host: str = "0.0.0.0"
    app_port: int = 3000

    # Rate limiting (slowapi limit strings)
    rate_limit_enabled: bool = True
    rate_limit_default: str = "100/15minutes"
    voice_rate_limit: str = "10/minute"
    upload_rate_limit: str = "5/minute"

    # API key guard
    require_api_key: bool = False
    valid_api_keys: str = ""  # comma-separated

    # CORS
    allowed_origins: str = "*"  # comma-separated

    # Logging
    log_level: str = "INFO"
    log_json: bool = False  # set True in production for structured JSON logs

    # Sentry
    sentry_dsn: str = ""  # leave empty to disable

    @property
    def api_keys(self) -> set[str]:
        return {k.strip() for k in self.valid_api_keys.split(",") if k.strip()}


settings = Settings()


def validate_settings_for_production() -> None:
    """Validate critical settings. Called on startup in non-test environments."""
    errors: list[str] = []

    if not settings.elevenlabs_api_key:
        errors.append("ELEVENLABS_API_KEY is required")

    if not settings.elevenlabs_base_url:
        errors.append("ELEVENLABS_BASE_URL is required")

    if settings.elevenlabs_timeout < 5:
        errors.append("ELEVENLABS_TIMEOUT must be at least 5 seconds")

    if settings.elevenlabs_max_concurrent < 1:
        errors.append("ELEVENLABS_MAX_CONCURRENT must be at least 1")

    if settings.elevenlabs_dispatch_delay < 0:
        errors.append("ELEVENLABS_DISPATCH_DELAY must not be negative")

    if settings.max_audio_size > 100 * 1024 * 1024:
        errors.append("MAX_AUDIO_SIZE cannot exceed 100MB")

    if settings.max_text_length > 10000:
        errors.append("MAX_TEXT_LENGTH cannot exceed 10000 characters")

    if settings.require_api_key and not settings.api_keys:
        errors.append("VALID_API_KEYS must be set when REQUIRE_API_KEY is enabled")

    if settings.app_env == "production":
        if settings.allowed_origins == "*":
            errors.append("ALLOWED_ORIGINS must not be '*' in production")
        if settings.app_debug:
            errors.append("APP_DEBUG must be false in production")

    if errors:
        raise SystemExit("Configuration errors:\n  - " + "\n  - ".join(errors))
