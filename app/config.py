from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file='.env', extra='ignore')

    app_name: str = 'Lab Booking Sync'
    app_env: str = 'local'
    app_timezone: str = 'Asia/Kolkata'
    database_url: str = 'sqlite:///./lab_booking.db'
    auth_secret: str = 'change-me'
    db_slow_query_ms: int = 100
    metrics_slow_ms: int = 200
    cache_backend: str = 'memory'
    cache_redis_url: str | None = None
    lab_availability_ttl_seconds: int = 15
    pc_row_min: int = 1
    pc_row_max: int = 4


settings = Settings()
