"""
MODULE OVERVIEW:
Application-wide configuration using Pydantic Settings.

WHAT IS HAPPENING HERE:
Feed retention, toast timing, channel/table names and the HTTP rate limit all
live here so they can be tuned from the environment (or a `.env` file) without
touching the code that uses them. Retry and circuit breaker defaults are part
of the library API and stay as constants in `resilience/`.
"""
from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    PORT: int = 8000
    LOG_LEVEL: str = "INFO"

    # Notification feed
    NOTIFICATION_FEED_LIMIT: int = 50
    TOAST_DURATION_MS: int = 5000

    # Realtime channels
    MAINTENANCE_TABLE: str = "maintenance_requests"
    PAYMENTS_TABLE: str = "payments"
    PRESENCE_CHANNEL: str = "user-presence"

    # HTTP rate limiting (sliding window)
    RATE_LIMIT_MAX_REQUESTS: int = 60
    RATE_LIMIT_WINDOW_MS: int = 60000

    # Demo change generators
    DEMO_EVENT_INTERVAL_S: float = 2.0

    class Config:
        env_file = ".env"
        env_file_encoding = 'utf-8'
        extra = 'ignore'

settings = Settings()
