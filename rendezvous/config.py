from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    # Project
    PROJECT_NAME: str = "Peer Rendezvous"
    API_PREFIX: str = "/api"
    DEBUG: bool = False
    ENVIRONMENT: str = "development"

    # Storage backend: "memory" (single process) or "redis" (shared, TTL records)
    STORE_BACKEND: str = "memory"

    # Redis
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0
    REDIS_KEY_PREFIX: str = "rdv:"
    REDIS_FALLBACK_TO_MEMORY: bool = False

    @property
    def REDIS_URL(self) -> str:
        return f"redis://{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"

    # API Settings
    CORS_ALLOW_ORIGIN: str = "*"

    # Lifecycle
    WAITING_TIMEOUT_SECONDS: int = 120
    MATCH_LIFETIME_SECONDS: int = 600
    POOL_CAPACITY: int = 10000
    TIMEZONE_QUEUE_CAPACITY: int = 5000
    CAPACITY_RETRY_AFTER_SECONDS: int = 5

    # Signal relay
    SIGNAL_QUEUE_LIMIT: int = 100
    SIGNAL_QUEUE_KEEP: int = 50

    # Queue estimates
    SECONDS_PER_QUEUE_POSITION: int = 10
    MAX_ESTIMATED_WAIT_SECONDS: int = 120

    # Compatibility scoring
    MAX_TZ_SCORE: float = 20
    TZ_PENALTY_PER_HOUR: float = 1
    STATUS_BONUS: float = 2
    FRESH_WAIT_SECONDS: float = 30
    VERY_FRESH_WAIT_SECONDS: float = 10

    # Debug
    REQUEST_LOG_SIZE: int = 50

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FILE: Optional[str] = None

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "allow"


settings = Settings()
