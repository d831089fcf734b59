import os
from pydantic import model_validator
from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    PROJECT_NAME: str = "Socialize"
    SECRET_KEY: str = os.getenv("SECRET_KEY", "your_secret_key")
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60
    REFRESH_TOKEN_EXPIRE_DAYS: int = 30

    # Fernet key material for social platform credentials
    CREDENTIALS_ENCRYPTION_KEY: str = os.getenv("CREDENTIALS_ENCRYPTION_KEY", "change-me-in-production")

    REDIS_HOST: str = os.getenv("REDIS_HOST", "localhost")
    REDIS_PORT: int = int(os.getenv("REDIS_PORT", 6379))
    RATE_LIMIT_ENABLED: bool = True
    UPLOADS_PER_MINUTE: int = 30

    DATABASE_URL: str = os.getenv(
        "DATABASE_URL",
        "postgresql+asyncpg://postgres:postgres@db:5432/socialize"
    )
    DB_POOL_SIZE: int = 5
    DB_MAX_OVERFLOW: int = 10
    DB_ECHO: bool = False

    MAX_UPLOAD_BYTES: int = 100 * 1024 * 1024  # 100MB
    STORAGE_BACKEND: str = "local"  # local | s3
    STORAGE_LOCAL_ROOT: str = "storage"
    PUBLIC_BASE_URL: str = "http://localhost:8000"
    DOWNLOAD_URL_TTL_SECONDS: int = 300

    S3_BUCKET: str = os.getenv("S3_BUCKET", "socialize-uploads")
    S3_ENDPOINT_URL: str | None = os.getenv("S3_ENDPOINT_URL")
    S3_REGION: str = os.getenv("S3_REGION", "auto")
    S3_ACCESS_KEY_ID: str | None = os.getenv("S3_ACCESS_KEY_ID")
    S3_SECRET_ACCESS_KEY: str | None = os.getenv("S3_SECRET_ACCESS_KEY")

    KAFKA_BROKER: str = os.getenv("KAFKA_BROKER", "localhost:9092")
    KAFKA_PUBLISH_TOPIC: str = os.getenv("KAFKA_PUBLISH_TOPIC", "socialize-publish")

    PUBLISH_MODE: str = "inline"  # inline | queue
    PUBLISH_LEASE_SECONDS: int = 120
    PUBLISH_MAX_ATTEMPTS: int = 4
    PUBLISH_RETRY_BACKOFF_SECONDS: float = 1.0
    PUBLISH_MAX_RETRY_WAIT_SECONDS: float = 30.0
    PUBLISH_WORKER_CONCURRENCY: int = 8
    PUBLISHER_TIMEOUT_SECONDS: float = 30.0
    SCHEDULER_INTERVAL_SECONDS: int = 30
    WORKER_METRICS_PORT: int = 8001

    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False
    LOG_TO_FILE: bool = False

    @model_validator(mode="after")
    def lease_covers_one_attempt(self):
        # workers renew the lease before every attempt, so one term has to
        # cover a timed-out platform call plus the longest backoff after it
        longest_wait = min(
            self.PUBLISH_MAX_RETRY_WAIT_SECONDS,
            self.PUBLISH_RETRY_BACKOFF_SECONDS * 2 ** max(self.PUBLISH_MAX_ATTEMPTS - 1, 0),
        )
        if self.PUBLISH_LEASE_SECONDS <= self.PUBLISHER_TIMEOUT_SECONDS + longest_wait:
            raise ValueError(
                f"PUBLISH_LEASE_SECONDS ({self.PUBLISH_LEASE_SECONDS}) must exceed "
                f"PUBLISHER_TIMEOUT_SECONDS plus the longest retry wait ({self.PUBLISHER_TIMEOUT_SECONDS + longest_wait})"
            )
        return self

    class Config:
        env_file = ".env"

settings = Settings()
