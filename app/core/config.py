from pydantic_settings import BaseSettings
from typing import Optional
from functools import lru_cache
from pathlib import Path

# Base directory
BASE_DIR = Path(__file__).resolve().parent.parent.parent

class Settings(BaseSettings):
    # Paths
    BASE_DIR: Path = BASE_DIR
    RECOVERY_DIR: Path = BASE_DIR / "recovery"

    # Debug
    DEBUG: bool = True

    # Session settings
    SESSION_BACKEND: str = "memory"  # memory | redis
    SESSION_EXPIRE_HOURS: int = 24
    COOKIE_SECURE: bool = False
    BCRYPT_ROUNDS: int = 12

    # Redis settings
    REDIS_URL: str = "redis://localhost:6379"
    REDIS_PREFIX: str = "examify:"

    # Database
    POSTGRES_SERVER: str = "localhost"
    POSTGRES_USER: str = "examify_user"
    POSTGRES_PASSWORD: str = "examify_password"
    POSTGRES_DB: str = "examify_db"
    POSTGRES_PORT: str = "5432"
    SQLALCHEMY_DATABASE_URL: Optional[str] = None

    # Binary store
    BLOB_BUCKET: str = "examSubmissions"
    BLOB_CHUNK_SIZE: int = 255 * 1024
    BLOB_WRITE_TIMEOUT: float = 30.0
    BLOB_EMERGENCY_WRITE_TIMEOUT: float = 15.0
    STORE_CONNECT_RETRIES: int = 3
    STORE_CONNECT_BACKOFF: float = 1.0

    # Intake
    MAX_SUBMISSION_BYTES: int = 50_000_000
    PARTIAL_REASSEMBLY_THRESHOLD: float = 0.8
    CHUNK_RETENTION_HOURS: Optional[int] = None
    CHUNK_SWEEP_INTERVAL_SECONDS: int = 3600

    # External CDN (S3 compatible)
    CDN_ENDPOINT: Optional[str] = None
    CDN_ACCESS_KEY: Optional[str] = None
    CDN_SECRET_KEY: Optional[str] = None
    CDN_BUCKET: Optional[str] = None
    CDN_REGION: str = "auto"
    CDN_PUBLIC_BASE_URL: Optional[str] = None
    CDN_UPLOAD_TIMEOUT: float = 60.0

    @property
    def DATABASE_URL(self) -> str:
        if self.SQLALCHEMY_DATABASE_URL:
            return self.SQLALCHEMY_DATABASE_URL
        return f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}@{self.POSTGRES_SERVER}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"

    @property
    def CDN_CONFIGURED(self) -> bool:
        return bool(self.CDN_BUCKET and self.CDN_ENDPOINT)

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"

@lru_cache()
def get_settings():
    return Settings()

settings = get_settings()
