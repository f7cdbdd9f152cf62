import uuid
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Database
    database_url: str = "sqlite:///./linkvault.db"

    # Security
    secret_key: str = Field(default_factory=lambda: str(uuid.uuid4()))
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 24 * 7

    # Admin account seeded at startup
    admin_email: str = "admin@linkvault.local"
    admin_password: str = "change-me-admin"
    admin_name: str = "Admin"

    # Shares
    base_url: str = "http://localhost:8000"
    default_expiry_minutes: int = 30
    max_file_size_mb: int = 20
    upload_dir: str = "uploads"

    # Expired share cleanup
    cleanup_enabled: bool = True
    cleanup_interval_seconds: float = 60
    cleanup_batch_size: int = 200

    log_level: str = "INFO"

    @property
    def max_file_size_bytes(self) -> int:
        return self.max_file_size_mb * 1024 * 1024


@lru_cache
def get_settings() -> Settings:
    return Settings()
