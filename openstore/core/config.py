# openstore/core/config.py
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # General
    ENV: str = "dev"
    APP_NAME: str = "OpenStore API"
    SERVER_URL: str = "http://localhost:8080"
    WORKER_ID: str = "1"

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = ""

    # Registry DB
    DB_URL: str = "sqlite:///./data/registry.db"

    # Artifact storage
    STORAGE_BACKEND: str = "local"
    BLOB_ROOT: str = "./data/blobs"
    BLOB_BASE_URL: str = "http://localhost:8080/blobs"
    S3_BUCKET: str = ""
    S3_PREFIX: str = ""
    S3_PUBLIC_URL: str = ""
    AWS_REGION: str = "us-east-1"

    # Scratch space: multipart uploads land in UPLOAD_DIR, icons are cached in DATA_DIR
    UPLOAD_DIR: str = "/tmp/openstore-uploads"
    DATA_DIR: str = "./data/icons"
    ICON_FETCH_TIMEOUT_S: float = 10.0

    # External tools
    CLICK_REVIEW_COMMAND: str = "click-review"
    SNAP_REVIEW_COMMAND: str = "snap-review"
    REVIEW_TIMEOUT_S: float = 120.0
    UNSQUASHFS_COMMAND: str = "unsquashfs"

    # Bootstrap administrator, created at startup when ADMIN_API_KEY is set
    ADMIN_USER_ID: str = "admin"
    ADMIN_NAME: str = "OpenStore Admin"
    ADMIN_API_KEY: str = ""

    # Misc
    MAX_PAGE_SIZE: int = 100

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

_settings: Settings | None = None

def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Drop the cached settings so the next get_settings() re-reads the environment."""
    global _settings
    _settings = None
