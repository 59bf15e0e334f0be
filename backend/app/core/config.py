"""Application configuration settings.

All configuration values are loaded from environment variables (.env file).
No sensitive values should be hardcoded here.
"""

from typing import Optional
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    PROJECT_NAME: str = "Video Transcode API"
    VERSION: str = "0.1.0"
    API_V1_PREFIX: str = "/api/v1"
    DEBUG: bool = False

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = True

    # Database (optional, enables metadata registration of finished outputs)
    DATABASE_URL: Optional[str] = None

    # CORS
    CORS_ORIGINS: list[str] = []

    # Encoder
    FFMPEG_PATH: str = "ffmpeg"
    FFPROBE_PATH: str = "ffprobe"
    TRANSCODE_WORK_DIR: str = "./storage/work"
    TRANSCODE_PRESET: str = "veryfast"
    TRANSCODE_CRF: int = 23
    TRANSCODE_AUDIO_BITRATE: str = "128k"
    TRANSCODE_DEFAULT_RESOLUTIONS: list[str] = ["1080p", "720p", "480p", "360p"]

    # Finished job results are kept this long for polling clients
    TRANSCODE_RESULT_RETENTION_SECONDS: int = 3600

    # Uploads
    UPLOAD_ROOT: str = "./storage/uploads"
    UPLOAD_MAX_BYTES: int = 100_000_000

    # Storage Configuration
    # STORAGE_BACKEND: local, s3, minio
    STORAGE_BACKEND: str = "local"

    # Local Storage (when STORAGE_BACKEND=local)
    LOCAL_STORAGE_PATH: str = "./storage/artifacts"

    # S3/MinIO/Compatible Storage (when STORAGE_BACKEND=s3 or minio)
    STORAGE_BUCKET: str = ""
    STORAGE_REGION: str = ""
    STORAGE_ACCESS_KEY: str = ""
    STORAGE_SECRET_KEY: str = ""
    STORAGE_ENDPOINT_URL: Optional[str] = None  # Required for MinIO
    STORAGE_USE_SSL: bool = True

    # CDN Configuration (optional, for any backend)
    CDN_DOMAIN: Optional[str] = None

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"


settings = Settings()
