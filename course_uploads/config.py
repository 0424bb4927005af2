import dataclasses

import dotenv

from course_uploads.utils import env
from course_uploads.utils import split_csv


dotenv.load_dotenv()


@dataclasses.dataclass
class Config:
    """Application configuration settings."""

    # Database Configuration
    database_url: str = env("DATABASE_URL")

    # Logging
    log_level: str = env("LOG_LEVEL:INFO")
    loki_url: str = env("LOKI_URL:", convert=str)
    loki_enabled: bool = env("LOKI_ENABLED:false", convert=lambda x: x.lower() == "true")

    # Server Configuration
    host: str = env("HOST:0.0.0.0")
    port: int = env("PORT:8000", convert=int)
    environment: str = env("ENVIRONMENT")
    debug: bool = env("DEBUG:false", convert=lambda x: x.lower() == "true")
    enable_api_docs: bool = env("ENABLE_API_DOCS:false", convert=lambda x: x.lower() == "true")

    # Object storage
    aws_region: str = env("AWS_REGION:us-east-1")
    aws_access_key_id: str = env("AWS_ACCESS_KEY_ID:")
    aws_secret_access_key: str = env("AWS_SECRET_ACCESS_KEY:")
    aws_endpoint_url: str = env("AWS_ENDPOINT_URL:")
    s3_bucket: str = env("AWS_S3_BUCKET_NAME")
    # When empty, public URLs use the virtual-hosted AWS form
    public_base_url: str = env("PUBLIC_BASE_URL:")
    upload_folder: str = env("VIDEO_UPLOAD_FOLDER:courses/videos")

    # Upload policy
    allowed_video_mime_types: tuple[str, ...] = env(
        "ALLOWED_VIDEO_MIME_TYPES:video/mp4,video/webm,video/ogg,video/quicktime,video/x-msvideo,video/x-matroska",
        convert=split_csv,
    )
    max_video_file_size: int = env("MAX_VIDEO_FILE_SIZE:5368709120", convert=int)  # 5 GiB
    min_part_size: int = env("MIN_PART_SIZE:5242880", convert=int)  # 5 MiB
    max_total_parts: int = env("MAX_TOTAL_PARTS:10000", convert=int)
    part_url_ttl_seconds: int = env("PART_URL_TTL_SECONDS:900", convert=int)
    session_ttl_seconds: int = env("UPLOAD_SESSION_TTL_SECONDS:86400", convert=int)  # 24h
    detect_duration_from_metadata: bool = env(
        "DETECT_DURATION_FROM_METADATA:true", convert=lambda x: x.lower() == "true"
    )

    # Session reaper
    reaper_sleep_seconds: int = env("REAPER_SLEEP_SECONDS:300", convert=int)
    reaper_batch_size: int = env("REAPER_BATCH_SIZE:100", convert=int)


def get_config() -> Config:
    """Get application configuration."""
    cfg = Config()

    env_value = getattr(cfg, "environment", None)
    if not env_value or not env_value.strip():
        raise ValueError("ENVIRONMENT variable is required but not set or empty")

    if not cfg.allowed_video_mime_types:
        raise ValueError("ALLOWED_VIDEO_MIME_TYPES must list at least one MIME type")

    if cfg.min_part_size <= 0 or cfg.max_video_file_size < cfg.min_part_size:
        raise ValueError("MIN_PART_SIZE must be positive and not larger than MAX_VIDEO_FILE_SIZE")

    # Normalize folder (no leading/trailing slashes)
    object.__setattr__(cfg, "upload_folder", cfg.upload_folder.strip().strip("/") or "courses/videos")
    object.__setattr__(cfg, "public_base_url", cfg.public_base_url.rstrip("/"))

    return cfg
