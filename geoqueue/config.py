import os


class Config:
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret")
    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URL", "sqlite:///dev.db")
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Streamed result files can be large (3MF / gcode)
    MAX_CONTENT_LENGTH = int(os.getenv("MAX_CONTENT_LENGTH", 512 * 1024 * 1024))

    # Timezone used for operator-facing timestamps
    APP_TZ = os.getenv("APP_TZ", "UTC")

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

    # Storage
    STORAGE_PROVIDER = os.getenv("STORAGE_PROVIDER", "local").lower()
    LOCAL_STORAGE_DIR = os.getenv("LOCAL_STORAGE_DIR", ".blob-storage")
    BLOB_URL_EXPIRES = int(os.getenv("BLOB_URL_EXPIRES", 3600))

    # R2 (S3)
    R2_ENDPOINT = os.getenv("R2_ENDPOINT")
    R2_ACCESS_KEY = os.getenv("R2_ACCESS_KEY")
    R2_SECRET_KEY = os.getenv("R2_SECRET_KEY")
    R2_BUCKET = os.getenv("R2_BUCKET")
    R2_PUBLIC_BASE_URL = os.getenv("R2_PUBLIC_BASE_URL")  # optional

    # Queue
    LEGACY_FILE_MAX_BYTES = int(os.getenv("LEGACY_FILE_MAX_BYTES", 10 * 1024 * 1024))
    PROCESSING_LOG_MAX_CHARS = int(os.getenv("PROCESSING_LOG_MAX_CHARS", 100_000))
    SHORT_ID_MAX_ATTEMPTS = int(os.getenv("SHORT_ID_MAX_ATTEMPTS", 10))
    CLAIM_MAX_ATTEMPTS = int(os.getenv("CLAIM_MAX_ATTEMPTS", 5))

    # Processor health / metrics
    PROCESSOR_HEALTHY_SECONDS = int(os.getenv("PROCESSOR_HEALTHY_SECONDS", 60))
    STALE_JOB_MINUTES = int(os.getenv("STALE_JOB_MINUTES", 10))

    # Print progress events (SSE)
    PROGRESS_HEARTBEAT_SECONDS = int(os.getenv("PROGRESS_HEARTBEAT_SECONDS", 30))
    PROGRESS_SUBSCRIBER_BACKLOG = int(os.getenv("PROGRESS_SUBSCRIBER_BACKLOG", 100))
