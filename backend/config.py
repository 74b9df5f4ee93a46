"""Environment configuration for the image labeler backend."""

from __future__ import annotations

import logging
import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)


def read_int_env(name: str, default: int, min_value: int, max_value: int) -> int:
    """Return bounded integer env value with safe fallback."""
    raw = (os.getenv(name, str(default)) or "").strip()
    try:
        value = int(raw)
    except ValueError:
        logger.warning("Invalid integer for %s=%r. Using default=%s", name, raw, default)
        return default
    return max(min_value, min(max_value, value))


LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").strip().upper() or "INFO"
MAX_FILES = read_int_env("MAX_FILES", default=50, min_value=1, max_value=500)
MAX_FILE_SIZE_MB = read_int_env("MAX_FILE_SIZE_MB", default=20, min_value=1, max_value=200)
MAX_FILE_SIZE_BYTES = MAX_FILE_SIZE_MB * 1024 * 1024
JOB_WORKERS = read_int_env("JOB_WORKERS", default=4, min_value=1, max_value=64)
IMAGE_WORKERS = read_int_env("IMAGE_WORKERS", default=16, min_value=1, max_value=256)
STORAGE_DIR = Path(os.getenv("STORAGE_DIR", "storage").strip() or "storage").resolve()
S3_UPLOADS_BUCKET = os.getenv("S3_UPLOADS_BUCKET", "").strip()

origins_env = os.getenv("ALLOWED_ORIGINS", "*").strip()
ALLOWED_ORIGINS = [origin.strip() for origin in origins_env.split(",") if origin.strip()] or ["*"]
