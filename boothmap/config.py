import os


class Config:
    """Base configuration loaded from environment variables."""

    # --- General ---
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
    LOG_DIR = os.getenv("LOG_DIR", os.path.join(os.path.dirname(__file__), "..", "logs"))
    LOG_MAX_BYTES = int(os.getenv("LOG_MAX_BYTES", "1000000"))
    LOG_BACKUP_COUNT = int(os.getenv("LOG_BACKUP_COUNT", "3"))
    TZ = os.getenv("TZ", "Asia/Taipei")

    # --- Google Sheets source ---
    PUBLIC_CSV_URL = os.getenv("PUBLIC_CSV_URL", "")
    PUBLIC_SHEET_EDIT_URL = os.getenv("PUBLIC_SHEET_EDIT_URL", "")
    DEFAULT_GID = os.getenv("DEFAULT_GID", "0")
    UPSTREAM_TIMEOUT_SECONDS = float(os.getenv("UPSTREAM_TIMEOUT_SECONDS", "8"))
    DIAG_PREVIEW_CHARS = int(os.getenv("DIAG_PREVIEW_CHARS", "200"))

    # --- Cache ---
    CACHE_TTL_SECONDS = float(os.getenv("CACHE_TTL_SECONDS", "15"))
    CACHE_MAX_SLOTS = int(os.getenv("CACHE_MAX_SLOTS", "16"))

    # --- Misc ---
    DEBUG = os.getenv("FLASK_DEBUG", "False").lower() == "true"
