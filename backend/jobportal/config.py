"""
Runtime configuration read from environment variables.

All settings are resolved once at import time. Defaults target local
development (SQLite database, uploads next to the working directory).
"""

import os

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./jobportal.db")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# "production" hides raw error strings from 500 responses
APP_ENV = os.getenv("APP_ENV", "development").lower()
EXPOSE_ERROR_DETAILS = APP_ENV != "production"

CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

# ──────────────────────────────────────────────────────────────
# Uploaded answer files
# ──────────────────────────────────────────────────────────────
UPLOAD_DIR = os.getenv("UPLOAD_DIR", "./uploads/assessments")
MAX_UPLOAD_MB = int(os.getenv("MAX_UPLOAD_MB", "10"))
MAX_UPLOAD_BYTES = MAX_UPLOAD_MB * 1024 * 1024

ALLOWED_UPLOAD_TYPES = {
    "application/pdf",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "image/jpeg",
    "image/png",
}

# ──────────────────────────────────────────────────────────────
# Assessment defaults
# ──────────────────────────────────────────────────────────────
DEFAULT_ASSESSMENT_TYPE = "Technical"
DEFAULT_TIMER_MINUTES = 30
DEFAULT_PASSING_PERCENTAGE = 60
