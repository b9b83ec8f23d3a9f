"""
Central configuration — reads environment variables and provides defaults.
"""

import os
from dotenv import load_dotenv

load_dotenv()

# ── Workflow API (Dify) ──────────────────────────────────────────────────────
# Both are required by the relay; they are never sent to the browser.
DIFY_API_URL: str = os.getenv("DIFY_API_URL", "")
DIFY_API_KEY: str = os.getenv("DIFY_API_KEY", "")
WORKFLOW_TIMEOUT: float = float(os.getenv("WORKFLOW_TIMEOUT", "60"))

# ── Relay ────────────────────────────────────────────────────────────────────
BACKEND_URL: str = os.getenv("BACKEND_URL", "http://localhost:8000")
PROCESS_PATH: str = "/api/process"
DEFAULT_USER_ID: str = os.getenv("DEFAULT_USER_ID", "user-12345")

# ── Uploads ───────────────────────────────────────────────────────────────────
MAX_FILE_SIZE: int = 15 * 1024 * 1024
ALLOWED_TYPES: tuple[str, ...] = (
    "application/pdf",
    "image/jpeg",
    "image/jpg",
    "image/png",
    "image/gif",
    "image/webp",
    "image/svg+xml",
)
FALLBACK_FILENAME: str = "renamed_file.pdf"

# ── Batch pacing (seconds between submissions) ───────────────────────────────
REQUEST_INTERVAL: float = float(os.getenv("REQUEST_INTERVAL", "0.5"))

# ── Logging ───────────────────────────────────────────────────────────────────
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
