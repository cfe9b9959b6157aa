"""
Centralised configuration constants and environment helpers.
"""

import os
import sys
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# ── Backend ──────────────────────────────────────────────────────────
API_BASE_URL = os.getenv("MEDCV_API_URL", "http://localhost:3000/api/v1")
REQUEST_TIMEOUT = float(os.getenv("MEDCV_TIMEOUT", "15"))

# ── Persisted session ────────────────────────────────────────────────
SESSION_FILE = Path(
    os.getenv("MEDCV_SESSION_FILE", str(Path.home() / ".medcv" / "session.json"))
)
TOKEN_SLOT = "authToken"
IDENTITY_SLOT = "userData"

# ── Listing / confirmation ───────────────────────────────────────────
CONFIRM_WORD = "confirm"
ALL_CATEGORIES = "all"
MAX_PREVIEW_ROWS = 20


def get_env(name: str) -> str:
    """Return an environment variable or exit with an error message."""
    value = os.getenv(name)
    if not value:
        print(f"ERROR: env var {name} is not set", file=sys.stderr)
        sys.exit(1)
    return value
