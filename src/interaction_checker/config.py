"""Configuration for the interaction checker.

Loads settings from environment variables (via a .env file or the system
environment). Every setting has a default so the package can be imported
and tested without any environment at all.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env file if it exists (it won't exist in CI or Docker, that's fine)
_env_path = Path(__file__).resolve().parent.parent.parent / ".env"
load_dotenv(_env_path)

# --- Interaction-resolution backend ---
# The REST API that owns the medication/food/complementary tables and
# resolves interactions for a set of ids (POST /interactions/check).
BACKEND_BASE_URL: str = os.getenv("CHECKER_BACKEND_URL", "http://127.0.0.1:8000/api")

# Seconds before an interaction check is treated as failed.
CHECK_TIMEOUT_SECONDS: float = float(os.getenv("CHECKER_CHECK_TIMEOUT", "10"))

# --- Search index (Typesense) ---
# Typo-tolerant index used for search-as-you-type suggestions.
SEARCH_BASE_URL: str = os.getenv("TYPESENSE_URL", "http://localhost:8108")
SEARCH_API_KEY: str = os.getenv("TYPESENSE_API_KEY", "")
SEARCH_TIMEOUT_SECONDS: float = float(os.getenv("CHECKER_SEARCH_TIMEOUT", "5"))

# Suggestions are capped at one page; shorter queries never hit the index.
SEARCH_PAGE_SIZE: int = int(os.getenv("CHECKER_SEARCH_PAGE_SIZE", "10"))
SEARCH_MIN_QUERY_LENGTH: int = int(os.getenv("CHECKER_SEARCH_MIN_LENGTH", "2"))

# Input must be idle this long before a query is issued.
SEARCH_DEBOUNCE_SECONDS: float = int(os.getenv("CHECKER_SEARCH_DEBOUNCE_MS", "300")) / 1000

# --- Client-local session state ---
# Where the auth token and admin flag are persisted between runs.
SESSION_FILE: Path = Path(
    os.getenv("CHECKER_SESSION_FILE", str(Path.home() / ".interaction_checker" / "session.json"))
).expanduser()

# Server-side checker sessions (app.py) expire after this much idle time.
SESSION_TTL_MINUTES: int = int(os.getenv("CHECKER_SESSION_TTL_MINUTES", "120"))

# --- Frontend ---
# Where the Streamlit frontend reaches the FastAPI service.
CHECKER_API_URL: str = os.getenv("CHECKER_API_URL", "http://localhost:8000")
