import os
from pathlib import Path
from dotenv import load_dotenv

# Override=True so changes in backend/.env take effect on process reload (and not get
# stuck on old environment variables).
#
# For automated tests (SQLite), we need to prevent backend/.env from overriding the
# test DATABASE_URL. Set DISABLE_DOTENV=1 to skip loading .env.
if os.getenv("DISABLE_DOTENV") != "1":
    load_dotenv(override=True)


def _flag(name: str, default: str) -> bool:
    return (os.getenv(name, default) or default).strip() in {"1", "true", "True", "yes", "YES"}


_raw_database_url = (os.getenv("DATABASE_URL") or "").strip()
# Default to a local SQLite DB for dev. Similarity search falls back to in-process
# ranking there; point DATABASE_URL at PostgreSQL + pgvector for the real index.
_default_sqlite_path = (Path(__file__).resolve().parent.parent / "dev.db").as_posix()
DATABASE_URL = _raw_database_url or f"sqlite:///{_default_sqlite_path}"

# -------------------- Source feeds (SF open data) --------------------
TRUCKS_CSV_URL = os.getenv("TRUCKS_CSV_URL", "https://data.sfgov.org/api/views/rqzj-sfat/rows.csv")
SCHEDULES_CSV_URL = os.getenv("SCHEDULES_CSV_URL", "https://data.sfgov.org/api/views/jjew-r69b/rows.csv")
SOURCE_TIMEOUT_S = float(os.getenv("SOURCE_TIMEOUT_S", "60") or "60")

# Food tokens at or above this length are free-text noise, not menu items.
FOOD_NAME_MAX_LEN = int(os.getenv("FOOD_NAME_MAX_LEN", "32") or "32")

# -------------------- Embeddings --------------------
# embedefy: hosted API (needs EMBEDEFY_ACCESS_TOKEN); local: fastembed on CPU.
EMBEDDINGS_PROVIDER = (os.getenv("EMBEDDINGS_PROVIDER", "embedefy") or "embedefy").strip().lower()
EMBEDEFY_ACCESS_TOKEN = os.getenv("EMBEDEFY_ACCESS_TOKEN")
EMBEDEFY_BASE_URL = os.getenv("EMBEDEFY_BASE_URL", "https://api.embedefy.com")
EMBEDEFY_MODEL = os.getenv("EMBEDEFY_MODEL", "e5-small-v2")
EMBEDDINGS_MODEL = os.getenv("EMBEDDINGS_MODEL", "BAAI/bge-small-en-v1.5")
# Must match the foods.embedding column; changing it needs a schema rebuild.
EMBEDDING_DIM = int(os.getenv("EMBEDDING_DIM", "384") or "384")

# -------------------- Chat completion (Gemini) --------------------
GEMINI_API_KEY = os.getenv("GEMINI_API_KEY")
GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-2.0-flash")
GEMINI_BASE_URL = os.getenv("GEMINI_BASE_URL", "https://generativelanguage.googleapis.com")
GEMINI_API_VERSION = os.getenv("GEMINI_API_VERSION", "v1")

# Keep defaults tight so a query doesn't hang on transient provider failures.
AI_TIMEOUT_S = float(os.getenv("AI_TIMEOUT_S", "10") or "10")
AI_MAX_RETRIES = int(os.getenv("AI_MAX_RETRIES", "1") or "1")
AI_LOG_PAYLOADS = _flag("AI_LOG_PAYLOADS", "0")

# -------------------- Retrieval --------------------
SEARCH_TOP_K = int(os.getenv("SEARCH_TOP_K", "5") or "5")
APPROVED_STATUS = os.getenv("APPROVED_STATUS", "APPROVED")
APP_TIMEZONE = os.getenv("APP_TIMEZONE", "America/Los_Angeles")
