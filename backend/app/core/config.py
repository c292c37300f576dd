# backend/app/core/config.py
import os
from pathlib import Path
from dotenv import load_dotenv

# backend/app/core/config.py -> project root .env
env_path = Path(__file__).resolve().parent.parent.parent.parent / ".env"
load_dotenv(dotenv_path=env_path)


def _get_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


# --- Database ---
POSTGRES_USER = os.getenv("POSTGRES_USER", "chat")
POSTGRES_PASSWORD = os.getenv("POSTGRES_PASSWORD", "chat")
POSTGRES_HOST = os.getenv("POSTGRES_HOST", "db")
POSTGRES_PORT = os.getenv("POSTGRES_PORT", "5432")
POSTGRES_DB = os.getenv("POSTGRES_DB", "chatapp")

DATABASE_URL = os.getenv(
    "DATABASE_URL",
    f"postgresql+asyncpg://{POSTGRES_USER}:{POSTGRES_PASSWORD}@{POSTGRES_HOST}:{POSTGRES_PORT}/{POSTGRES_DB}",
)
SQL_ECHO = _get_bool("SQL_ECHO", False)

# --- Redis ---
REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")
REDIS_ENABLED = _get_bool("REDIS_ENABLED", True)

# --- Auth ---
SECRET_KEY = os.getenv("SECRET_KEY", "your-secret-key-very-secret")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", str(60 * 24)))  # 1일

# --- Message encryption ---
ENCRYPTION_KEY = os.getenv("ENCRYPTION_KEY", "default-key-change-this")

# --- Realtime ---
TYPING_TIMEOUT_SECONDS = float(os.getenv("TYPING_TIMEOUT_SECONDS", "3"))
AWAY_TIMEOUT_SECONDS = float(os.getenv("AWAY_TIMEOUT_SECONDS", str(5 * 60)))
OFFLINE_GRACE_SECONDS = float(os.getenv("OFFLINE_GRACE_SECONDS", "2"))
PRESENCE_CACHE_TTL_SECONDS = int(os.getenv("PRESENCE_CACHE_TTL_SECONDS", "300"))

# --- Pagination ---
DEFAULT_PAGE_SIZE = int(os.getenv("DEFAULT_PAGE_SIZE", "50"))
MAX_PAGE_SIZE = int(os.getenv("MAX_PAGE_SIZE", "100"))

# --- HTTP ---
ALLOWED_ORIGINS = [origin.strip() for origin in os.getenv("ALLOWED_ORIGINS", "*").split(",")]

# --- Logging ---
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE = os.getenv("LOG_FILE")
