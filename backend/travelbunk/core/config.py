# backend/travelbunk/core/config.py
import os
from pathlib import Path
from dotenv import load_dotenv

# project root .env: backend/travelbunk/core/../../../.env
env_path = Path(__file__).resolve().parent.parent.parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

POSTGRES_USER = os.getenv("POSTGRES_USER")
POSTGRES_PASSWORD = os.getenv("POSTGRES_PASSWORD")
POSTGRES_HOST = os.getenv("POSTGRES_HOST", "db")
POSTGRES_PORT = os.getenv("POSTGRES_PORT", "5432")
POSTGRES_DB = os.getenv("POSTGRES_DB", "travel_bunk")

DATABASE_URL = os.getenv(
    "DATABASE_URL",
    f"postgresql+asyncpg://{POSTGRES_USER}:{POSTGRES_PASSWORD}@{POSTGRES_HOST}:{POSTGRES_PORT}/{POSTGRES_DB}",
)
SQL_ECHO = os.getenv("SQL_ECHO", "false").lower() == "true"

REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")
NOTIFICATION_CHANNEL_PREFIX = "notifications"

ALLOWED_ORIGINS = [origin.strip() for origin in os.getenv("ALLOWED_ORIGINS", "*").split(",")]

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# creates alice@x.com / bob@x.com on startup when set
SEED_DEMO_USERS = os.getenv("SEED_DEMO_USERS", "false").lower() == "true"
