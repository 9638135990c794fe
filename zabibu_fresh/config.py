import os
import logging
from dotenv import load_dotenv
from sqlalchemy import create_engine
from supabase import acreate_client, AsyncClient

load_dotenv()

SUPABASE_URL = os.getenv("SUPABASE_URL")
SUPABASE_ANON_KEY = os.getenv("SUPABASE_ANON_KEY")
DATABASE_URL = os.getenv("DATABASE_URL")

PRODUCT_IMAGES_BUCKET = os.getenv("PRODUCT_IMAGES_BUCKET", "product-images")
MAX_IMAGE_BYTES = int(os.getenv("MAX_IMAGE_BYTES", 10 * 1024 * 1024))
ALLOWED_IMAGE_TYPES = ["image/png", "image/jpeg", "image/webp"]

MESSAGE_MAX_LENGTH = int(os.getenv("MESSAGE_MAX_LENGTH", 500))
MIN_PASSWORD_LENGTH = 6

# Seconds to wait for the on-signup trigger before creating the profile row ourselves
PROFILE_TRIGGER_WAIT_SECONDS = float(os.getenv("PROFILE_TRIGGER_WAIT_SECONDS", 1.0))
PROFILE_CREATE_RETRIES = int(os.getenv("PROFILE_CREATE_RETRIES", 2))

PASSWORD_RESET_REDIRECT_URL = os.getenv("PASSWORD_RESET_REDIRECT_URL", "zabibufresh://reset-password")

ENVIRONMENT = os.getenv("ENVIRONMENT", "dev")
DEBUG = ENVIRONMENT == "dev"
LOG_LEVEL = os.getenv("LOG_LEVEL", "DEBUG" if DEBUG else "INFO")


_supabase_client = None


async def get_supabase_client() -> AsyncClient:
    global _supabase_client
    if _supabase_client is None:
        if not SUPABASE_URL or not SUPABASE_ANON_KEY:
            raise ValueError("SUPABASE_URL and SUPABASE_ANON_KEY must be set in environment variables")

        _supabase_client = await acreate_client(SUPABASE_URL, SUPABASE_ANON_KEY)

    return _supabase_client


if DATABASE_URL:
    sync_engine = create_engine(DATABASE_URL.replace("postgresql+asyncpg://", "postgresql://"))
else:
    sync_engine = None


def get_sync_engine():
    """Engine used by Alembic; the app itself only talks to PostgREST."""
    if sync_engine is None:
        raise Exception("Database not configured")
    return sync_engine


def configure_logging(level: str = None):
    logging.basicConfig(
        level=(level or LOG_LEVEL).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
