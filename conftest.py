import os

# Load .env.test for tests if present (e.g. to point TEST_DATABASE_URL at Postgres)
from dotenv import load_dotenv

env_test_path = os.path.join(os.path.dirname(__file__), ".env.test")
if os.path.exists(env_test_path):
    load_dotenv(env_test_path, override=True)

# Settings require a DATABASE_URL at import time; tests bind their own engine
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./market-test.db")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from libs.common.config import get_settings  # noqa: E402

# Clear cached settings to reload with new env vars
get_settings.cache_clear()
