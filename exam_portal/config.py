"""Runtime configuration read from the environment (and an optional .env file)."""

import os

from dotenv import load_dotenv

load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./exam_portal.db")
SESSION_SECRET = os.getenv("SESSION_SECRET", "CHANGE_ME_TO_A_RANDOM_SECRET")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
SQL_ECHO = os.getenv("SQL_ECHO", "0") == "1"

# Seeded on startup when no admin exists yet
SEED_ADMIN_EMAIL = os.getenv("SEED_ADMIN_EMAIL", "admin@example.com")
SEED_ADMIN_PASSWORD = os.getenv("SEED_ADMIN_PASSWORD", "admin123")

# Percentage at or above which a result counts as a pass
PASS_MARK = int(os.getenv("PASS_MARK", "60"))
