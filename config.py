# config.py
import os

DATABASE_URL = os.getenv("DATABASE_URL") or "sqlite:///taskboard.db"

# Session tokens are signed with this key; override it outside development.
SECRET_KEY = os.getenv("TASKBOARD_SECRET_KEY") or "dev-insecure-secret"
SESSION_TTL_SECONDS = int(os.getenv("TASKBOARD_SESSION_TTL", "86400"))

DEBOUNCE_WINDOW_SECONDS = int(os.getenv("TASKBOARD_DEBOUNCE_MS", "500")) / 1000.0

LOG_LEVEL = os.getenv("TASKBOARD_LOG_LEVEL", "INFO")

INVITE_CODE_ATTEMPTS = 3
PASSWORD_HASH_ITERATIONS = int(os.getenv("TASKBOARD_HASH_ITERATIONS", "120000"))
