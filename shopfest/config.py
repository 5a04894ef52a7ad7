import os

# ----------------------------
# Config & Constants
# ----------------------------
DATABASE_URL = os.environ.get("DATABASE_URL", "sqlite:///./shopfest.db")

SESSION_SECRET = os.environ.get("SESSION_SECRET", "dev-secret-change-me")

# 'simple' -> one credential pair from the environment
# 'db'     -> admin_users / admin_roles tables
ADMIN_AUTH_MODE = os.environ.get("ADMIN_AUTH_MODE", "simple").lower()
ADMIN_EMAIL = os.environ.get("ADMIN_EMAIL", "")
ADMIN_PASSWORD = os.environ.get("ADMIN_PASSWORD", "")

LOCALES = ("en", "vi")
DEFAULT_LOCALE = os.environ.get("DEFAULT_LOCALE", "vi")

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

SITE_NAME = os.environ.get("SITE_NAME", "AQUA VN")
