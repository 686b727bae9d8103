# marketplace/config.py
# Environment-aware configuration for the listings marketplace backend

import os
from typing import Literal

# Environment detection
ENV: Literal["dev", "staging", "prod"] = os.environ.get("ENV", "dev")  # type: ignore
IS_DEV = (ENV == "dev")
IS_STAGING = (ENV == "staging")
IS_PROD = (ENV == "prod")

# JWT configuration (tokens are issued by the auth service, verified here)
SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key")
ALGORITHM = "HS256"
ACCESS_TOKEN_MINUTES = int(os.environ.get("ACCESS_TOKEN_MINUTES", "60"))

# Database configuration
# Relative paths resolve next to this package
DATABASE_PATH = os.environ.get("DATABASE_PATH", "marketplace.db")

# Subscription tiers: optional JSON file, built-in table when unset
TIERS_FILE = os.environ.get("TIERS_FILE", "").strip()

# Take a write lock before quota counts (off: check-then-write race is accepted)
QUOTA_STRICT_LOCKING = os.environ.get("QUOTA_STRICT_LOCKING", "false").lower() in ("1", "true", "yes")

# Page sizes per caller
SEARCH_PAGE_LIMIT = int(os.environ.get("SEARCH_PAGE_LIMIT", "20"))
DASHBOARD_PAGE_LIMIT = int(os.environ.get("DASHBOARD_PAGE_LIMIT", "10"))
FAVOURITES_PAGE_LIMIT = int(os.environ.get("FAVOURITES_PAGE_LIMIT", "12"))
MAX_PAGE_LIMIT = int(os.environ.get("MAX_PAGE_LIMIT", "100"))

# CORS origins (expand for staging/prod)
CORS_ORIGINS = [
    "http://localhost:3000",  # React dev server
    "http://127.0.0.1:3000",
]

if IS_STAGING or IS_PROD:
    extra_origins = os.environ.get("CORS_ORIGINS", "")
    if extra_origins:
        CORS_ORIGINS.extend(origin.strip() for origin in extra_origins.split(",") if origin.strip())

print(f"[CONFIG] Environment: {ENV}")
print(f"[CONFIG] Database: SQLite ({DATABASE_PATH})")
print(f"[CONFIG] Tiers: {TIERS_FILE or 'built-in defaults'}")
print(f"[CONFIG] Strict quota locking: {QUOTA_STRICT_LOCKING}")
