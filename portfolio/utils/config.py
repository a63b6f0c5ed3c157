"""Environment-driven application settings."""

import os


class PortfolioConfig:
    """Application settings read from environment variables at import time."""

    SUPABASE_URL = os.environ.get("SUPABASE_URL", "")
    SUPABASE_SERVICE_ROLE_KEY = os.environ.get("SUPABASE_SERVICE_ROLE_KEY", "")

    # "supabase" in production, "memory" for local development and tests
    STORAGE_BACKEND = os.environ.get("STORAGE_BACKEND", "supabase").lower()
    STORAGE_TIMEOUT_SECONDS = float(os.environ.get("STORAGE_TIMEOUT_SECONDS", "10"))

    # Profile visibility lags identity creation in the hosted store
    PROFILE_LOAD_ATTEMPTS = int(os.environ.get("PROFILE_LOAD_ATTEMPTS", "3"))
    PROFILE_LOAD_DELAY_SECONDS = float(os.environ.get("PROFILE_LOAD_DELAY_SECONDS", "0.5"))

    APP_BASE_URL = os.environ.get("APP_BASE_URL", "http://localhost:5173").rstrip("/")
