import os
from pathlib import Path

PACKAGE_DIR = Path(__file__).resolve().parent

# Local SQLite file unless a real database is configured
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./microfisc.db")

# Directory holding the rates_fr_<year>.yaml files
RATES_DIR = Path(os.getenv("MICROFISC_RATES_DIR", str(PACKAGE_DIR / "data")))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

DEFAULT_COMMUNE = os.getenv("DEFAULT_COMMUNE", "Paris")

_env_origins = os.getenv("ALLOWED_ORIGIN")
if _env_origins:
    ALLOWED_ORIGINS = [o.strip() for o in _env_origins.split(",") if o.strip()]
else:
    ALLOWED_ORIGINS = [
        "http://localhost:3000",
        "http://localhost:8000",
        "http://127.0.0.1:8000",
    ]


def get_cors_headers():
    """Standard CORS headers for all responses"""
    origin = ALLOWED_ORIGINS[0] if ALLOWED_ORIGINS else "*"
    return {
        "Access-Control-Allow-Origin": origin,
        "Access-Control-Allow-Credentials": "true",
        "Access-Control-Allow-Methods": "GET, POST, PUT, DELETE, OPTIONS",
        "Access-Control-Allow-Headers": "*"
    }
