import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./fieldops.db")

# Security - CRITICAL: No default secret key in production
SECRET_KEY = os.getenv("SECRET_KEY")
if not SECRET_KEY:
    import warnings

    warnings.warn(
        "SECRET_KEY not set! Using insecure default - DO NOT USE IN PRODUCTION", RuntimeWarning, stacklevel=2
    )
    SECRET_KEY = "INSECURE-DEV-KEY-CHANGE-IN-PRODUCTION"  # noqa: S105 - Dev fallback only

# Bearer tokens issued by the main web app (HS256)
JWT_SECRET = os.getenv("JWT_SECRET", SECRET_KEY)
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")

# Frontend base URL for redirects
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:3000").rstrip("/")

# Xero OAuth Configuration
_REQUIRED_XERO_VARS = ("XERO_CLIENT_ID", "XERO_CLIENT_SECRET", "XERO_REDIRECT_URI")
_missing = [name for name in _REQUIRED_XERO_VARS if not os.getenv(name)]
if _missing:
    raise RuntimeError(f"Missing required environment variables: {', '.join(_missing)}")

XERO_CLIENT_ID = os.getenv("XERO_CLIENT_ID")
XERO_CLIENT_SECRET = os.getenv("XERO_CLIENT_SECRET")
XERO_REDIRECT_URI = os.getenv("XERO_REDIRECT_URI")
XERO_SCOPES = os.getenv(
    "XERO_SCOPES",
    "openid profile email offline_access accounting.transactions accounting.contacts "
    "accounting.settings accounting.reports.read",
).split()

# Sync tuning
XERO_SYNC_STATUSES = [
    s.strip() for s in os.getenv("XERO_SYNC_STATUSES", "SUBMITTED,AUTHORISED").split(",") if s.strip()
]
XERO_SYNC_CONCURRENCY = int(os.getenv("XERO_SYNC_CONCURRENCY", "4"))
XERO_PAGE_DELAY_SECONDS = float(os.getenv("XERO_PAGE_DELAY_SECONDS", "1.0"))  # rate limit courtesy
XERO_HTTP_TIMEOUT = float(os.getenv("XERO_HTTP_TIMEOUT", "30"))
XERO_STATE_TTL_SECONDS = int(os.getenv("XERO_STATE_TTL_SECONDS", "600"))

# Legacy token files from the previous deployment (read once, never written)
XERO_TOKEN_FILE = os.getenv("XERO_TOKEN_FILE", str(Path(__file__).resolve().parent.parent / "tokens" / "xero-token.json"))
XERO_TENANT_FILE = os.getenv(
    "XERO_TENANT_FILE", str(Path(__file__).resolve().parent.parent / "tokens" / "xero-tenant.json")
)

# CORS
ALLOWED_ORIGINS = [
    o.strip() for o in os.getenv("ALLOWED_ORIGINS", "http://localhost:3000,http://localhost:5173").split(",") if o.strip()
]
