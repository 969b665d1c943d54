import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./slotbook.db")

# Security - CRITICAL: No default secret key in production
SECRET_KEY = os.getenv("SECRET_KEY")
if not SECRET_KEY:
    import warnings

    warnings.warn(
        "SECRET_KEY not set! Using insecure default - DO NOT USE IN PRODUCTION", RuntimeWarning, stacklevel=2
    )
    SECRET_KEY = "INSECURE-DEV-KEY-CHANGE-IN-PRODUCTION"  # noqa: S105 - Dev fallback only

# Fernet key for OAuth tokens at rest (generate with: python -c "from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())")
# Falls back to a key derived from SECRET_KEY
TOKEN_ENCRYPTION_KEY = os.getenv("TOKEN_ENCRYPTION_KEY")

# Google Calendar OAuth Configuration
GOOGLE_CLIENT_ID = os.getenv("GOOGLE_CLIENT_ID")
GOOGLE_CLIENT_SECRET = os.getenv("GOOGLE_CLIENT_SECRET")
GOOGLE_REDIRECT_URI = os.getenv("GOOGLE_REDIRECT_URI", "http://localhost:5173/integrations/google/callback")
GOOGLE_CALENDAR_ID = os.getenv("GOOGLE_CALENDAR_ID", "primary")
CALENDAR_TIMEZONE = os.getenv("CALENDAR_TIMEZONE", "UTC")

# Timeouts (seconds)
CALENDAR_HTTP_TIMEOUT = float(os.getenv("CALENDAR_HTTP_TIMEOUT", "10.0"))
BOOKING_DEADLINE_SECONDS = float(os.getenv("BOOKING_DEADLINE_SECONDS", "30.0"))
# Access tokens are treated as expired this long before their recorded expiry
TOKEN_EXPIRY_SKEW_SECONDS = int(os.getenv("TOKEN_EXPIRY_SKEW_SECONDS", "300"))

# Scheduling defaults
DEFAULT_TIME_GAP = int(os.getenv("DEFAULT_TIME_GAP", "30"))


@dataclass(frozen=True)
class GoogleOAuthSettings:
    """Provider configuration handed to the calendar client and booking service."""

    client_id: Optional[str]
    client_secret: Optional[str]
    redirect_uri: str
    calendar_id: str = "primary"
    timezone: str = "UTC"
    http_timeout: float = 10.0
    expiry_skew_seconds: int = 300
    token_url: str = "https://oauth2.googleapis.com/token"  # noqa: S105 - OAuth endpoint URL
    api_base_url: str = "https://www.googleapis.com/calendar/v3"

    @property
    def is_configured(self) -> bool:
        return bool(self.client_id and self.client_secret)


@lru_cache(maxsize=1)
def get_google_oauth_settings() -> GoogleOAuthSettings:
    return GoogleOAuthSettings(
        client_id=GOOGLE_CLIENT_ID,
        client_secret=GOOGLE_CLIENT_SECRET,
        redirect_uri=GOOGLE_REDIRECT_URI,
        calendar_id=GOOGLE_CALENDAR_ID,
        timezone=CALENDAR_TIMEZONE,
        http_timeout=CALENDAR_HTTP_TIMEOUT,
        expiry_skew_seconds=TOKEN_EXPIRY_SKEW_SECONDS,
    )
