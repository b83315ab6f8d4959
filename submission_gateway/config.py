import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./submissions.db")

# Frontend base URL
FRONTEND_URL = os.getenv("FRONTEND_URL", "https://cleanupbros.com.au")

# CORS / origin allowlist shared by CORSMiddleware and the security gate
ALLOWED_ORIGINS = [
    origin.strip()
    for origin in os.getenv(
        "ALLOWED_ORIGINS",
        "https://cleanupbros.com.au,https://www.cleanupbros.com.au,http://localhost:3000,http://localhost:5173",
    ).split(",")
    if origin.strip()
]

# Security gate toggles
REQUIRE_ORIGIN = os.getenv("REQUIRE_ORIGIN", "true").lower() == "true"
ALLOW_BOTS = os.getenv("ALLOW_BOTS", "false").lower() == "true"
SECURITY_HEADERS_ENABLED = os.getenv("SECURITY_HEADERS_ENABLED", "true").lower() == "true"

# Rate limiting backend: "memory" (single instance) or "redis" (shared)
RATE_LIMIT_BACKEND = os.getenv("RATE_LIMIT_BACKEND", "memory").lower()


class RateLimitRule(BaseModel):
    model_config = ConfigDict(frozen=True)

    max_requests: int
    window_ms: int


MINUTE_MS = 60 * 1000
HOUR_MS = 60 * MINUTE_MS
DAY_MS = 24 * HOUR_MS

RATE_LIMITS: dict[str, RateLimitRule] = {
    "quote": RateLimitRule(max_requests=5, window_ms=HOUR_MS),  # 5 per hour
    "job-application": RateLimitRule(max_requests=3, window_ms=DAY_MS),  # 3 per day
    "feedback": RateLimitRule(max_requests=5, window_ms=HOUR_MS),  # 5 per hour
    "payment-link": RateLimitRule(max_requests=10, window_ms=HOUR_MS),
    "notify": RateLimitRule(max_requests=50, window_ms=HOUR_MS),
    "default": RateLimitRule(max_requests=30, window_ms=MINUTE_MS),  # 30 per minute
}

# Quarantine durations applied by the security gate
BOT_BLOCK_MS = int(os.getenv("BOT_BLOCK_MS", str(HOUR_MS)))
SUSPICIOUS_BLOCK_MS = int(os.getenv("SUSPICIOUS_BLOCK_MS", str(DAY_MS)))

# Max length of any sanitized string field on public submissions
SANITIZE_MAX_LENGTH = int(os.getenv("SANITIZE_MAX_LENGTH", "5000"))

# Admin actions (approve / complete / review) are guarded by a shared secret
ADMIN_API_SECRET = os.getenv("ADMIN_API_SECRET")

# Telegram team channel
TELEGRAM_BOT_TOKEN = os.getenv("TELEGRAM_BOT_TOKEN")
TELEGRAM_CHAT_ID = os.getenv("TELEGRAM_CHAT_ID")

# Twilio SMS (admin alerts)
TWILIO_ACCOUNT_SID = os.getenv("TWILIO_ACCOUNT_SID")
TWILIO_AUTH_TOKEN = os.getenv("TWILIO_AUTH_TOKEN")
TWILIO_PHONE_NUMBER = os.getenv("TWILIO_PHONE_NUMBER")
ADMIN_PHONE = os.getenv("ADMIN_PHONE")

# n8n automation webhooks
N8N_WEBHOOK_BASE = os.getenv("N8N_WEBHOOK_BASE", "https://nioctibinu.online/webhook")
N8N_WEBHOOK_SECRET = os.getenv("N8N_WEBHOOK_SECRET", "")
N8N_WEBHOOK_URLS = {
    "residential-quote": os.getenv(
        "N8N_RESIDENTIAL_WEBHOOK", f"{N8N_WEBHOOK_BASE}/residential-quote"
    ),
    "commercial-quote": os.getenv(
        "N8N_COMMERCIAL_WEBHOOK", f"{N8N_WEBHOOK_BASE}/commercial-quote"
    ),
    "airbnb-quote": os.getenv("N8N_AIRBNB_WEBHOOK", f"{N8N_WEBHOOK_BASE}/airbnb-quote"),
    "job-application": os.getenv("N8N_JOB_WEBHOOK", f"{N8N_WEBHOOK_BASE}/job-application"),
    "feedback": os.getenv("N8N_FEEDBACK_WEBHOOK", f"{N8N_WEBHOOK_BASE}/client-feedback"),
}

# Resend Email Configuration
RESEND_API_KEY = os.getenv("RESEND_API_KEY")
EMAIL_FROM_ADDRESS = os.getenv(
    "EMAIL_FROM_ADDRESS", "Clean Up Bros <hello@cleanupbros.com.au>"
)

# Google Calendar (offline refresh token for the business calendar)
GOOGLE_CLIENT_ID = os.getenv("GOOGLE_CLIENT_ID")
GOOGLE_CLIENT_SECRET = os.getenv("GOOGLE_CLIENT_SECRET")
GOOGLE_REFRESH_TOKEN = os.getenv("GOOGLE_REFRESH_TOKEN")
GOOGLE_CALENDAR_ID = os.getenv("GOOGLE_CALENDAR_ID", "primary")
BUSINESS_TIMEZONE = os.getenv("BUSINESS_TIMEZONE", "Australia/Sydney")

# Square
SQUARE_ENVIRONMENT = os.getenv("SQUARE_ENVIRONMENT", "sandbox")  # sandbox or production
SQUARE_ACCESS_TOKEN = os.getenv("SQUARE_ACCESS_TOKEN")
SQUARE_LOCATION_ID = os.getenv("SQUARE_LOCATION_ID")
SQUARE_CURRENCY = os.getenv("SQUARE_CURRENCY", "AUD")

# Review links used in the post-completion email
GOOGLE_REVIEW_URL = os.getenv("GOOGLE_REVIEW_URL", "https://g.page/r/cleanupbros/review")
FACEBOOK_REVIEW_URL = os.getenv("FACEBOOK_REVIEW_URL", "https://facebook.com/cleanupbros/reviews")
