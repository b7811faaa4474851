"""
Centralised configuration: all tunables in one place.
Override via environment variables where noted.
"""

import os
from pathlib import Path

# ── Target ─────────────────────────────────────────────────────────
BASE_URL = os.getenv("BASE_URL", "http://localhost:5001").rstrip("/")

# ── Storage ────────────────────────────────────────────────────────
USERS_FIXTURE = Path(os.getenv(
    "USERS_FIXTURE",
    str(Path(__file__).resolve().parent.parent / "fixtures" / "users.json"),
))
REPORT_DIR = Path(os.getenv("REPORT_DIR", "security-reports"))

# ── Test accounts ──────────────────────────────────────────────────
DEFAULT_PASSWORD = "Password123!"
DEFAULT_USER = {"email": "test@example.com", "password": DEFAULT_PASSWORD}
RANDOM_SUFFIX_LENGTH = 6

# ── HTTP ───────────────────────────────────────────────────────────
REQUEST_TIMEOUT = float(os.getenv("REQUEST_TIMEOUT", "10.0"))   # seconds per request
RESPONSE_CAP = 10_000          # max chars kept per response in evidence

DEFAULT_HEADERS = {
    "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36",
    "Accept": "application/json, text/html;q=0.9, */*;q=0.8",
    "Accept-Language": "en-US,en;q=0.5",
}

# ── Authentication ─────────────────────────────────────────────────
# Comma-separated list, replaces the built-in login candidates when set
LOGIN_PATH_OVERRIDE = [
    p.strip() for p in os.getenv("SECURITY_LOGIN_PATH", "").split(",") if p.strip()
]
TOKEN_FIELD = os.getenv("SECURITY_TOKEN_FIELD", "token")
TOKEN_COOKIE = os.getenv("SECURITY_TOKEN_COOKIE", "token")
SKIP_SECURE_CHECK = os.getenv("SKIP_SECURE_CHECK", "").lower() in ("1", "true", "yes")

# ── Browser ────────────────────────────────────────────────────────
BROWSER_ENABLED = os.getenv("SECURITY_BROWSER", "1").lower() not in ("0", "false", "no")
BROWSER_TIMEOUT = 15_000       # ms, playwright page.goto timeout
FORM_SETTLE_MS = 1_000         # ms to wait after a UI form submit

# ── Seeding ────────────────────────────────────────────────────────
SEED_LIMIT = 10
SEED_DELAY = 0.2               # seconds between seeded registrations

# ── Probes ─────────────────────────────────────────────────────────
RATE_LIMIT_ATTEMPTS = int(os.getenv("RATE_LIMIT_ATTEMPTS", "30"))
LOCKOUT_ATTEMPTS = 10
ATTACKER_ORIGIN = "https://evil.example.com"
SCENARIO_TIMEOUT = float(os.getenv("SCENARIO_TIMEOUT", "120"))  # seconds per probe

# ── HTML parsing ───────────────────────────────────────────────────
HTML_PARSER = "lxml"
