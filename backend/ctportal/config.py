"""
Runtime configuration read from environment variables.

All settings have local-development defaults so the service starts with
nothing but a SQLite file. Override them in the container environment.
"""

import os

# ──────────────────────────────────────────────────────────────
# Database
# ──────────────────────────────────────────────────────────────
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./course_portal.db")

# ──────────────────────────────────────────────────────────────
# Logging
# ──────────────────────────────────────────────────────────────
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# ──────────────────────────────────────────────────────────────
# Push gateway (Expo push API)
# ──────────────────────────────────────────────────────────────
PUSH_GATEWAY_URL = os.getenv("PUSH_GATEWAY_URL", "https://exp.host/--/api/v2/push/send")
PUSH_GATEWAY_TIMEOUT = float(os.getenv("PUSH_GATEWAY_TIMEOUT", "30"))
# Expo accepts at most 100 messages per request
PUSH_BATCH_SIZE = int(os.getenv("PUSH_BATCH_SIZE", "100"))

# ──────────────────────────────────────────────────────────────
# Identity rules
# ──────────────────────────────────────────────────────────────
TEACHER_EMAIL_DOMAIN = os.getenv("TEACHER_EMAIL_DOMAIN", "cuet.ac.bd").lower()
STUDENT_EMAIL_DOMAIN = os.getenv("STUDENT_EMAIL_DOMAIN", "cuet.ac.bd").lower()
TEACHER_EMAIL_ALLOWLIST = [
    e.strip().lower()
    for e in os.getenv("TEACHER_EMAIL_ALLOWLIST", "").split(",")
    if e.strip()
]
