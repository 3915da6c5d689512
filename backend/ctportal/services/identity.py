"""
Identity Service - classifies emails and translates placeholder addresses.

Implements:
1. Role classification (student / teacher / unknown) from a single classifier
2. Student ID extraction from the strict student email pattern
3. Temporary placeholder emails (student_<id>@temp.com) used by bulk rosters
4. Roster-derived lookup map (student_id -> real email) and recipient
   translation for notification fan-out

Classification policy: a student is ONLY an address matching
u<7 digits>@student.<domain>. A teacher is an address ending in
@<teacher domain> or an explicitly allow-listed address. Everything else
(including malformed addresses under the student subdomain) is UNKNOWN.

All functions are pure and never raise; malformed input yields None/UNKNOWN.
"""

import re
import enum
from typing import Dict, Iterable, List, Optional

from ctportal.config import (
    STUDENT_EMAIL_DOMAIN, TEACHER_EMAIL_DOMAIN, TEACHER_EMAIL_ALLOWLIST
)

TEMP_EMAIL_DOMAIN = "temp.com"

_STUDENT_EMAIL_RE = re.compile(
    r"^u(\d{7})@student\." + re.escape(STUDENT_EMAIL_DOMAIN) + r"$"
)
_TEMP_EMAIL_RE = re.compile(r"^student_(\d+)@" + re.escape(TEMP_EMAIL_DOMAIN) + r"$")


class Role(str, enum.Enum):
    STUDENT = "student"
    TEACHER = "teacher"
    UNKNOWN = "none"


def normalize_email(email) -> Optional[str]:
    """Strip and lowercase an email; None for empty or non-string input."""
    if not email or not isinstance(email, str):
        return None
    email = email.strip().lower()
    return email or None


def extract_student_id(email) -> Optional[int]:
    """
    Parse the 7-digit student number from a student email.

    Examples:
        "u2104101@student.cuet.ac.bd" → 2104101
        "random@gmail.com" → None
    """
    normalized = normalize_email(email)
    if not normalized:
        return None
    match = _STUDENT_EMAIL_RE.match(normalized)
    if not match:
        return None
    return int(match.group(1))


def resolve_role(email) -> Role:
    """Classify an email address into exactly one Role."""
    normalized = normalize_email(email)
    if not normalized:
        return Role.UNKNOWN

    if extract_student_id(normalized) is not None:
        return Role.STUDENT

    if normalized in TEACHER_EMAIL_ALLOWLIST or normalized.endswith("@" + TEACHER_EMAIL_DOMAIN):
        return Role.TEACHER

    return Role.UNKNOWN


# ──────────────────────────────────────────────────────────────
# Temporary placeholder emails
# ──────────────────────────────────────────────────────────────

def make_temp_email(student_id: int) -> str:
    return f"student_{int(student_id)}@{TEMP_EMAIL_DOMAIN}"


def is_temp_email(email) -> bool:
    normalized = normalize_email(email)
    return bool(normalized) and normalized.endswith("@" + TEMP_EMAIL_DOMAIN)


def extract_temp_student_id(email) -> Optional[int]:
    """student_2104101@temp.com → 2104101; None if not a placeholder."""
    normalized = normalize_email(email)
    if not normalized:
        return None
    match = _TEMP_EMAIL_RE.match(normalized)
    if not match:
        return None
    return int(match.group(1))


# ──────────────────────────────────────────────────────────────
# Roster join
# ──────────────────────────────────────────────────────────────

def build_roster_map(enrollments: Iterable) -> Dict[int, str]:
    """
    Build the student_id -> real email lookup table from roster entries.

    Accepts Enrollment rows (or anything with student_id / student_email
    attributes). Placeholder emails are never entered into the map.
    """
    roster_map = {}
    for enrollment in enrollments:
        email = normalize_email(getattr(enrollment, "student_email", None))
        student_id = getattr(enrollment, "student_id", None)
        if email and student_id is not None and not is_temp_email(email):
            roster_map[int(student_id)] = email
    return roster_map


def translate_email(email, roster_map: Dict[int, str]) -> Optional[str]:
    """
    Translate a recipient email through the roster map.

    Real emails pass through unchanged (normalized). Placeholder emails
    resolve to the mapped real email, or None when the roster has none.
    """
    normalized = normalize_email(email)
    if not normalized:
        return None
    if not is_temp_email(normalized):
        return normalized
    temp_id = extract_temp_student_id(normalized)
    if temp_id is None:
        return None
    return roster_map.get(temp_id)


def translate_recipients(emails: Iterable, roster_map: Dict[int, str]) -> List[str]:
    """Map-filter: translate every email and drop the ones left unresolved."""
    translated = []
    for email in emails:
        real = translate_email(email, roster_map)
        if real:
            translated.append(real)
    return translated
