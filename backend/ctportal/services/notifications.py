"""
Notification Service - push-token registry and batched push fan-out.

Delivery pipeline:
1. Resolve each recipient email to a push token (role decides the table)
2. Emails without a token are skipped and counted as failed, no gateway call
3. Remaining messages go to the push gateway in chunks of PUSH_BATCH_SIZE,
   one HTTP request per chunk
4. Each returned ticket is classified ok / error
5. The caller gets a {"sent", "failed"} tally

Fan-out never raises: a gateway error fails the messages of that chunk and
the rest of the batch carries on. A ticket status of "ok" means the gateway
accepted the message, not that the device received it.

Payloads carry a "type" field ('ct_published', 'attendance_absent',
'course_message') that clients branch on.
"""

import time
from datetime import datetime, timezone
from typing import Dict, List, NamedTuple, Optional

import httpx
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ctportal.config import PUSH_GATEWAY_URL, PUSH_GATEWAY_TIMEOUT, PUSH_BATCH_SIZE
from ctportal.models.user import Student, Teacher
from ctportal.services.identity import Role, resolve_role, normalize_email
from ctportal.logging_config import get_logger, log_with_context

logger = get_logger("notify")

NOTIFICATION_CT_PUBLISHED = "ct_published"
NOTIFICATION_ATTENDANCE_ABSENT = "attendance_absent"
NOTIFICATION_COURSE_MESSAGE = "course_message"


class Envelope(NamedTuple):
    """One recipient and the notification addressed to them."""
    email: str
    title: str
    body: str
    data: dict


class Recipients(NamedTuple):
    tokens: List[str]
    missing: List[str]


# ──────────────────────────────────────────────────────────────
# Push gateway client
# ──────────────────────────────────────────────────────────────

class PushGateway:
    """
    HTTP client for the Expo push API.

    Each call to send() is one POST carrying a JSON array of messages and
    returns one ticket dict per message, in order.
    """

    HEADERS = {
        "Accept": "application/json",
        "Accept-Encoding": "gzip, deflate",
        "Content-Type": "application/json",
    }

    def __init__(self, url: str = PUSH_GATEWAY_URL, timeout: float = PUSH_GATEWAY_TIMEOUT,
                 batch_size: int = PUSH_BATCH_SIZE, transport: Optional[httpx.BaseTransport] = None):
        self.url = url
        self.timeout = timeout
        self.batch_size = max(1, batch_size)
        self.transport = transport

    def send(self, messages: List[dict]) -> List[dict]:
        """
        Submit messages in one request.

        Raises:
            httpx.HTTPError: transport failure or non-2xx response
            ValueError: response body is not JSON
        """
        with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
            resp = client.post(self.url, json=messages, headers=self.HEADERS)
            resp.raise_for_status()
            body = resp.json()

        data = body.get("data") if isinstance(body, dict) else None
        if isinstance(data, list):
            return data
        if isinstance(data, dict):
            return [data]
        return []


_default_gateway = PushGateway()


def get_push_gateway() -> PushGateway:
    """FastAPI dependency returning the process-wide gateway client."""
    return _default_gateway


def build_message(token: str, title: str, body: str, data: Optional[dict] = None) -> dict:
    return {
        "to": token,
        "sound": "default",
        "title": title,
        "body": body,
        "data": data or {},
    }


# ──────────────────────────────────────────────────────────────
# Token registry
# ──────────────────────────────────────────────────────────────

def _user_model_for(email: str):
    role = resolve_role(email)
    if role == Role.STUDENT:
        return Student
    if role == Role.TEACHER:
        return Teacher
    return None


def save_push_token(db: Session, user_email: str, push_token: str) -> bool:
    """Store a device push token on the student or teacher record."""
    email = normalize_email(user_email)
    if not email or not push_token:
        log_with_context(logger, "ERROR", "Missing email or push token")
        return False

    model = _user_model_for(email)
    if model is None:
        log_with_context(logger, "ERROR", "Invalid role for user", context={"email": email})
        return False

    try:
        user = db.get(model, email)
        if not user:
            log_with_context(logger, "ERROR", "User not found", context={"email": email})
            return False
        user.push_token = push_token
        user.push_token_updated_at = datetime.now(timezone.utc)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        log_with_context(logger, "ERROR", "Error saving push token: {}".format(e),
                         context={"email": email})
        return False

    log_with_context(logger, "INFO", "Push token saved to {}".format(model.__tablename__),
                     context={"email": email})
    return True


def get_user_push_token(db: Session, user_email: str) -> Optional[str]:
    """Push token of a user, or None when the user or token is missing."""
    email = normalize_email(user_email)
    model = _user_model_for(email) if email else None
    if model is None:
        log_with_context(logger, "WARNING", "Invalid role for user", context={"email": user_email})
        return None

    try:
        user = db.get(model, email)
    except SQLAlchemyError as e:
        log_with_context(logger, "ERROR", "Error getting push token: {}".format(e),
                         context={"email": email})
        return None

    if not user:
        log_with_context(logger, "WARNING", "User not found", context={"email": email})
        return None
    return user.push_token or None


def _resolve_tokens(db: Session, emails: List[str]) -> Dict[str, Optional[str]]:
    return {email: get_user_push_token(db, email) for email in emails}


def resolve_recipients(db: Session, emails: List[str]) -> Recipients:
    """
    Resolve push tokens for a list of emails.

    Emails without a token are skipped (not an error) and returned in
    `missing` so callers can count them.
    """
    tokens = []
    missing = []
    resolved = _resolve_tokens(db, emails)
    for email in emails:
        token = resolved.get(email)
        if token:
            tokens.append(token)
        else:
            missing.append(email)
            log_with_context(logger, "WARNING", "No push token found", context={"email": email})

    log_with_context(logger, "INFO",
        "Push token stats: {} found, {} missing out of {} users".format(
            len(tokens), len(missing), len(emails)),
        extra_data={"found": len(tokens), "missing": len(missing)})
    return Recipients(tokens=tokens, missing=missing)


# ──────────────────────────────────────────────────────────────
# Delivery
# ──────────────────────────────────────────────────────────────

def _deliver(gateway: PushGateway, messages: List[dict]) -> tuple:
    """Send messages chunk by chunk; returns (sent, failed)."""
    sent = 0
    failed = 0
    for start in range(0, len(messages), gateway.batch_size):
        chunk = messages[start:start + gateway.batch_size]
        try:
            tickets = gateway.send(chunk)
        except (httpx.HTTPError, ValueError) as e:
            failed += len(chunk)
            log_with_context(logger, "ERROR", "Push gateway request failed: {}".format(e),
                             extra_data={"chunk_size": len(chunk)})
            continue

        for ticket in tickets[:len(chunk)]:
            if isinstance(ticket, dict) and ticket.get("status") == "ok":
                sent += 1
            else:
                failed += 1
                log_with_context(logger, "WARNING", "Notification failed",
                                 extra_data={"ticket": ticket})
        # Messages the gateway returned no ticket for are not known to be accepted
        if len(tickets) < len(chunk):
            failed += len(chunk) - len(tickets)
    return sent, failed


def send_personalized(db: Session, envelopes: List[Envelope],
                      gateway: Optional[PushGateway] = None) -> dict:
    """
    Send an individually addressed notification to each envelope's email.

    Returns:
        {"sent": int, "failed": int}; emails with no token count as failed
    """
    start_time = time.time()
    gateway = gateway or get_push_gateway()

    try:
        tokens = _resolve_tokens(db, [env.email for env in envelopes])
        messages = []
        missing = 0
        for env in envelopes:
            token = tokens.get(env.email)
            if token:
                messages.append(build_message(token, env.title, env.body, env.data))
            else:
                missing += 1
                log_with_context(logger, "WARNING", "No push token found", context={"email": env.email})

        if not messages:
            log_with_context(logger, "WARNING",
                "No valid push tokens found - recipients may not have registered for notifications",
                extra_data={"recipients": len(envelopes)})
            return {"sent": 0, "failed": len(envelopes)}

        sent, failed = _deliver(gateway, messages)
        failed += missing
    except Exception as e:
        log_with_context(logger, "ERROR", "Error sending batch notifications: {}".format(e),
                         exc_info=True)
        return {"sent": 0, "failed": len(envelopes)}

    duration_ms = (time.time() - start_time) * 1000
    log_with_context(logger, "INFO",
        "Notifications sent: {} successful, {} failed".format(sent, failed),
        extra_data={"duration_ms": round(duration_ms, 2), "sent": sent, "failed": failed,
                    "without_token": missing})
    return {"sent": sent, "failed": failed}


def send_batch(db: Session, emails: List[str], title: str, body: str,
               data: Optional[dict] = None, gateway: Optional[PushGateway] = None) -> dict:
    """Send the same notification to many users; returns {"sent", "failed"}."""
    envelopes = [Envelope(email, title, body, data or {}) for email in emails]
    return send_personalized(db, envelopes, gateway)


def send_one(db: Session, email: str, title: str, body: str,
             data: Optional[dict] = None, gateway: Optional[PushGateway] = None) -> bool:
    """Send a notification to a single user; True when the gateway accepted it."""
    result = send_batch(db, [email], title, body, data, gateway)
    return result["sent"] == 1


# ──────────────────────────────────────────────────────────────
# Notification types
# ──────────────────────────────────────────────────────────────

def build_ct_result_body(ct_name: str, status: Optional[str] = None,
                         marks_obtained: Optional[float] = None,
                         total_marks: Optional[int] = None) -> str:
    body = 'Your result for "{}" has been published.'.format(ct_name)
    if status == "absent":
        body += " You were marked absent."
    elif marks_obtained is not None and total_marks is not None:
        body += " You scored {:g}/{}.".format(marks_obtained, total_marks)
    else:
        body += " Check the app to view your marks."
    return body


def notify_absent_students(db: Session, absent_student_emails: List[str], course_name: str,
                           date: datetime, gateway: Optional[PushGateway] = None) -> dict:
    """Alert students that they were marked absent on a date."""
    title = "Attendance Alert - {}".format(course_name)
    body = "You were marked absent on {}.".format(date.strftime("%d/%m/%Y"))
    return send_batch(db, absent_student_emails, title, body, {
        "type": NOTIFICATION_ATTENDANCE_ABSENT,
        "courseName": course_name,
        "date": date.isoformat(),
    }, gateway)


def notify_course_message(db: Session, student_emails: List[str], course_name: str,
                          message_title: str, message_body: str, course_id: str,
                          message_id: str, gateway: Optional[PushGateway] = None) -> dict:
    """Fan a new course message out to students."""
    title = "{} - {}".format(course_name, message_title)
    return send_batch(db, student_emails, title, message_body, {
        "type": NOTIFICATION_COURSE_MESSAGE,
        "courseName": course_name,
        "courseId": course_id,
        "messageId": message_id,
    }, gateway)
