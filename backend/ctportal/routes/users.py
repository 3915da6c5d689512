"""
User API routes - registration and push-token storage.
"""

from typing import Optional
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ctportal.database import get_db
from ctportal.services.users import register_user, get_user, serialize_user
from ctportal.services.notifications import save_push_token
from ctportal.logging_config import get_logger, log_with_context

router = APIRouter()
logger = get_logger("http")


# ── Pydantic schemas ─────────────────────────────────────────

class UserRegisterRequest(BaseModel):
    email: str = Field(..., description="Student or teacher email")
    name: str = Field("", description="Display name")
    batch: Optional[str] = None
    department: Optional[str] = None


class PushTokenRequest(BaseModel):
    email: str
    push_token: str = Field(..., min_length=1, description="Expo push token")


@router.post("/api/users", status_code=201)
def register(request: UserRegisterRequest, db: Session = Depends(get_db)):
    """Create or update a user; the email's role decides student vs teacher."""
    user = register_user(db, request.email, request.name, request.batch, request.department)
    if user is None:
        raise HTTPException(status_code=400, detail="Email does not belong to a student or teacher")
    return serialize_user(user)


@router.get("/api/users/{email}")
def read_user(email: str, db: Session = Depends(get_db)):
    user = get_user(db, email)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    return serialize_user(user)


@router.post("/api/users/push-token")
def register_push_token(request: PushTokenRequest, db: Session = Depends(get_db)):
    """Store the device push token used for notification fan-out."""
    if not save_push_token(db, request.email, request.push_token):
        raise HTTPException(status_code=404, detail="User not found or role not recognized")
    log_with_context(logger, "INFO", "Push token registered", context={"email": request.email})
    return {"message": "Push token saved"}
