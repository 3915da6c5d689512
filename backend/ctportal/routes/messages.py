"""
Course message API routes.
"""

from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ctportal.database import get_db
from ctportal.services.messages import (
    send_course_message, get_course_messages, get_student_messages,
    get_message_by_id, serialize_message
)
from ctportal.services.notifications import PushGateway, get_push_gateway

router = APIRouter()


class CourseMessageCreate(BaseModel):
    title: str = Field(..., min_length=1)
    message: str = Field(..., min_length=1)
    sender_email: str
    sender_name: str


@router.post("/api/courses/{course_id}/messages", status_code=201)
def post_message(course_id: str, request: CourseMessageCreate,
                 db: Session = Depends(get_db),
                 gateway: PushGateway = Depends(get_push_gateway)):
    msg = send_course_message(db, course_id, request.title, request.message,
                              request.sender_email, request.sender_name, gateway)
    if msg is None:
        raise HTTPException(status_code=400, detail="Message not sent: course missing, empty roster or invalid fields")
    return serialize_message(msg)


@router.get("/api/courses/{course_id}/messages")
def list_course_messages(course_id: str, limit: Optional[int] = Query(None, ge=1, le=100),
                         db: Session = Depends(get_db)):
    return {"data": [serialize_message(m) for m in get_course_messages(db, course_id, limit)]}


@router.get("/api/students/{email}/messages")
def list_student_messages(email: str, limit: int = Query(10, ge=1, le=100),
                          db: Session = Depends(get_db)):
    return {"data": [serialize_message(m) for m in get_student_messages(db, email, limit)]}


@router.get("/api/messages/{message_id}")
def read_message(message_id: str, db: Session = Depends(get_db)):
    msg = get_message_by_id(db, message_id)
    if msg is None:
        raise HTTPException(status_code=404, detail="Message not found")
    return serialize_message(msg)
