"""
Course Portal Backend - FastAPI Application Entry Point.

This is the main application module that:
1. Initializes the FastAPI app with CORS middleware
2. Sets up structured JSON logging
3. Implements request ID middleware (X-Request-ID header)
4. Registers all API route handlers
5. Provides health check endpoint

The application follows a modular architecture:
- routes/: API endpoint handlers
- models/: SQLAlchemy ORM models
- services/: Business logic (marks, class tests, aggregation, notifications)
- logging_config.py: Structured logging configuration
- database.py: Database connection management
"""

import time
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from ctportal.logging_config import (
    setup_logging, get_logger, log_with_context,
    request_id_var, generate_request_id
)
from ctportal.routes import users, courses, class_tests, marks, messages
from ctportal.database import create_tables
from ctportal.config import DATABASE_URL

# Import all models so they are registered with Base.metadata
import ctportal.models  # noqa: F401

# ──────────────────────────────────────────────────────────────
# Initialize structured logging BEFORE anything else
# ──────────────────────────────────────────────────────────────
setup_logging()
logger = get_logger("http")

# Auto-create tables for SQLite local development
if DATABASE_URL.startswith("sqlite"):
    logger.info("Using SQLite - creating tables directly")
    create_tables()

app = FastAPI(
    title="Course Portal Backend",
    description=(
        "Backend for a teacher/student course portal: rosters, class-test grading, "
        "best-N aggregation, course messages and batched push-notification fan-out."
    ),
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

# ──────────────────────────────────────────────────────────────
# CORS Middleware
#
# The mobile client and the Expo dev web build call the API directly.
# In production, restrict origins to the deployed web domain.
# ──────────────────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID"]
)


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    """
    Generate a unique request ID for every HTTP request.

    The ID is stored in a context variable (attached to every log entry),
    returned in the X-Request-ID response header, and logged at request
    start and completion together with the latency.
    """
    req_id = request.headers.get("X-Request-ID") or generate_request_id()
    request_id_var.set(req_id)

    start_time = time.time()

    log_with_context(logger, "INFO",
        f"Request started: {request.method} {request.url.path}",
        context={"request_id": req_id},
        extra_data={
            "ip": request.client.host if request.client else "unknown",
            "user_agent": request.headers.get("user-agent", ""),
            "query_params": dict(request.query_params)
        })

    response = await call_next(request)

    duration_ms = (time.time() - start_time) * 1000
    response.headers["X-Request-ID"] = req_id

    log_with_context(logger, "INFO",
        f"Request completed: {request.method} {request.url.path} → {response.status_code}",
        context={"request_id": req_id},
        extra_data={
            "duration_ms": round(duration_ms, 2),
            "status_code": response.status_code
        })

    return response


# ──────────────────────────────────────────────────────────────
# Register API routes
# ──────────────────────────────────────────────────────────────
app.include_router(users.router, tags=["Users"])
app.include_router(courses.router, tags=["Courses"])
app.include_router(class_tests.router, tags=["Class Tests"])
app.include_router(marks.router, tags=["Marks"])
app.include_router(messages.router, tags=["Messages"])


@app.get("/health", tags=["Health"])
def health_check():
    """Health check endpoint for Docker health checks and monitoring."""
    return {"status": "healthy", "service": "course-portal-backend", "version": "1.0.0"}


@app.get("/", tags=["Root"])
def root():
    """Root endpoint with API information."""
    return {
        "service": "Course Portal Backend",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health",
        "endpoints": {
            "class_tests": "POST /api/courses/{course_id}/class-tests",
            "publish": "POST /api/class-tests/{ct_id}/publish",
            "marks_batch": "POST /api/class-tests/{ct_id}/marks/batch",
            "stats": "GET /api/class-tests/{ct_id}/stats",
            "best_average": "GET /api/courses/{course_id}/students/{email}/best-average",
            "messages": "POST /api/courses/{course_id}/messages",
            "roster": "POST /api/courses/{course_id}/roster"
        }
    }
