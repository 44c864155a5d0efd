"""
Job Portal Assessment Service - FastAPI Application Entry Point.

This is the main application module that:
1. Initializes the FastAPI app with CORS middleware
2. Sets up structured JSON logging
3. Implements request ID middleware (X-Request-ID header)
4. Maps service errors to {"success": false, "message": ...} responses
5. Registers the employer and candidate route handlers

The application follows a modular architecture:
- routes/: API endpoint handlers
- models/: SQLAlchemy ORM models
- services/: Business logic (assessment definitions, attempt lifecycle, scoring)
- logging_config.py: Structured logging configuration
- database.py: Database connection management
"""

import time
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from jobportal.config import CORS_ORIGINS, EXPOSE_ERROR_DETAILS
from jobportal.errors import PortalError
from jobportal.logging_config import (
    setup_logging, get_logger, log_with_context,
    request_id_var, generate_request_id
)
from jobportal.routes import employer, candidate
from jobportal.database import DATABASE_URL, create_tables

# Import all models so they are registered with Base.metadata
import jobportal.models  # noqa: F401

setup_logging()
logger = get_logger("http")

if DATABASE_URL.startswith("sqlite"):
    logger.info("Using SQLite - creating tables directly")
    create_tables()

app = FastAPI(
    title="Job Portal Assessment Service",
    description=(
        "Timed online assessments for job applications: employers author "
        "quizzes, candidates take them with proctoring-style violation logging, "
        "and results flow back onto the application."
    ),
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID"]
)


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    """
    Tag every request with a UUID, expose it in the X-Request-ID response
    header and log request start/completion with latency.
    """
    req_id = generate_request_id()
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
# Error responses
#
# Every rejected call answers {"success": false, "message": ...} so the
# UI can show the message directly.
# ──────────────────────────────────────────────────────────────
@app.exception_handler(PortalError)
async def portal_error_handler(request: Request, exc: PortalError):
    log_with_context(logger, "WARNING",
        f"{type(exc).__name__}: {exc.message}",
        extra_data={"path": request.url.path, "status_code": exc.status_code})
    return JSONResponse(status_code=exc.status_code,
                        content={"success": False, "message": exc.message})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    message = "Invalid request"
    if errors:
        first = errors[0]
        field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{field}: {first.get('msg')}" if field else first.get("msg", message)
    log_with_context(logger, "WARNING", f"Request validation failed: {message}",
                     extra_data={"path": request.url.path})
    return JSONResponse(status_code=400, content={"success": False, "message": message})


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    log_with_context(logger, "ERROR",
        f"Unhandled error on {request.method} {request.url.path}: {exc}",
        exc_info=True)
    content = {"success": False, "message": "Something went wrong. Please try again."}
    if EXPOSE_ERROR_DETAILS:
        content["error"] = str(exc)
    return JSONResponse(status_code=500, content=content)


app.include_router(employer.router, tags=["Employer Assessments"])
app.include_router(candidate.router, tags=["Candidate Assessments"])


@app.get("/health", tags=["Health"])
def health_check():
    """Health check endpoint for Docker health checks and monitoring."""
    return {"status": "healthy", "service": "jobportal-assessments", "version": "1.0.0"}


@app.get("/", tags=["Root"])
def root():
    """Root endpoint with API information."""
    return {
        "service": "Job Portal Assessment Service",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health",
        "endpoints": {
            "create_assessment": "POST /api/employer/assessments",
            "list_assessments": "GET /api/employer/assessments",
            "assessment_results": "GET /api/employer/assessments/{id}/results",
            "attempt_detail": "GET /api/employer/assessments/attempts/{attempt_id}",
            "available": "GET /api/candidate/assessments/available",
            "start": "POST /api/candidate/assessments/start",
            "answer": "POST /api/candidate/assessments/answer",
            "upload_answer": "POST /api/candidate/assessments/upload-answer",
            "violation": "POST /api/candidate/assessments/violation",
            "submit": "POST /api/candidate/assessments/submit",
            "result": "GET /api/candidate/assessments/result/{attempt_id}"
        }
    }
