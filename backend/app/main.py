"""
Complaint Desk - FastAPI Application

Main entry point for the Complaint Desk backend.

Architecture:
- ComplaintStore: complaints with compare-and-update
- HistoryLedger: append-only transition log
- WorkloadIndex / AssignmentEngine: who works on what
- LifecycleStateMachine: the only path by which status changes
"""
import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .routers import auth_router, complaints_router, admin_router, scheduler_router
from .database import init_db
from .services.complaints import (
    ComplaintError,
    ConflictError,
    IllegalTransitionError,
    InvalidAssigneeError,
    NoEligibleStaffError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# Domain error -> HTTP status
ERROR_STATUS = {
    NotFoundError: 404,
    IllegalTransitionError: 400,
    ConflictError: 409,
    InvalidAssigneeError: 400,
    NoEligibleStaffError: 400,
    ValidationError: 422,
    PermissionDeniedError: 403,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize database on startup."""
    init_db()
    yield

# Create FastAPI app
app = FastAPI(
    lifespan=lifespan,
    title="Complaint Desk",
    description="""
    Complaint Desk - Complaint Lifecycle and Assignment Service

    Clients file complaints against projects, support staff resolve them,
    admins oversee and rebalance the work.

    ## Lifecycle
    PENDING → IN_PROGRESS → RESOLVED → CLOSED, with WITHDRAWN for
    complaints pulled before work starts and REJECT sending a resolution
    back to IN_PROGRESS.

    ## Key Principles
    - Every status change goes through the state machine
    - Stale writes fail with 409 and must be retried by the caller
    - History is append-only
    - Auto-assignment picks the least-loaded eligible staff member
    """,
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(auth_router)
app.include_router(complaints_router)
app.include_router(admin_router)
app.include_router(scheduler_router)


@app.exception_handler(ComplaintError)
async def complaint_error_handler(request: Request, exc: ComplaintError):
    """Map domain errors to HTTP responses."""
    status_code = next(
        (code for error_type, code in ERROR_STATUS.items() if isinstance(exc, error_type)),
        400,
    )
    body = {"detail": str(exc), "error": type(exc).__name__}

    if isinstance(exc, IllegalTransitionError):
        body["current_status"] = exc.current_status.value
        body["target_status"] = exc.target_status.value if exc.target_status else None
        body["allowed"] = [s.value for s in exc.allowed]
    elif isinstance(exc, ConflictError):
        body["expected_status"] = exc.expected_status.value
        body["actual_status"] = exc.actual_status.value if exc.actual_status else None
    elif isinstance(exc, ValidationError):
        body["field"] = exc.field_name
    elif isinstance(exc, PermissionDeniedError):
        body["operation"] = exc.operation
        body["role"] = exc.role.value

    logger.info(f"{request.method} {request.url.path} -> {status_code} {body['error']}: {exc}")
    return JSONResponse(status_code=status_code, content=body)


@app.get("/")
async def root():
    """Root endpoint - API information."""
    return {
        "name": "Complaint Desk",
        "version": "1.0.0",
        "description": "Complaint lifecycle and assignment service",
        "docs": "/docs",
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "version": "1.0.0"}


# For running with: python -m app.main
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8001)
