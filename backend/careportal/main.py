from contextlib import asynccontextmanager
import logging
import uuid

from fastapi import FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from careportal.api import assignments, audit, dashboard, health, patients, records, staff
from careportal.config import settings
from careportal.database import close_db, get_db_context, init_db
from careportal.errors import PortalError
from careportal.logging import configure_logging, request_id_var
from careportal.services.audit import AuditRecorder, SQLAuditSink

configure_logging()
logger = logging.getLogger("careportal")


def build_audit_recorder() -> AuditRecorder:
    return AuditRecorder(
        SQLAuditSink(get_db_context),
        max_queue_size=settings.audit_queue_max_size,
        default_limit=settings.audit_query_default_limit,
        max_limit=settings.audit_query_max_limit,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown events."""
    logger.info("Starting CarePortal API")
    try:
        await init_db()
        logger.info("Database initialized")
    except Exception:
        logger.exception("Failed to initialize database")
        raise

    recorder = getattr(app.state, "audit_recorder", None)
    if recorder is None:
        recorder = build_audit_recorder()
        app.state.audit_recorder = recorder
    await recorder.start()

    yield

    logger.info("Shutting down CarePortal API")
    try:
        await recorder.stop()
    except Exception:
        logger.exception("Error draining audit queue")
    try:
        await close_db()
        logger.info("Database connections closed")
    except Exception:
        logger.exception("Error closing database")
    logger.info("CarePortal API shutdown complete")


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="""
    # CarePortal API

    Staff portal for patient management.

    ## Features

    - **Patients** - Register, browse and remove patients
    - **Medical Records** - Append-only clinical history
    - **Assignments** - Link doctors and nurses to patients
    - **Roles** - Admin-managed staff roles
    - **Audit Log** - Every action on patient data is recorded
    """,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

@app.middleware("http")
async def add_request_id(request: Request, call_next):
    request_id = request.headers.get("X-Request-Id", str(uuid.uuid4()))
    request_id_var.set(request_id)
    response = await call_next(request)
    response.headers.setdefault("X-Request-Id", request_id)
    return response

@app.middleware("http")
async def add_security_headers(request: Request, call_next):
    response = await call_next(request)
    response.headers.setdefault("X-Content-Type-Options", "nosniff")
    response.headers.setdefault("X-Frame-Options", "DENY")
    response.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
    response.headers.setdefault(
        "Content-Security-Policy",
        "default-src 'none'; frame-ancestors 'none'; base-uri 'none'",
    )
    if not settings.debug:
        response.headers.setdefault(
            "Strict-Transport-Security",
            "max-age=63072000; includeSubDomains; preload",
        )
    return response

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
)

app.include_router(health.router)
app.include_router(staff.router, prefix=settings.api_prefix)
app.include_router(dashboard.router, prefix=settings.api_prefix)
app.include_router(patients.router, prefix=settings.api_prefix)
app.include_router(records.router, prefix=settings.api_prefix)
app.include_router(assignments.router, prefix=settings.api_prefix)
app.include_router(audit.router, prefix=settings.api_prefix)


def _error_response(status_code: int, message, error_type: str, **extra) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "error": {
                "message": message,
                "status_code": status_code,
                "type": error_type,
                **extra,
                "request_id": request_id_var.get(),
            }
        },
    )


@app.exception_handler(PortalError)
async def portal_error_handler(_request: Request, exc: PortalError):
    return _error_response(exc.status_code, exc.detail, exc.error_type)


@app.exception_handler(HTTPException)
async def http_exception_handler(_request: Request, exc: HTTPException):
    response = _error_response(exc.status_code, exc.detail, "http_error")
    if exc.headers:
        response.headers.update(exc.headers)
    return response


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(_request: Request, exc: RequestValidationError):
    return _error_response(
        422, "Validation error", "validation_error", details=jsonable_encoder(exc.errors())
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(_request: Request, _exc: Exception):
    logger.exception("Unhandled error")
    return _error_response(500, "Internal server error", "server_error")
