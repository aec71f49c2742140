"""
NaiyakSetu - FastAPI Application

Main entry point for the NaiyakSetu grievance portal backend.

Components:
- Credential store (accounts) and one-time codes → /auth
- Session tokens: signed JWTs, plus sandbox bundles outside production
- Complaint lifecycle engine → /complaints
- Maintenance hooks for external schedulers → /internal
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import __version__
from .config import settings
from .database import SessionLocal, init_db
from .errors import PortalError, StoreUnavailable
from .responses import error_response, success_response
from .routers import auth_router, complaints_router, internal_router
from .services.identity import OtpSweepScheduler

logging.basicConfig(
    level=getattr(logging, settings.log_level, logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize database and start the OTP sweep on startup."""
    init_db()
    sweeper = OtpSweepScheduler(SessionLocal, settings.otp_sweep_interval_seconds)
    sweeper.start()
    logger.info(f"NaiyakSetu started ({settings.env})")
    yield
    await sweeper.stop()


# Create FastAPI app
app = FastAPI(
    lifespan=lifespan,
    title="NaiyakSetu",
    description="""
    NaiyakSetu - Citizen Grievance Portal

    ## Flows
    1. **Sign in**: phone OTP, email/password, or a demo account (non-production)
    2. **Submit**: anonymous, pseudonymous or Aadhaar-verified complaints
    3. **Track**: public status and history by complaint id
    4. **Resolve**: admins move complaints through the lifecycle
    """,
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# ERROR HANDLERS
# =============================================================================

@app.exception_handler(PortalError)
async def portal_error_handler(request: Request, exc: PortalError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content=error_response(exc.message, **exc.details),
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = [
        {
            "field": ".".join(str(part) for part in err.get("loc", ()) if part != "body"),
            "message": err.get("msg", "Invalid value"),
        }
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content=error_response("Validation failed", errors=errors),
    )


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    if exc.status_code == 404 and message == "Not Found":
        message = "Route not found"
    return JSONResponse(
        status_code=exc.status_code,
        content=error_response(message),
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(SQLAlchemyError)
async def store_error_handler(request: Request, exc: SQLAlchemyError):
    logger.error(f"Store failure on {request.method} {request.url.path}: {type(exc).__name__}", exc_info=exc)
    error = StoreUnavailable()
    return JSONResponse(status_code=error.status_code, content=error_response(error.message))


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled error on {request.method} {request.url.path}", exc_info=exc)
    return JSONResponse(status_code=500, content=error_response("Internal server error"))


# Include routers
app.include_router(auth_router)
app.include_router(complaints_router)
app.include_router(internal_router)


@app.get("/")
async def root():
    """Root endpoint - API information."""
    return success_response(
        "NaiyakSetu API",
        name="NaiyakSetu",
        version=__version__,
        docs="/docs",
        environment=settings.env,
        sandboxAuth=settings.sandbox_enabled,
    )


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return success_response("OK", status="healthy", version=__version__)


# For running with: python -m naiyaksetu.main
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
