from fastapi import FastAPI, APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse
from dotenv import load_dotenv
from starlette.middleware.cors import CORSMiddleware
import time
import traceback
from pathlib import Path
from contextlib import asynccontextmanager
from datetime import datetime, timezone

# Load environment variables first
ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

# Import configuration
from config import get_settings, get_cors_config, validate_environment  # noqa: E402

# Import logging and error tracking
from logging_config import setup_logging, get_logger, set_request_context, clear_request_context  # noqa: E402
from sentry_integration import init_sentry, capture_exception  # noqa: E402

# Import database and routers
from database import init_db  # noqa: E402
from routers import (  # noqa: E402
    auth_router, transactions_router, admin_router, audit_router
)
from reconciliation import reconciliation_router  # noqa: E402
from utils.validation_errors import LedgerError, ledger_error_handler  # noqa: E402

# Get settings
settings = get_settings()

# Configure structured logging
# Use JSON format in production, plain text in development
setup_logging(
    level=settings.LOG_LEVEL,
    json_format=settings.is_production,
    service_name="ledger-api"
)
logger = get_logger(__name__)

# Initialize Sentry error tracking
if settings.SENTRY_DSN:
    init_sentry(
        dsn=settings.SENTRY_DSN,
        environment=settings.ENVIRONMENT,
        release=settings.API_VERSION,
        traces_sample_rate=0.1 if settings.is_production else 0.0,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler"""
    # Startup
    logger.info("=" * 60)
    logger.info("Starting Ledger API...")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Debug Mode: {settings.debug_enabled}")
    logger.info("=" * 60)

    # Validate environment
    env_status = validate_environment()
    if not env_status["valid"]:
        for error in env_status["errors"]:
            logger.error(f"Configuration Error: {error}")
        if settings.is_production:
            raise RuntimeError("Cannot start in production with invalid configuration")

    for warning in env_status.get("warnings", []):
        logger.warning(f"Configuration Warning: {warning}")

    # Initialize database
    try:
        await init_db()
        logger.info("Database connection established")
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        raise

    logger.info("Ledger API started successfully")

    yield

    # Shutdown
    logger.info("Shutting down Ledger API...")


# Create the main app
app = FastAPI(
    title=settings.API_TITLE,
    description="""
    Bookkeeping backend: client transactions, dashboard totals and bank reconciliation.

    ## Features

    ### Authentication (/api/auth)
    - JWT login and registration
    - Roles: ADMIN, ACCOUNTANT

    ### Transactions (/api/transactions)
    - Manual entry, listing with filters, deletion (accountants)
    - Client list and dashboard totals
    - CSV import
    - Live reconciliation and CSV / spreadsheet / printable exports

    ### Reconciliation (/api/reconciliation)
    - Calculate and store reconciliation snapshots
    - Snapshot history

    ### Admin (/api/admin)
    - Users, all transactions, totals and audit logs

    ### Audit Logs (/api/audit-logs)
    - Audit trail with module and status per entry
    """,
    version=settings.API_VERSION,
    lifespan=lifespan,
    docs_url="/api/docs" if settings.debug_enabled else None,
    redoc_url="/api/redoc" if settings.debug_enabled else None,
)

# Create a router with the /api prefix
api_router = APIRouter(prefix="/api")


# ==================== HEALTH CHECK ENDPOINTS ====================

@api_router.get("/", tags=["Health"])
async def root():
    """Basic health check - returns 200 if service is running"""
    return {
        "message": "Ledger API",
        "status": "healthy",
        "version": settings.API_VERSION,
        "environment": settings.ENVIRONMENT,
    }


@api_router.get("/health", tags=["Health"])
async def health_check():
    """
    Detailed health check for load balancers and uptime monitors.

    Returns:
    - 200: All systems operational
    - 503: Database unavailable
    """
    health_status = {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": settings.API_VERSION,
        "environment": settings.ENVIRONMENT,
        "checks": {}
    }

    # Check database connection
    try:
        from database import engine
        from sqlalchemy import text

        async with engine.begin() as conn:
            result = await conn.execute(text("SELECT 1"))
            result.fetchone()

        health_status["checks"]["database"] = {
            "status": "connected",
            "type": engine.dialect.name
        }
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        health_status["status"] = "unhealthy"
        health_status["checks"]["database"] = {
            "status": "disconnected",
            "error": str(e)
        }

    # Check configuration
    env_status = validate_environment()
    health_status["checks"]["configuration"] = {
        "status": "valid" if env_status["valid"] else "invalid",
        "warnings": len(env_status.get("warnings", [])),
        "errors": len(env_status.get("errors", []))
    }

    # Return appropriate status code
    if health_status["status"] == "unhealthy":
        raise HTTPException(status_code=503, detail=health_status)

    return health_status


@api_router.get("/health/ready", tags=["Health"])
async def readiness_check():
    """
    Readiness probe.
    Returns 200 only when the service can accept traffic.
    """
    try:
        from database import engine
        from sqlalchemy import text

        async with engine.begin() as conn:
            await conn.execute(text("SELECT 1"))

        return {"status": "ready", "timestamp": datetime.now(timezone.utc).isoformat()}
    except Exception as e:
        raise HTTPException(status_code=503, detail={"status": "not_ready", "error": str(e)})


@api_router.get("/health/live", tags=["Health"])
async def liveness_check():
    """
    Liveness probe.
    Returns 200 if the process is running (doesn't check dependencies).
    """
    return {"status": "alive", "timestamp": datetime.now(timezone.utc).isoformat()}


@api_router.get("/config/status", tags=["Health"])
async def config_status():
    """
    Configuration status check (non-sensitive).
    Useful for debugging deployment issues.
    """
    env_status = validate_environment()

    return {
        "environment": settings.ENVIRONMENT,
        "debug": settings.debug_enabled,
        "cors_origins_count": len(settings.cors_origins_list),
        "configuration_valid": env_status["valid"],
        "warnings": env_status.get("warnings", []),
        "variables": env_status.get("variables", {}),
        # Don't expose actual errors in production
        "errors": env_status.get("errors", []) if not settings.is_production else ["Hidden in production"]
    }


# Include all routers
api_router.include_router(auth_router)  # Auth first for visibility
api_router.include_router(transactions_router)
api_router.include_router(reconciliation_router)
api_router.include_router(admin_router)
api_router.include_router(audit_router)

# Include the main router in the app
app.include_router(api_router)

# ==================== MIDDLEWARE ====================

# CORS middleware with production-safe configuration
cors_config = get_cors_config()
app.add_middleware(
    CORSMiddleware,
    **cors_config
)


# Request logging middleware
@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log all requests with timing information"""
    start_time = time.time()

    # Generate request ID
    request_id = request.headers.get("X-Request-ID", f"req-{int(start_time * 1000)}")
    set_request_context(request_id=request_id)

    if settings.debug_enabled:
        logger.debug(f"[{request_id}] {request.method} {request.url.path}")

    try:
        response = await call_next(request)

        # Calculate processing time
        process_time = time.time() - start_time

        # Add headers
        response.headers["X-Request-ID"] = request_id
        response.headers["X-Process-Time"] = str(round(process_time * 1000, 2))

        # Log response
        if settings.debug_enabled or response.status_code >= 400:
            logger.info(f"[{request_id}] {request.method} {request.url.path} -> {response.status_code} ({process_time:.3f}s)")

        return response
    except Exception as e:
        logger.error(f"[{request_id}] Request failed: {str(e)}")
        raise
    finally:
        clear_request_context()


# Validation, not-found and permission errors
app.add_exception_handler(LedgerError, ledger_error_handler)


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle uncaught exceptions"""
    logger.error(f"Unhandled exception: {exc}")
    capture_exception(exc, path=request.url.path, method=request.method)
    if settings.debug_enabled:
        logger.error(traceback.format_exc())

    # Don't expose internal errors in production
    if settings.is_production:
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"}
        )
    else:
        return JSONResponse(
            status_code=500,
            content={
                "detail": str(exc),
                "type": type(exc).__name__,
                "traceback": traceback.format_exc() if settings.debug_enabled else None
            }
        )

