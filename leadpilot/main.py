"""LeadPilot Backend -- FastAPI Application Entry Point."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError

from leadpilot.api.v1.router import api_v1_router
from leadpilot.config import settings
from leadpilot.core.exceptions import LeadPilotError, QuotaError
from leadpilot.db.session import async_session_factory, engine, init_models
from leadpilot.schemas.common import error_envelope
from leadpilot.scrapers.factory import get_adapter_factory
from leadpilot.scrapers.register_adapters import register_all_adapters
from leadpilot.scrapers.scheduler import AutomationScheduler
from leadpilot.services.automation_service import get_automation_orchestrator
from leadpilot.services.cache_service import get_content_cache
from leadpilot.services.llm_client import get_llm_client
from leadpilot.services.rate_limiter import get_rate_limiter

# Configure logging
logging.basicConfig(
    level=logging.INFO if settings.DEBUG else logging.WARNING,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Global scheduler instance
scheduler: Optional[AutomationScheduler] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: startup and shutdown events."""
    global scheduler

    # Startup
    logger.info("Starting LeadPilot API server...")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Debug mode: {settings.DEBUG}")

    # Auto-create tables on startup (safe for fresh deployments)
    try:
        await init_models(engine)
        logger.info("Database tables verified/created")
    except Exception as e:
        logger.error(f"Database init failed: {e}", exc_info=True)

    logger.info("Registering source adapters...")
    register_all_adapters()

    cache = get_content_cache()
    rate_limiter = get_rate_limiter()

    # Start automation scheduler (only in non-test environments)
    if settings.SCHEDULER_ENABLED and settings.ENVIRONMENT != "test":
        logger.info("Initializing automation scheduler...")
        scheduler = AutomationScheduler(
            async_session_factory,
            orchestrator=get_automation_orchestrator(),
            cache=cache,
            rate_limiter=rate_limiter,
        )
        scheduler.start()
    else:
        logger.info("Scheduler disabled")

    if await cache.health_check():
        logger.info(f"Content cache ready ({settings.CACHE_BACKEND})")
    else:
        logger.warning("Content cache unreachable (requests will run uncached)")

    yield

    # Shutdown
    logger.info("Shutting down LeadPilot API server...")

    if scheduler:
        logger.info("Stopping automation scheduler...")
        scheduler.stop()
        scheduler = None

    try:
        await cache.close()
        await rate_limiter.close()
        await get_llm_client().close()
        await get_adapter_factory().close()
        logger.info("External connections closed")
    except Exception as e:
        logger.warning(f"Error closing connections: {e}")


app = FastAPI(
    title="LeadPilot API",
    description="Real-estate prospecting automation and AI listing content API",
    version="0.1.0",
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url="/redoc" if settings.DEBUG else None,
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.FRONTEND_URL, "http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(LeadPilotError)
async def leadpilot_error_handler(request: Request, exc: LeadPilotError):
    """Render every application error as the standard envelope."""
    headers = {}
    if isinstance(exc, QuotaError) and exc.retry_after > 0:
        headers["Retry-After"] = str(exc.retry_after)
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content=error_envelope(exc.message),
        headers=headers or None,
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    return _validation_response(exc.errors())


@app.exception_handler(PydanticValidationError)
async def pydantic_validation_handler(request: Request, exc: PydanticValidationError):
    return _validation_response(exc.errors())


def _validation_response(errors: list) -> JSONResponse:
    first = errors[0] if errors else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg", "Invalid request")
    return JSONResponse(
        status_code=400,
        content=error_envelope(
            f"{location}: {message}" if location else message,
            details=[{"loc": list(e.get("loc", ())), "msg": e.get("msg")} for e in errors],
        ),
    )


# Register API v1 router
app.include_router(api_v1_router, prefix="/api/v1")


@app.get("/")
async def root():
    """Root endpoint with API information."""
    return {
        "name": "LeadPilot API",
        "version": "0.1.0",
        "docs": "/docs" if settings.DEBUG else None,
        "health": "/api/v1/health",
    }
