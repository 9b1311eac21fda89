from contextlib import asynccontextmanager
from typing import Annotated

from fastapi import Depends, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.middleware.cors import CORSMiddleware

from sgms.core.config import app_logger, settings
from sgms.core.db import dispose_db, init_db
from sgms.core.dependencies.db import get_async_session
from sgms.core.exceptions.handlers import (
    app_exception_handler,
    authentication_exception_handler,
    exception_schema,
    integrity_error_handler,
    request_validation_exception_handler,
    sqlalchemy_error_handler,
    too_many_requests_exception_handler,
    unhandled_exception_handler,
)
from sgms.core.exceptions.types import (
    AppException,
    AuthenticationException,
    TooManyRequestsException,
)
from sgms.core.routers import auth_router, users_router
from sgms.core.services.brevo import BrevoService
from sgms.core.services.cloudinary import CloudinaryService
from sgms.core.services.redis_service import RedisService
from sgms.core.services.template import Renderer
from sgms.infrastructure.scheduler import initialize_scheduler, scheduler


@asynccontextmanager
async def lifespan(app: FastAPI):
    app_logger.info("Starting application...")

    # Create tables
    app_logger.info("Initializing database...")
    await init_db()
    app_logger.info("Database initialized successfully.")

    # Redis is only needed for the shared rate-limit backend
    if settings.RATE_LIMIT_BACKEND == "redis":
        app_logger.info("Initializing Redis service...")
        await RedisService.init(settings.REDIS_URL)
        app_logger.info("Redis service initialized successfully.")

    # Initialize template renderer
    app_logger.info("Initializing template renderer...")
    Renderer.initialize(settings.TEMPLATE_DIR)
    app_logger.info("Template renderer initialized successfully.")

    # Initialize Brevo Service
    app_logger.info("Initializing Brevo service...")
    await BrevoService.init(
        api_key=settings.BREVO_API_KEY,
        sender_email=settings.BREVO_SENDER_EMAIL,
        sender_name=settings.BREVO_SENDER_NAME,
    )
    app_logger.info("Brevo service initialized successfully.")

    # Configure Cloudinary
    app_logger.info("Configuring Cloudinary...")
    CloudinaryService.init(
        cloud_name=settings.CLOUDINARY_CLOUD_NAME,
        api_key=settings.CLOUDINARY_API_KEY,
        api_secret=settings.CLOUDINARY_API_SECRET,
    )
    app_logger.info("Cloudinary configured successfully.")

    # Start the scheduler (only if enabled)
    if settings.ENABLE_SCHEDULER:
        app_logger.info("Starting scheduler...")
        scheduler.start()
        initialize_scheduler()  # Schedule jobs after starting the scheduler
        app_logger.info("Scheduler started successfully.")
    else:
        app_logger.info("Scheduler disabled via ENABLE_SCHEDULER setting.")

    yield

    app_logger.info("Shutting down application...")

    if settings.ENABLE_SCHEDULER and scheduler.running:
        app_logger.info("Stopping scheduler...")
        scheduler.shutdown()
        app_logger.info("Scheduler stopped successfully.")

    await BrevoService.aclose()
    await RedisService.aclose()
    await dispose_db()
    app_logger.info("Shutdown complete.")


app = FastAPI(
    lifespan=lifespan,
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description=settings.APP_DESCRIPTION,
    debug=settings.DEBUG,
    openapi_url="/openapi.json",
    docs_url="/docs",
    redoc_url="/redoc",
    responses=exception_schema,
)

# Register exception handlers (more specific first)
app.add_exception_handler(AuthenticationException, authentication_exception_handler)
app.add_exception_handler(TooManyRequestsException, too_many_requests_exception_handler)
app.add_exception_handler(AppException, app_exception_handler)
app.add_exception_handler(RequestValidationError, request_validation_exception_handler)
app.add_exception_handler(IntegrityError, integrity_error_handler)
app.add_exception_handler(SQLAlchemyError, sqlalchemy_error_handler)
# Generic fallback
app.add_exception_handler(Exception, unhandled_exception_handler)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ALLOW_ORIGINS,
    allow_credentials=settings.CORS_ALLOW_CREDENTIALS,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(
    auth_router, prefix=f"{settings.API_PREFIX}/auth", tags=["Authentication"]
)
app.include_router(users_router, prefix=f"{settings.API_PREFIX}/users", tags=["Users"])


@app.get("/", include_in_schema=False)
async def root(request: Request):
    base_url = str(request.base_url).rstrip("/")
    return {
        "message": f"Welcome to {settings.APP_NAME} API",
        "documentations": {
            "swagger": f"{base_url}/docs",
            "redoc": f"{base_url}/redoc",
        },
        "version": settings.APP_VERSION,
    }


@app.head("/health", include_in_schema=False)
@app.get("/health")
async def health_check(session: Annotated[AsyncSession, Depends(get_async_session)]):
    """
    Health check endpoint to verify if the API is running.

    Checks:
        - Database connectivity
        - Redis connectivity (only when the Redis rate-limit backend is active)
    """
    health_status = {
        "status": "ok",
        "checks": {
            "database": "ok",
        },
    }

    try:
        async with session.begin():
            result = await session.execute(text("SELECT 1"))
            if result.scalar() != 1:
                health_status["checks"]["database"] = "unhealthy"
                health_status["status"] = "degraded"
    except Exception as e:
        app_logger.error(f"Database health check failed: {e}")
        health_status["checks"]["database"] = "unhealthy"
        health_status["status"] = "degraded"

    if RedisService.is_connected():
        if await RedisService.ping():
            health_status["checks"]["redis"] = "ok"
        else:
            health_status["checks"]["redis"] = "unhealthy"
            health_status["status"] = "degraded"

    if health_status["status"] != "ok":
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content=health_status
        )
    return health_status
