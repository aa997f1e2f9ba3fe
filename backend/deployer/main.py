"""
FastAPI main application entry point.
"""
import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from fastapi import FastAPI, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from deployer.api.v1.router import api_router
from deployer.core.config import settings
from deployer.core.database import engine, ping_database
from deployer.core.exception_handlers import register_exception_handlers
from deployer.services.deployment.factory import build_orchestrator

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

# Create scheduler
scheduler = AsyncIOScheduler()

# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Challenge Deployer API for building and running CTF challenge containers",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/api/openapi.json",
)

# Register domain exception handlers
register_exception_handlers(app)

# When allow_credentials=True, origins must be specific (not ["*"])
cors_origins = settings.get_cors_origins()
app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=[
        "Content-Type",
        "Authorization",
        "X-API-Key",
        "Accept",
        "Origin",
        "X-Requested-With",
    ],
    max_age=600,  # Cache preflight requests for 10 minutes
)


@app.on_event("startup")
async def startup_event():
    """
    Startup event handler.
    """
    if await ping_database():
        logger.info("Database connection successful")
    else:
        logger.error("Database connection failed")

    orchestrator = build_orchestrator()
    app.state.orchestrator = orchestrator

    # Deployments left in building by a previous process can never finish
    try:
        await orchestrator.recover_stuck_deployments(max_age_minutes=0)
    except Exception as e:
        logger.error(f"Stuck deployment recovery failed: {e}")

    scheduler.add_job(
        orchestrator.recover_stuck_deployments,
        'interval',
        seconds=settings.STUCK_CHECK_INTERVAL,
    )
    scheduler.start()
    logger.info("Scheduler started with stuck deployment recovery job")


@app.on_event("shutdown")
async def shutdown_event():
    """
    Shutdown event handler.
    """
    scheduler.shutdown()
    await engine.dispose()
    logger.info("Application shutdown complete")


@app.get("/api/health", status_code=status.HTTP_200_OK)
async def health_check():
    """
    Health check endpoint.

    Returns:
        Health status and component checks
    """
    db_healthy = await ping_database()
    overall_status = "healthy" if db_healthy else "unhealthy"

    return JSONResponse(
        status_code=status.HTTP_200_OK if db_healthy else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "status": overall_status,
            "components": {
                "database": "healthy" if db_healthy else "unhealthy",
            },
            "version": settings.APP_VERSION,
        }
    )


@app.get("/api/v1/info", status_code=status.HTTP_200_OK)
async def info():
    """
    API information endpoint.

    Returns:
        API version and system information
    """
    return {
        "app_name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "api_version": "v1",
    }


# Include API v1 router
app.include_router(api_router, prefix="/api/v1")


# Root endpoint
@app.get("/", status_code=status.HTTP_200_OK)
async def root():
    """
    Root endpoint.

    Returns:
        Welcome message with API documentation link
    """
    return {
        "message": "Challenge Deployer API",
        "version": settings.APP_VERSION,
        "docs": "/docs",
        "health": "/api/health",
    }
