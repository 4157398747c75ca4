"""
Nursery Backend - FastAPI Application

Order & payment reconciliation for the plant nursery storefront:
checkout pricing, Stripe payment intents and webhooks, order status and
refunds, and customer push notifications.
"""
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import logging

from .config import settings
from .exceptions import NurseryError
from .db.init_db import AsyncSessionLocal, initialize_database
from .db.seed import seed_demo_catalog
from .services.scheduler import start_scheduler, shutdown_scheduler
from .api.checkout import router as checkout_router
from .api.webhooks import router as webhooks_router
from .api.orders import router as orders_router


# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

API_VERSION = "0.1.0"

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Credentials": "true",
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    - Startup: create tables, seed the demo catalog, start the pending-order sweep
    - Shutdown: stop the sweep
    """
    # Startup
    logger.info("Starting nursery backend server...")
    logger.info(f"Demo mode: {settings.demo_mode}")

    try:
        await initialize_database()
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        raise

    if settings.demo_mode:
        async with AsyncSessionLocal() as db:
            await seed_demo_catalog(db)

    if settings.scheduler_enabled:
        try:
            start_scheduler()
            logger.info("APScheduler started for pending-order sweep")
        except Exception as e:
            logger.error(f"Failed to start scheduler: {e}")
            if not settings.demo_mode:
                raise
            logger.warning("Continuing without scheduler in demo mode")

    logger.info("Server startup complete")

    yield

    # Shutdown
    logger.info("Shutting down nursery backend server...")

    if settings.scheduler_enabled:
        try:
            shutdown_scheduler(wait=True)
            logger.info("Scheduler shutdown complete")
        except Exception as e:
            logger.error(f"Error during scheduler shutdown: {e}")


# Initialize FastAPI application
app = FastAPI(
    title="Nursery Orders API",
    description="Checkout, payment reconciliation and order fulfillment",
    version=API_VERSION,
    lifespan=lifespan,
)


# Configure CORS middleware for the mobile and admin apps
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(NurseryError)
async def nursery_error_handler(request: Request, exc: NurseryError):
    """
    Render pipeline errors in the standard error format.

    The HTTP status comes from the exception class (400, 404 or 502).
    """
    logger.warning(
        f"Request error: {exc.error_code} - {exc.message}",
        extra={"details": exc.details}
    )

    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict(),
        headers=CORS_HEADERS
    )


@app.exception_handler(Exception)
async def general_error_handler(request: Request, exc: Exception):
    """
    Catch-all handler for unexpected errors.

    Logs full exception for debugging but returns generic message to client.
    A 500 on the webhook route makes the gateway redeliver the event.
    """
    logger.error(f"Unexpected error: {str(exc)}", exc_info=True)

    return JSONResponse(
        status_code=500,
        content={
            "error_code": "internal_error",
            "message": "An unexpected error occurred",
            "details": {"error_type": type(exc).__name__} if settings.demo_mode else {}
        },
        headers=CORS_HEADERS
    )


# Health check endpoint
@app.get("/api/health")
async def health_check():
    """
    Health check endpoint for monitoring and load balancers.

    Returns:
        Server status and version information
    """
    return {
        "status": "healthy",
        "version": API_VERSION,
        "demo_mode": settings.demo_mode,
        "scheduler_enabled": settings.scheduler_enabled,
    }


# Include API routers
app.include_router(checkout_router, prefix="/api/stripe", tags=["Checkout"])
app.include_router(webhooks_router, prefix="/api/stripe", tags=["Webhooks"])
app.include_router(orders_router, prefix="/api/orders", tags=["Orders"])


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "nursery_api.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.demo_mode,
        log_level=settings.log_level.lower()
    )
