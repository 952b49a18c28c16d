"""
FastAPI application entry point.
Configures routes, middleware, and lifecycle events.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.config import settings
from app.database import close_db
from app.errors import ReconciliationError
from app.logging_config import configure_logging
from app.redis import RedisClient

# Import routers - MUST BE AT TOP LEVEL
from app.api.webhooks.razorpay import router as razorpay_router
from app.api.orders import router as orders_router
from app.api.sellers import router as sellers_router
from app.api.admin.orders import router as admin_orders_router
from app.api.admin.system import router as admin_system_router


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifecycle manager."""
    # Startup
    configure_logging()
    logging.info(f"Starting up {settings.app_name}...")

    # Initialize Redis
    try:
        RedisClient.get_client()
    except Exception as e:
        logging.warning(f"Failed to initialize Redis: {e}")

    yield

    # Shutdown
    await RedisClient.close()
    await close_db()
    logging.info("Shutting down...")


app = FastAPI(
    title="Ledgerline",
    description="Order and payment reconciliation for multi-seller commerce",
    version="1.0.0",
    lifespan=lifespan,
    debug=settings.debug,
)


@app.exception_handler(ReconciliationError)
async def reconciliation_exception_handler(request: Request, exc: ReconciliationError):
    if exc.status_code >= 500:
        logging.error(f"{type(exc).__name__}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"status": "error", "message": exc.message},
    )


# Global Exception Handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logging.error(f"Global exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"status": "error", "message": "Internal Server Error"},
    )


origins = []
if settings.is_development:
    origins.append("*")

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Health check endpoint
@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "app": settings.app_name,
        "env": settings.app_env,
    }


app.include_router(
    razorpay_router,
    prefix="/webhooks",
    tags=["webhooks"],
)
app.include_router(
    orders_router,
    prefix="/orders",
    tags=["orders"],
)
app.include_router(
    sellers_router,
    prefix="/sellers",
    tags=["sellers"],
)
app.include_router(
    admin_orders_router,
    prefix="/admin",
    tags=["admin"],
)
app.include_router(
    admin_system_router,
    prefix="/admin",
    tags=["admin"],
)
