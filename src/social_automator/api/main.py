"""
Main FastAPI application for Social Media Automator.

This module wires the API together:
- Account connection and OAuth callback endpoints
- Posting, scheduling and history endpoints
- Billing endpoints and payment webhooks
- Admin endpoints
- The background queue scheduler
- CORS, rate limiting, request logging and error handling
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, Dict
from datetime import datetime, timezone
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
import uvicorn

from .accounts_endpoints import accounts_router
from .admin_endpoints import admin_router
from .auth_endpoints import auth_router, callback_router
from .billing_endpoints import billing_router
from .posts_endpoints import posts_router
from .. import config
from ..database import client as database
from ..middleware import register_error_handlers, request_logging_middleware
from ..middleware.rate_limiter import limiter
from ..payment.webhook_handler import webhook_router
from ..scheduler.runner import QueueScheduler

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Validate configuration and run the queue scheduler for the app's lifetime."""
    logger.info(f"Starting Social Media Automator API ({config.ENVIRONMENT})")
    report = config.validate_environment()
    for warning in report.warnings:
        logger.warning(f"⚠️ {warning}")

    scheduler = None
    if database.supabase_admin is not None:
        scheduler = QueueScheduler(database.supabase_admin)
        scheduler.start()
    else:
        logger.warning("Queue processor disabled: database not configured")
    app.state.scheduler = scheduler

    yield

    if scheduler is not None:
        scheduler.shutdown()
    logger.info("Social Media Automator API stopped")


app = FastAPI(
    title="Social Media Automator API",
    description="Publish and schedule posts across social platforms",
    version="1.0.0",
    lifespan=lifespan,
    debug=config.DEBUG,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.get_allowed_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.middleware("http")(request_logging_middleware)

app.state.limiter = limiter
register_error_handlers(app)

app.include_router(auth_router)
app.include_router(callback_router)
app.include_router(accounts_router)
app.include_router(posts_router)
app.include_router(billing_router)
app.include_router(admin_router)
app.include_router(webhook_router)


@app.get("/api/health", tags=["health"])
@limiter.exempt
async def health(request: Request) -> Dict[str, Any]:
    """Service status and database connectivity."""
    connected = await database.health_check(database.supabase_admin)
    return {
        "success": True,
        "status": "online",
        "database": "connected" if connected else "disconnected",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


def run():
    uvicorn.run(
        "social_automator.api.main:app",
        host=config.HOST,
        port=config.PORT,
        reload=config.DEBUG,
        log_level="info",
    )


if __name__ == "__main__":
    run()
