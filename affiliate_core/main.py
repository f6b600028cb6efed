"""
Affiliate Core API.

Run with: uvicorn affiliate_core.main:app --port 8001
"""
import logging
import sys
from contextlib import asynccontextmanager

from dotenv import load_dotenv

load_dotenv()

import sentry_sdk
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.logging import LoggingIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

from . import models  # noqa: F401  (registers tables on Base.metadata)
from .config import settings
from .core.env import get_env_name, is_local_env, is_production_env
from .db import Base, engine
from .exception_handlers import register_exception_handlers
from .middleware.logging import LoggingMiddleware
from .middleware.metrics import MetricsMiddleware
from .middleware.request_id import RequestIDMiddleware
from .routers import (
    admin_campaigns,
    admin_conversions,
    admin_insights,
    admin_links,
    admin_partners,
    admin_payouts,
    ops,
    partner_portal,
    postback,
    redirect,
)

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)
logger = logging.getLogger("affiliate")

if settings.sentry_dsn and not is_local_env():
    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        integrations=[
            FastApiIntegration(),
            SqlalchemyIntegration(),
            LoggingIntegration(level=logging.INFO, event_level=logging.ERROR),
        ],
        traces_sample_rate=0.1,
        environment=get_env_name(),
        send_default_pii=False,
    )
    logger.info(f"Sentry error tracking initialized for environment: {get_env_name()}")
elif settings.sentry_dsn:
    logger.info("Sentry DSN configured but not initializing in local environment")


@asynccontextmanager
async def lifespan(app):
    logger.info("Starting Affiliate Core...")
    if engine.dialect.name == "sqlite":
        if is_production_env():
            raise RuntimeError("SQLite database is not supported in production, use PostgreSQL")
        # Local SQLite gets its schema directly; other databases go through alembic.
        Base.metadata.create_all(bind=engine)
    yield
    logger.info("Shutting down Affiliate Core...")


app = FastAPI(title="Affiliate Core", version="1.0.0", lifespan=lifespan)

# Middleware runs in reverse order of registration: request id is assigned first.
app.add_middleware(LoggingMiddleware)
app.add_middleware(MetricsMiddleware)
app.add_middleware(RequestIDMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in settings.cors_allow_origins.split(",") if o.strip()],
    allow_credentials=settings.cors_allow_origins != "*",
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

app.include_router(ops.router)
app.include_router(redirect.router)
app.include_router(postback.router)
app.include_router(admin_partners.router)
app.include_router(admin_links.router)
app.include_router(admin_campaigns.router)
app.include_router(admin_conversions.router)
app.include_router(admin_payouts.router)
app.include_router(admin_insights.router)
app.include_router(partner_portal.router)
