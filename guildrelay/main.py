"""FastAPI application entry point."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from sqlalchemy import text

from guildrelay.core.config import settings
from guildrelay.core.structured_logging import configure_logging
from guildrelay.db.session import engine

logger = logging.getLogger(__name__)

# ============================================================================
# Sentry Integration (optional, for production error tracking)
# ============================================================================

if settings.SENTRY_DSN and settings.ENV != "dev":
    import sentry_sdk
    from sentry_sdk.integrations.fastapi import FastApiIntegration
    from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        environment=settings.ENV,
        integrations=[
            FastApiIntegration(transaction_style="endpoint"),
            SqlalchemyIntegration(),
        ],
        traces_sample_rate=0.1,
        send_default_pii=False,  # Guild ids only, never credentials
    )
    logging.info("Sentry initialized for error tracking")

# ============================================================================
# Rate Limiting
# ============================================================================

from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from guildrelay.core.rate_limit import limiter

from guildrelay.services.discord_service import DiscordRestClient
from guildrelay.services.notification_catalog import validate_catalogs


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    validate_catalogs()
    if not settings.DISCORD_BOT_TOKEN:
        logger.warning("DISCORD_BOT_TOKEN not configured; deliveries will fail")
    app.state.discord_client = DiscordRestClient.from_settings()
    logger.info("guildrelay %s started env=%s", settings.VERSION, settings.ENV)
    try:
        yield
    finally:
        await app.state.discord_client.close()
        app.state.discord_client = None


# ============================================================================
# FastAPI App
# ============================================================================

app = FastAPI(
    title="Guild Relay",
    description="Discord notification relay for Trello, GitHub and Google Calendar",
    version=settings.VERSION,
    docs_url="/docs" if settings.ENV == "dev" else None,
    redoc_url="/redoc" if settings.ENV == "dev" else None,
    lifespan=lifespan,
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# ============================================================================
# Routers
# ============================================================================

from guildrelay.routers import guilds_router, webhooks_router

# Provider callbacks (paths are registered with Trello/GitHub/Google, keep them stable)
app.include_router(webhooks_router)

# Internal endpoints (bot + dashboard - protected by INTERNAL_SECRET)
app.include_router(guilds_router)


@app.get("/health")
def health():
    """
    Health check endpoint.

    Verifies database connectivity and returns environment info.
    """
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))
    return {"status": "ok", "env": settings.ENV, "version": settings.VERSION}
