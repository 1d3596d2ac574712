"""FastAPI dependencies for database access, the Discord sink and internal auth."""

import hmac
from typing import Generator

from fastapi import Header, HTTPException, Request
from sqlalchemy.orm import Session

from guildrelay.core.config import settings
from guildrelay.db.session import SessionLocal
from guildrelay.services.discord_service import DiscordRestClient


def get_db() -> Generator[Session, None, None]:
    """
    Database session dependency.

    Yields a database session and ensures it's closed after the request.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_discord_client(request: Request) -> DiscordRestClient:
    """Shared Discord REST client created in the application lifespan."""
    client = getattr(request.app.state, "discord_client", None)
    if client is None:
        raise HTTPException(status_code=503, detail="Discord client not ready")
    return client


def verify_internal_secret(x_internal_secret: str | None = Header(default=None)) -> None:
    """Verify the internal secret header."""
    expected = settings.INTERNAL_SECRET
    if not expected:
        raise HTTPException(status_code=501, detail="INTERNAL_SECRET not configured")
    if not x_internal_secret or not hmac.compare_digest(
        x_internal_secret.encode("utf-8"), expected.encode("utf-8")
    ):
        raise HTTPException(status_code=403, detail="Invalid internal secret")
