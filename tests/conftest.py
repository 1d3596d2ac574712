"""
Test configuration and fixtures.

Provides:
- In-memory SQLite database, tables recreated for every test
- A recording stand-in for the Discord REST client
- HTTPX AsyncClient bound to the FastAPI app
- Onboarded guild fixture
"""
import os
from typing import AsyncGenerator, Generator

from cryptography.fernet import Fernet

# Must be set before anything imports guildrelay.core.config
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["TOKEN_ENCRYPTION_KEY"] = Fernet.generate_key().decode()
os.environ["WEBHOOK_SECRET"] = "test-webhook-secret"
os.environ["INTERNAL_SECRET"] = "test-internal-secret"
os.environ["SERVER_ORIGIN"] = "https://relay.test"
os.environ["TESTING"] = "1"

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.orm import Session

from guildrelay.core.deps import get_db, get_discord_client
from guildrelay.db.base import Base
from guildrelay.db.session import SessionLocal, engine
from guildrelay.main import app
from guildrelay.services import integration_service

from factories import CHANNEL_ID, GUILD_ID


class RecordingDiscordClient:
    """Stands in for DiscordRestClient; keeps every message instead of sending it."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, dict]] = []
        self.fail_with: Exception | None = None

    async def create_message(self, channel_id: str, payload: dict) -> dict:
        if self.fail_with is not None:
            raise self.fail_with
        self.sent.append((channel_id, payload))
        return {"id": str(len(self.sent)), "channel_id": channel_id}

    @property
    def embeds(self) -> list[dict]:
        return [payload["embeds"][0] for _, payload in self.sent]


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """Fresh schema per test; the StaticPool keeps one shared in-memory database."""
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def discord_client() -> RecordingDiscordClient:
    return RecordingDiscordClient()


@pytest.fixture
async def client(db: Session, discord_client: RecordingDiscordClient) -> AsyncGenerator[AsyncClient, None]:
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_discord_client] = lambda: discord_client

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# =============================================================================
# Guild Fixtures
# =============================================================================

@pytest.fixture
def guild(db: Session) -> str:
    """Onboarded guild with a notification channel and no credentials."""
    integration_service.add_guild(db, GUILD_ID, CHANNEL_ID)
    return GUILD_ID
