"""Shared constants and builders for tests."""

import hashlib
import hmac
import json

from sqlalchemy.orm import Session

from guildrelay.db.enums import Provider, ServiceType
from guildrelay.services import integration_service

GUILD_ID = "123456789012345678"
CHANNEL_ID = "998877665544332211"
WEBHOOK_SECRET = "test-webhook-secret"
INTERNAL_HEADERS = {"X-Internal-Secret": "test-internal-secret"}

TRELLO_TOKENS = {"Organization ID": "org-1", "API Key": "trello-key", "API Token": "trello-token"}
GITHUB_TOKENS = {"Token": "gh-token", "Organization": "acme"}
GOOGLE_TOKENS = {
    "Calendar ID": "team@example.com",
    "Client ID": "client-id",
    "Client Secret": "client-secret",
    "Token": "refresh-token",
}


def configure(db: Session, provider: Provider, tokens: dict[str, str], guild_id: str = GUILD_ID) -> int:
    integration_id = integration_service.get_integration_id(db, guild_id, provider)
    integration_service.save_tokens(db, integration_id, tokens)
    return integration_id


def enable(db: Session, provider: Provider, *names: str, guild_id: str = GUILD_ID) -> None:
    integration = integration_service.get_integration(db, guild_id, provider)
    for name in names:
        integration_service.add_service(db, integration, ServiceType.NOTIFICATIONS, name)


def github_signature(body: bytes, secret: str = WEBHOOK_SECRET) -> str:
    return "sha1=" + hmac.new(secret.encode(), body, hashlib.sha1).hexdigest()


def json_body(payload: dict) -> bytes:
    return json.dumps(payload).encode()
