"""Credential & subscription store.

Per-guild integrations, their encrypted credentials, enabled notifications
and the Google Calendar watch registration. No relay logic lives here.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from sqlalchemy.orm import Session

from guildrelay.core.encryption import decrypt_token, encrypt_token
from guildrelay.core.errors import CredentialsError, NotFoundError
from guildrelay.db.enums import PROVIDER_TOKEN_NAMES, Provider, ServiceType
from guildrelay.db.models import (
    GoogleCalendarWebhook,
    Integration,
    IntegrationService,
    IntegrationToken,
)
from guildrelay.services import notification_catalog

logger = logging.getLogger(__name__)


class GuildExistsError(Exception):
    """Guild was already onboarded."""


class DuplicateServiceError(Exception):
    """Notification / command already enabled for the integration."""


@dataclass
class IntegrationSettings:
    discord_channel: str | None
    enabled: bool
    notifications: list[str] = field(default_factory=list)
    commands: list[str] = field(default_factory=list)


# =============================================================================
# Guild lifecycle
# =============================================================================

def guild_exists(db: Session, guild_id: str) -> bool:
    return (
        db.query(Integration.id).filter(Integration.guild_id == str(guild_id)).first()
        is not None
    )


def add_guild(db: Session, guild_id: str, discord_channel: str | None = None) -> list[Integration]:
    """
    Onboard a guild: one integration per provider, each with empty credentials.
    """
    if not guild_id:
        raise ValueError("guild_id is required")
    if guild_exists(db, guild_id):
        raise GuildExistsError(f"Guild {guild_id} is already added")

    integrations: list[Integration] = []
    for provider in Provider:
        integration = Integration(
            guild_id=str(guild_id),
            provider=provider.value,
            discord_channel=discord_channel,
            enabled=True,
        )
        integration.tokens = [
            IntegrationToken(name=name, key_encrypted="")
            for name in PROVIDER_TOKEN_NAMES[provider]
        ]
        db.add(integration)
        integrations.append(integration)
    db.commit()
    logger.info("Guild onboarded guild=%s", guild_id)
    return integrations


def remove_guild(db: Session, guild_id: str) -> None:
    """Delete every integration of the guild (credentials, services, watch cascade)."""
    integrations = db.query(Integration).filter(Integration.guild_id == str(guild_id)).all()
    if not integrations:
        raise NotFoundError(f"Guild {guild_id} was not found")
    for integration in integrations:
        db.delete(integration)
    db.commit()
    logger.info("Guild removed guild=%s", guild_id)


# =============================================================================
# Integration lookup / settings
# =============================================================================

def get_integration(db: Session, guild_id: str, provider: Provider | str) -> Integration | None:
    return (
        db.query(Integration)
        .filter(
            Integration.guild_id == str(guild_id),
            Integration.provider == Provider(provider).value,
        )
        .first()
    )


def get_integration_id(db: Session, guild_id: str, provider: Provider | str) -> int:
    integration = get_integration(db, guild_id, provider)
    if integration is None:
        raise NotFoundError(f"No {Provider(provider).value} integration for guild {guild_id}")
    return integration.id


def edit_integration(
    db: Session,
    guild_id: str,
    provider: Provider | str,
    *,
    discord_channel: str | None = None,
    enabled: bool | None = None,
) -> Integration:
    integration = get_integration(db, guild_id, provider)
    if integration is None:
        raise NotFoundError(f"No {Provider(provider).value} integration for guild {guild_id}")
    if discord_channel is not None:
        integration.discord_channel = discord_channel
    if enabled is not None:
        integration.enabled = enabled
    db.commit()
    return integration


def get_integration_settings(
    db: Session, guild_id: str, provider: Provider | str
) -> IntegrationSettings | None:
    integration = get_integration(db, guild_id, provider)
    if integration is None:
        return None
    settings = IntegrationSettings(
        discord_channel=integration.discord_channel,
        enabled=integration.enabled,
    )
    for service in integration.services:
        if service.service_type == ServiceType.NOTIFICATIONS.value:
            settings.notifications.append(service.name)
        elif service.service_type == ServiceType.COMMANDS.value:
            settings.commands.append(service.name)
    return settings


# =============================================================================
# Credentials
# =============================================================================

def get_tokens(db: Session, integration_id: int) -> list[IntegrationToken]:
    return (
        db.query(IntegrationToken)
        .filter(IntegrationToken.integration_id == integration_id)
        .order_by(IntegrationToken.id)
        .all()
    )


def get_token(db: Session, integration_id: int, name: str) -> str | None:
    token = (
        db.query(IntegrationToken)
        .filter(IntegrationToken.integration_id == integration_id, IntegrationToken.name == name)
        .first()
    )
    if token is None:
        return None
    return decrypt_token(token.key_encrypted)


def get_credentials(db: Session, integration_id: int) -> dict[str, str] | None:
    """
    Decrypted credential batch, or None when any credential is unset.

    A partially filled batch is never treated as configured.
    """
    values = {token.name: decrypt_token(token.key_encrypted) for token in get_tokens(db, integration_id)}
    if not values or not all(values.values()):
        return None
    return values


def validate_token_batch(provider: Provider | str, tokens: dict[str, str]) -> None:
    expected = set(PROVIDER_TOKEN_NAMES[Provider(provider)])
    supplied = set(tokens)
    if supplied != expected:
        raise CredentialsError(
            f"Expected {len(expected)} tokens for {Provider(provider).value}: "
            f"{', '.join(PROVIDER_TOKEN_NAMES[Provider(provider)])}"
        )
    empty = sorted(name for name, value in tokens.items() if not value or not value.strip())
    if empty:
        raise CredentialsError(f"Empty value for: {', '.join(empty)}")


def save_tokens(db: Session, integration_id: int, tokens: dict[str, str]) -> None:
    """Write the whole credential batch in one transaction."""
    rows = {token.name: token for token in get_tokens(db, integration_id)}
    for name, value in tokens.items():
        row = rows.get(name)
        if row is None:
            row = IntegrationToken(integration_id=integration_id, name=name)
            db.add(row)
        row.key_encrypted = encrypt_token(value.strip())
    db.commit()


def clear_tokens(db: Session, integration_id: int) -> None:
    """Blank every credential of the integration in one transaction."""
    db.rollback()
    for token in get_tokens(db, integration_id):
        token.key_encrypted = ""
    db.commit()


# =============================================================================
# Notifications / commands
# =============================================================================

def get_all_notifications(db: Session, integration_id: int) -> list[str]:
    """Display names of the integration's enabled notifications."""
    rows = (
        db.query(IntegrationService.name)
        .filter(
            IntegrationService.integration_id == integration_id,
            IntegrationService.service_type == ServiceType.NOTIFICATIONS.value,
        )
        .all()
    )
    return [row.name for row in rows]


def add_service(
    db: Session,
    integration: Integration,
    service_type: ServiceType,
    name: str,
) -> IntegrationService:
    if service_type == ServiceType.NOTIFICATIONS:
        if notification_catalog.find_by_name(integration.provider, name) is None:
            raise ValueError(f"Unknown {integration.provider} notification: {name}")

    existing = (
        db.query(IntegrationService)
        .filter(
            IntegrationService.integration_id == integration.id,
            IntegrationService.service_type == service_type.value,
            IntegrationService.name == name,
        )
        .first()
    )
    if existing is not None:
        raise DuplicateServiceError(f"{name} is already enabled")

    service = IntegrationService(
        integration_id=integration.id,
        service_type=service_type.value,
        name=name,
    )
    db.add(service)
    db.commit()
    return service


def remove_service(
    db: Session,
    integration: Integration,
    service_type: ServiceType,
    name: str,
) -> bool:
    deleted = (
        db.query(IntegrationService)
        .filter(
            IntegrationService.integration_id == integration.id,
            IntegrationService.service_type == service_type.value,
            IntegrationService.name == name,
        )
        .delete(synchronize_session="fetch")
    )
    db.commit()
    return deleted > 0


# =============================================================================
# Google Calendar watch registration
# =============================================================================

def get_google_webhook(db: Session, integration_id: int) -> GoogleCalendarWebhook | None:
    return (
        db.query(GoogleCalendarWebhook)
        .filter(GoogleCalendarWebhook.integration_id == integration_id)
        .first()
    )


def save_google_webhook(
    db: Session,
    integration_id: int,
    *,
    channel_id: str,
    resource_id: str,
    resource_uri: str | None = None,
) -> GoogleCalendarWebhook:
    """
    Store a new watch registration, superseding any previous one.

    The sync token starts NULL so the next pull establishes a fresh baseline.
    """
    if not channel_id or not resource_id:
        raise ValueError("channel_id and resource_id are required")

    previous = get_google_webhook(db, integration_id)
    if previous is not None:
        logger.info(
            "Replacing Google Calendar watch integration=%s old_channel=%s",
            integration_id,
            previous.channel_id,
        )
        db.delete(previous)
        db.flush()

    webhook = GoogleCalendarWebhook(
        integration_id=integration_id,
        channel_id=channel_id,
        resource_id=resource_id,
        resource_uri=resource_uri,
        sync_token=None,
    )
    db.add(webhook)
    db.commit()
    return webhook


def delete_google_webhook(db: Session, integration_id: int) -> bool:
    deleted = (
        db.query(GoogleCalendarWebhook)
        .filter(GoogleCalendarWebhook.integration_id == integration_id)
        .delete(synchronize_session="fetch")
    )
    db.commit()
    return deleted > 0


def edit_sync_token(db: Session, integration_id: int, sync_token: str | None) -> None:
    webhook = get_google_webhook(db, integration_id)
    if webhook is None:
        raise NotFoundError(f"No Google Calendar watch for integration {integration_id}")
    webhook.sync_token = sync_token
    db.commit()
