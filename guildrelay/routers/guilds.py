"""Internal guild administration router.

Called by the Discord bot process and the dashboard. Every endpoint is
protected by the X-Internal-Secret header.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from guildrelay.core.deps import get_db, verify_internal_secret
from guildrelay.core.errors import CredentialsError, NotFoundError, ProviderError
from guildrelay.core.rate_limit import CREDENTIALS_RATE_LIMIT, limiter
from guildrelay.db.enums import Provider, ServiceType
from guildrelay.schemas.guild import (
    GuildCreate,
    GuildCreated,
    IntegrationSettingsRead,
    IntegrationUpdate,
    NotificationRead,
    NotificationsEnable,
    TokenNamesRead,
    TokensUpdate,
    TokensUpdated,
)
from guildrelay.services import credentials_service, integration_service, notification_catalog
from guildrelay.services.trello_service import TrelloRegistration

router = APIRouter(
    prefix="/guilds",
    tags=["guilds"],
    dependencies=[Depends(verify_internal_secret)],
)
logger = logging.getLogger(__name__)


def _provider(value: str) -> Provider:
    if not Provider.has_value(value):
        raise HTTPException(status_code=404, detail=f"Unknown provider: {value}")
    return Provider(value)


def _integration_or_404(db: Session, guild_id: str, provider: Provider):
    integration = integration_service.get_integration(db, guild_id, provider)
    if integration is None:
        raise HTTPException(status_code=404, detail="Integration not found")
    return integration


# ============================================================================
# Guild lifecycle
# ============================================================================


@router.post("", response_model=GuildCreated, status_code=status.HTTP_201_CREATED)
def create_guild(data: GuildCreate, db: Session = Depends(get_db)):
    """Onboard a guild: one integration per provider with empty credentials."""
    try:
        integrations = integration_service.add_guild(db, data.guild_id, data.channel_id)
    except integration_service.GuildExistsError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    return GuildCreated(guild_id=data.guild_id, providers=[i.provider for i in integrations])


@router.delete("/{guild_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_guild(guild_id: str, db: Session = Depends(get_db)):
    """Tear down provider webhooks (best-effort) and delete every row of the guild."""
    try:
        await credentials_service.teardown_guild(db, guild_id)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Guild not found")


# ============================================================================
# Integration settings
# ============================================================================


@router.get("/{guild_id}/integrations/{provider}", response_model=IntegrationSettingsRead)
def get_integration_settings(guild_id: str, provider: str, db: Session = Depends(get_db)):
    provider_enum = _provider(provider)
    settings = integration_service.get_integration_settings(db, guild_id, provider_enum)
    if settings is None:
        raise HTTPException(status_code=404, detail="Integration not found")
    return IntegrationSettingsRead(
        guild_id=guild_id,
        provider=provider_enum.value,
        discord_channel=settings.discord_channel,
        enabled=settings.enabled,
        notifications=settings.notifications,
        commands=settings.commands,
    )


@router.patch("/{guild_id}/integrations/{provider}", response_model=IntegrationSettingsRead)
def update_integration(
    guild_id: str,
    provider: str,
    data: IntegrationUpdate,
    db: Session = Depends(get_db),
):
    provider_enum = _provider(provider)
    try:
        integration_service.edit_integration(
            db,
            guild_id,
            provider_enum,
            discord_channel=data.channel_id,
            enabled=data.enabled,
        )
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Integration not found")
    return get_integration_settings(guild_id, provider, db)


# ============================================================================
# Credentials
# ============================================================================


@router.get("/{guild_id}/integrations/{provider}/tokens", response_model=TokenNamesRead)
def get_token_names(guild_id: str, provider: str, db: Session = Depends(get_db)):
    provider_enum = _provider(provider)
    integration = _integration_or_404(db, guild_id, provider_enum)
    tokens = {token.name: bool(token.key_encrypted) for token in integration_service.get_tokens(db, integration.id)}
    return TokenNamesRead(
        provider=provider_enum.value,
        tokens=tokens,
        configured=bool(tokens) and all(tokens.values()),
    )


@router.put("/{guild_id}/integrations/{provider}/tokens", response_model=TokensUpdated)
@limiter.limit(CREDENTIALS_RATE_LIMIT)
async def update_tokens(
    request: Request,
    guild_id: str,
    provider: str,
    data: TokensUpdate,
    db: Session = Depends(get_db),
):
    """
    Submit a full credential batch.

    The previous provider webhook is torn down, a new one registered, then
    the batch is stored. On any failure the stored batch is cleared.
    """
    provider_enum = _provider(provider)
    _integration_or_404(db, guild_id, provider_enum)
    tokens = {item.name: item.key for item in data.tokens}

    try:
        registration = await credentials_service.update_credentials(db, guild_id, provider_enum, tokens)
    except CredentialsError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except ProviderError as exc:
        logger.warning("Provider rejected credentials guild=%s provider=%s: %s", guild_id, provider, exc)
        raise HTTPException(status_code=502, detail=f"{provider_enum.value} rejected the request")

    response = TokensUpdated(provider=provider_enum.value, configured=True)
    if isinstance(registration, TrelloRegistration):
        response.success_boards = registration.success_boards
        response.failed_boards = registration.failed_boards
    return response


@router.delete("/{guild_id}/integrations/{provider}/tokens", status_code=status.HTTP_204_NO_CONTENT)
async def delete_tokens(guild_id: str, provider: str, db: Session = Depends(get_db)):
    provider_enum = _provider(provider)
    _integration_or_404(db, guild_id, provider_enum)
    await credentials_service.clear_credentials(db, guild_id, provider_enum)


# ============================================================================
# Notifications
# ============================================================================


@router.get("/{guild_id}/integrations/{provider}/notifications", response_model=list[NotificationRead])
def list_notifications(guild_id: str, provider: str, db: Session = Depends(get_db)):
    provider_enum = _provider(provider)
    integration = _integration_or_404(db, guild_id, provider_enum)
    enabled = set(integration_service.get_all_notifications(db, integration.id))
    return [
        NotificationRead(
            name=entry.name,
            description=entry.description,
            codename=entry.codename,
            enabled=entry.name in enabled,
        )
        for entry in notification_catalog.get_catalog(provider_enum)
    ]


@router.post(
    "/{guild_id}/integrations/{provider}/notifications",
    response_model=list[NotificationRead],
)
def enable_notifications(
    guild_id: str,
    provider: str,
    data: NotificationsEnable,
    db: Session = Depends(get_db),
):
    provider_enum = _provider(provider)
    integration = _integration_or_404(db, guild_id, provider_enum)

    unknown = [name for name in data.names if notification_catalog.find_by_name(provider_enum, name) is None]
    if unknown:
        raise HTTPException(status_code=400, detail=f"Unknown notifications: {', '.join(unknown)}")

    for name in data.names:
        try:
            integration_service.add_service(db, integration, ServiceType.NOTIFICATIONS, name)
        except integration_service.DuplicateServiceError:
            continue
    return list_notifications(guild_id, provider, db)


@router.delete(
    "/{guild_id}/integrations/{provider}/notifications/{name}",
    status_code=status.HTTP_204_NO_CONTENT,
)
def disable_notification(guild_id: str, provider: str, name: str, db: Session = Depends(get_db)):
    provider_enum = _provider(provider)
    integration = _integration_or_404(db, guild_id, provider_enum)
    if not integration_service.remove_service(db, integration, ServiceType.NOTIFICATIONS, name):
        raise HTTPException(status_code=404, detail="Notification not enabled")
