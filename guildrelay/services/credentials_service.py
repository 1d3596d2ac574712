"""Credential submission flow: teardown, register, persist.

Credentials are only ever stored as a complete batch that successfully
registered a provider webhook. Any failure leaves the batch cleared.
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.orm import Session

from guildrelay.core.errors import NotFoundError, ProviderError
from guildrelay.db.enums import Provider
from guildrelay.services import integration_service
from guildrelay.services.webhooks.registry import get_handler

logger = logging.getLogger(__name__)


async def _teardown_best_effort(db: Session, guild_id: str, provider: Provider, credentials) -> None:
    handler = get_handler(provider)
    try:
        await handler.teardown_webhook(guild_id, credentials, db)
    except ProviderError as exc:
        logger.warning(
            "Webhook teardown failed guild=%s provider=%s: %s", guild_id, provider.value, exc
        )


async def update_credentials(
    db: Session,
    guild_id: str,
    provider: Provider,
    tokens: dict[str, str],
) -> Any:
    """
    Replace an integration's credentials and its provider webhook.

    Returns whatever the provider handler's registration returned.
    Raises CredentialsError for a bad batch and ProviderError when the
    provider refused the registration; the stored batch is cleared in both
    cases.
    """
    integration_id = integration_service.get_integration_id(db, guild_id, provider)

    # The old webhook goes first: once the batch is cleared it can no longer be found
    previous = integration_service.get_credentials(db, integration_id)
    await _teardown_best_effort(db, guild_id, provider, previous)

    handler = get_handler(provider)
    try:
        integration_service.validate_token_batch(provider, tokens)
        tokens = {name: value.strip() for name, value in tokens.items()}
        registration = await handler.register_webhook(guild_id, tokens, db)
        integration_service.save_tokens(db, integration_id, tokens)
    except Exception:
        logger.warning(
            "Credential update failed, clearing tokens guild=%s provider=%s",
            guild_id,
            provider.value,
        )
        integration_service.clear_tokens(db, integration_id)
        raise

    logger.info("Credentials updated guild=%s provider=%s", guild_id, provider.value)
    return registration


async def clear_credentials(db: Session, guild_id: str, provider: Provider) -> None:
    integration_id = integration_service.get_integration_id(db, guild_id, provider)
    credentials = integration_service.get_credentials(db, integration_id)
    await _teardown_best_effort(db, guild_id, provider, credentials)
    integration_service.clear_tokens(db, integration_id)
    logger.info("Credentials cleared guild=%s provider=%s", guild_id, provider.value)


async def teardown_guild(db: Session, guild_id: str) -> None:
    """Tear down every provider webhook, then delete the guild's rows."""
    if not integration_service.guild_exists(db, guild_id):
        raise NotFoundError(f"Guild {guild_id} was not found")

    for provider in Provider:
        integration = integration_service.get_integration(db, guild_id, provider)
        if integration is None:
            continue
        credentials = integration_service.get_credentials(db, integration.id)
        await _teardown_best_effort(db, guild_id, provider, credentials)

    integration_service.remove_guild(db, guild_id)
