"""Gate a classified event and hand it to the Discord sink."""

from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from guildrelay.core.structured_logging import build_log_context
from guildrelay.db.enums import Provider
from guildrelay.services import discord_service, integration_service, notification_gate
from guildrelay.services.discord_service import DiscordRestClient
from guildrelay.services.webhooks.base import NotificationRecord, RelayOutcome

logger = logging.getLogger(__name__)


async def relay_notification(
    db: Session,
    sink: DiscordRestClient,
    guild_id: str,
    provider: Provider,
    codename: str,
    record: NotificationRecord,
) -> RelayOutcome:
    log_context = build_log_context(guild_id=guild_id, provider=provider.value, codename=codename)

    integration = integration_service.get_integration(db, guild_id, provider)
    if integration is None:
        logger.info("No integration for relay", extra=log_context)
        return RelayOutcome.recoverable("integration not found", codename)

    if not notification_gate.should_deliver(db, integration.id, codename):
        logger.debug("Notification not enabled", extra=log_context)
        return RelayOutcome.ok(codename, reason="not subscribed")

    channel_id = integration.discord_channel
    if not channel_id:
        logger.info("No notification channel configured", extra=log_context)
        return RelayOutcome.recoverable("no channel configured", codename)

    if not await discord_service.deliver(sink, channel_id, record):
        return RelayOutcome.recoverable("delivery failed", codename)

    logger.info("Notification delivered", extra=log_context)
    return RelayOutcome.ok(codename)
