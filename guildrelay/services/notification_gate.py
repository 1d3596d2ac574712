"""Decide whether a classified event is delivered to a guild."""

from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from guildrelay.db.models import Integration
from guildrelay.services import integration_service, notification_catalog

logger = logging.getLogger(__name__)


def should_deliver(db: Session, integration_id: int, codename: str) -> bool:
    """
    True iff the codename is catalogued for the integration's provider and
    the guild enabled that notification by display name.

    Missing integrations and empty subscriptions answer False, never raise.
    """
    integration = db.get(Integration, integration_id)
    if integration is None:
        return False

    enabled = set(integration_service.get_all_notifications(db, integration_id))
    if not enabled:
        return False

    entry = notification_catalog.find_by_codename(integration.provider, codename)
    if entry is None:
        logger.debug("Codename %s not in %s catalog", codename, integration.provider)
        return False
    return entry.name in enabled
