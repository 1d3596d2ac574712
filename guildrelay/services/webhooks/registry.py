"""Webhook handler registry."""

from __future__ import annotations

from typing import Iterator

from guildrelay.db.enums import Provider
from guildrelay.services.webhooks.base import WebhookHandler
from guildrelay.services.webhooks.github import GitHubWebhookHandler
from guildrelay.services.webhooks.google_calendar import GoogleCalendarWebhookHandler
from guildrelay.services.webhooks.trello import TrelloWebhookHandler

_HANDLERS: dict[Provider, WebhookHandler] = {
    Provider.TRELLO: TrelloWebhookHandler(),
    Provider.GITHUB: GitHubWebhookHandler(),
    Provider.GOOGLE_CALENDAR: GoogleCalendarWebhookHandler(),
}


def get_handler(provider: Provider | str) -> WebhookHandler:
    handler = _HANDLERS.get(provider) if Provider.has_value(provider) else None
    if not handler:
        raise KeyError(f"Unknown webhook handler: {provider}")
    return handler


def iter_handlers() -> Iterator[tuple[Provider, WebhookHandler]]:
    yield from _HANDLERS.items()
