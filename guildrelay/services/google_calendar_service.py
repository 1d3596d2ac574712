"""Google Calendar API calls: OAuth refresh, watch channels and event listing."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from urllib.parse import quote

from guildrelay.core.config import settings
from guildrelay.core.errors import ProviderAuthError, ProviderNotFoundError
from guildrelay.services.http_service import provider_request

logger = logging.getLogger(__name__)

PROVIDER = "googlecalendar"

# Guards against a provider that keeps handing out page tokens
MAX_PAGES = 50


@dataclass
class WatchChannel:
    channel_id: str
    resource_id: str
    resource_uri: str | None = None
    expiration: str | None = None


@dataclass
class EventChanges:
    items: list[dict] = field(default_factory=list)
    next_sync_token: str | None = None


async def refresh_access_token(client_id: str, client_secret: str, refresh_token: str) -> str:
    """Exchange the stored refresh token for a short-lived access token."""
    response = await provider_request(
        PROVIDER,
        "POST",
        settings.GOOGLE_OAUTH_TOKEN_URL,
        data={
            "client_id": client_id,
            "client_secret": client_secret,
            "refresh_token": refresh_token,
            "grant_type": "refresh_token",
        },
    )
    access_token = response.json().get("access_token")
    if not access_token:
        raise ProviderAuthError(PROVIDER, "OAuth refresh returned no access token")
    return access_token


async def access_token_for(credentials: dict[str, str]) -> str:
    return await refresh_access_token(
        credentials["Client ID"],
        credentials["Client Secret"],
        credentials["Token"],
    )


def _calendar_url(calendar_id: str, suffix: str) -> str:
    # Calendar ids are addresses and may contain '#', '/' or '?'
    return f"{settings.GOOGLE_CALENDAR_API_BASE_URL}/calendars/{quote(calendar_id, safe='@')}/events{suffix}"


async def watch_events(calendar_id: str, access_token: str, address: str) -> WatchChannel:
    """Open a push channel for the calendar with a fresh channel id."""
    channel_id = str(uuid.uuid4())
    response = await provider_request(
        PROVIDER,
        "POST",
        _calendar_url(calendar_id, "/watch"),
        headers={"Authorization": f"Bearer {access_token}"},
        json={"id": channel_id, "type": "web_hook", "address": address},
    )
    data = response.json()
    return WatchChannel(
        channel_id=data.get("id") or channel_id,
        resource_id=data["resourceId"],
        resource_uri=data.get("resourceUri"),
        expiration=data.get("expiration"),
    )


async def stop_channel(access_token: str, channel_id: str, resource_id: str) -> bool:
    """Stop a push channel. Returns False if Google no longer knows it."""
    try:
        await provider_request(
            PROVIDER,
            "POST",
            f"{settings.GOOGLE_CALENDAR_API_BASE_URL}/channels/stop",
            headers={"Authorization": f"Bearer {access_token}"},
            json={"id": channel_id, "resourceId": resource_id},
        )
    except ProviderNotFoundError:
        logger.info("Google channel %s already stopped", channel_id)
        return False
    return True


async def list_event_changes(
    calendar_id: str,
    access_token: str,
    sync_token: str | None = None,
) -> EventChanges:
    """
    List events changed since ``sync_token`` (or every event when None).

    Follows nextPageToken until Google returns a nextSyncToken. An invalidated
    sync token surfaces as ProviderGoneError (HTTP 410). If MAX_PAGES runs
    out first, ``next_sync_token`` is None.
    """
    changes = EventChanges()
    page_token: str | None = None

    for _ in range(MAX_PAGES):
        params = {"singleEvents": "true"}
        if sync_token:
            params["syncToken"] = sync_token
        if page_token:
            params["pageToken"] = page_token

        response = await provider_request(
            PROVIDER,
            "GET",
            _calendar_url(calendar_id, ""),
            headers={"Authorization": f"Bearer {access_token}"},
            params=params,
        )
        data = response.json()
        changes.items.extend(data.get("items") or [])

        page_token = data.get("nextPageToken")
        if not page_token:
            changes.next_sync_token = data.get("nextSyncToken")
            break
    else:
        logger.error("Google event listing stopped after %d pages without a sync token", MAX_PAGES)

    return changes
