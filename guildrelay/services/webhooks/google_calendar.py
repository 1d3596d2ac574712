"""Google Calendar push notification handler.

Google pushes carry no event data, only the watch channel identity. A
verified push triggers an incremental events.list using the stored sync
token, and the single changed event is relayed.
"""

from __future__ import annotations

import logging
from datetime import date, datetime

from fastapi import Request
from sqlalchemy.orm import Session

from guildrelay.core.config import settings
from guildrelay.core.errors import (
    ProviderError,
    ProviderGoneError,
    StateInvariantViolation,
    TransientProviderError,
)
from guildrelay.core.structured_logging import build_log_context
from guildrelay.db.enums import Provider
from guildrelay.services import google_calendar_service, integration_service, relay_service
from guildrelay.services.webhooks.base import NotificationRecord, RelayOutcome, Verification

logger = logging.getLogger(__name__)

TITLE = "Google Calendar Notification"
COLOR = 0x800080
DELETED_COLOR = 0xFFA500
THUMBNAIL = (
    "https://upload.wikimedia.org/wikipedia/commons/thumb/a/a5/"
    "Google_Calendar_icon_%282020%29.svg/1024px-Google_Calendar_icon_%282020%29.svg.png"
)
CODENAME_PREFIX = "google-calendar-event-"

# Google reports removed events as "cancelled"; "deleted" is kept for older payloads
DELETED_STATUSES = {"deleted", "cancelled"}


def _parse_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def event_type(event: dict) -> str:
    """
    created / updated / deleted, inferred from the event's current state.

    Timestamps are compared at whole-second precision; Google stamps
    ``updated`` a few milliseconds after ``created`` on insert.
    """
    if event.get("status") in DELETED_STATUSES:
        return "deleted"
    created = _parse_timestamp(event.get("created"))
    updated = _parse_timestamp(event.get("updated"))
    if created is None or updated is None:
        return "updated"
    return "created" if int(created.timestamp()) == int(updated.timestamp()) else "updated"


class GoogleCalendarWebhookHandler:
    provider = Provider.GOOGLE_CALENDAR
    codenames = frozenset(
        CODENAME_PREFIX + kind for kind in ("created", "updated", "deleted")
    )

    def verify(
        self,
        registration,
        channel_id: str | None,
        resource_id: str | None,
    ) -> Verification:
        """Pushes must name the channel/resource pair we stored at watch time."""
        if registration is None:
            return Verification.rejected("no active watch")
        if channel_id != registration.channel_id or resource_id != registration.resource_id:
            return Verification.rejected("invalid headers")
        return Verification.ok()

    def classify(self, event: dict) -> str:
        return CODENAME_PREFIX + event_type(event)

    def render_fields(self, event: dict, codename: str) -> list[tuple[str, str]]:
        if codename == CODENAME_PREFIX + "deleted":
            return [("Title", "Event deleted")]

        start = event.get("start") or {}
        fields = [
            ("Title", event.get("summary") or ""),
            ("Description", event.get("description") or "No description provided"),
        ]
        start_at = _parse_timestamp(start.get("dateTime"))
        if start_at is not None:
            # Rendered in the event's own timezone offset
            fields.append(("Date", start_at.strftime("%Y-%m-%d")))
            fields.append(("Time", start_at.strftime("%H:%M")))
        else:
            try:
                day = date.fromisoformat(start.get("date") or "").isoformat()
            except ValueError:
                day = start.get("date") or ""
            fields.append(("Date", day))
            fields.append(("Time", "Full-day event"))
        return fields

    def build_record(self, event: dict, codename: str) -> NotificationRecord:
        deleted = codename == CODENAME_PREFIX + "deleted"
        return NotificationRecord(
            title=TITLE,
            description="",
            fields=self.render_fields(event, codename),
            color=DELETED_COLOR if deleted else COLOR,
            url=None if deleted else event.get("htmlLink"),
            thumbnail=THUMBNAIL,
            inline_labels=frozenset({"Date", "Time"}),
        )

    async def pull_changes(
        self,
        db: Session,
        integration_id: int,
        credentials: dict[str, str],
        access_token: str | None = None,
    ) -> list[dict]:
        """
        Fetch changed events and advance the stored sync token.

        An invalidated token (410) is cleared and the pull retried once as a
        full sync; a second 410 propagates. The token is written exactly once
        per successful pull, even when the result is then discarded. A pull
        that ends without a new token keeps the one it was made with.
        """
        registration = integration_service.get_google_webhook(db, integration_id)
        sync_token = registration.sync_token if registration is not None else None
        calendar_id = credentials["Calendar ID"]
        if access_token is None:
            access_token = await google_calendar_service.access_token_for(credentials)

        try:
            changes = await google_calendar_service.list_event_changes(
                calendar_id, access_token, sync_token
            )
        except ProviderGoneError:
            logger.info("Google sync token invalidated, resyncing integration=%s", integration_id)
            integration_service.edit_sync_token(db, integration_id, None)
            sync_token = None
            changes = await google_calendar_service.list_event_changes(calendar_id, access_token, None)

        next_sync_token = changes.next_sync_token
        if next_sync_token is None:
            logger.error(
                "Google pull returned no sync token, keeping the previous one integration=%s",
                integration_id,
            )
            next_sync_token = sync_token
        integration_service.edit_sync_token(db, integration_id, next_sync_token)
        return changes.items

    async def handle(self, request: Request, db: Session, **kwargs) -> RelayOutcome:
        """
        Receive a Google Calendar push.

        Handles:
        - sync: handshake sent right after a watch is created, acknowledged
        - exists / not_exists: pull changes and relay exactly one event
        """
        sink = kwargs["sink"]
        guild_id = request.query_params.get("guildId")
        channel_id = request.headers.get("x-goog-channel-id")
        resource_id = request.headers.get("x-goog-resource-id")
        resource_uri = request.headers.get("x-goog-resource-uri")
        resource_state = request.headers.get("x-goog-resource-state", "")
        log_context = build_log_context(guild_id=guild_id, provider=self.provider.value, route="google")

        if channel_id is None or resource_id is None or resource_uri is None:
            logger.warning("Google push missing headers", extra=log_context)
            return RelayOutcome.rejected("missing headers", 400)
        if not guild_id:
            return RelayOutcome.recoverable("missing guildId")

        integration = integration_service.get_integration(db, guild_id, self.provider)
        if integration is None:
            logger.info("Google push for unknown guild", extra=log_context)
            return RelayOutcome.recoverable("integration not found")

        registration = integration_service.get_google_webhook(db, integration.id)
        verification = self.verify(registration, channel_id, resource_id)
        if not verification.authentic:
            logger.warning("Google push rejected: %s", verification.reason, extra=log_context)
            return RelayOutcome.rejected(verification.reason, verification.status_code)

        if resource_state == "sync":
            return RelayOutcome.ok(reason="sync acknowledged")

        credentials = integration_service.get_credentials(db, integration.id)
        if credentials is None:
            logger.info("Google push but credentials are not configured", extra=log_context)
            return RelayOutcome.recoverable("credentials not configured")

        try:
            items = await self.pull_changes(db, integration.id, credentials)
        except TransientProviderError as exc:
            logger.warning("Google pull failed: %s", exc, extra=log_context)
            return RelayOutcome.recoverable("provider unavailable")
        except ProviderError as exc:
            logger.error("Google pull failed: %s", exc, extra=log_context)
            return RelayOutcome.fatal("provider error")

        # Only single-event deltas are supported; see DESIGN.md
        if len(items) != 1:
            violation = StateInvariantViolation(f"expected 1 changed event, got {len(items)}")
            logger.error("Google pull aborted: %s", violation, extra=log_context)
            return RelayOutcome.fatal(str(violation))

        event = items[0]
        codename = self.classify(event)
        record = self.build_record(event, codename)
        return await relay_service.relay_notification(
            db, sink, guild_id, self.provider, codename, record
        )

    async def register_webhook(self, guild_id: str, credentials: dict[str, str], db: Session) -> dict:
        """
        Open a new watch channel and make it the only accepted one.

        The previous channel is stopped best-effort after the new row is
        saved, then a baseline pull sets the first sync token without
        relaying anything.
        """
        integration_id = integration_service.get_integration_id(db, guild_id, self.provider)
        access_token = await google_calendar_service.access_token_for(credentials)

        previous = integration_service.get_google_webhook(db, integration_id)
        previous_ids = (previous.channel_id, previous.resource_id) if previous is not None else None

        channel = await google_calendar_service.watch_events(
            credentials["Calendar ID"], access_token, settings.google_callback_url(guild_id)
        )
        integration_service.save_google_webhook(
            db,
            integration_id,
            channel_id=channel.channel_id,
            resource_id=channel.resource_id,
            resource_uri=channel.resource_uri,
        )
        logger.info("Google watch created guild=%s channel=%s", guild_id, channel.channel_id)

        if previous_ids is not None:
            try:
                await google_calendar_service.stop_channel(access_token, *previous_ids)
            except ProviderError as exc:
                logger.warning("Could not stop previous Google channel %s: %s", previous_ids[0], exc)

        try:
            await self.pull_changes(db, integration_id, credentials, access_token)
        except ProviderError as exc:
            logger.warning("Google baseline pull failed guild=%s: %s", guild_id, exc)

        return {"channel_id": channel.channel_id, "resource_id": channel.resource_id}

    async def teardown_webhook(
        self, guild_id: str, credentials: dict[str, str] | None, db: Session
    ) -> None:
        integration = integration_service.get_integration(db, guild_id, self.provider)
        if integration is None:
            return
        registration = integration_service.get_google_webhook(db, integration.id)
        if registration is None:
            return

        try:
            if credentials is not None:
                access_token = await google_calendar_service.access_token_for(credentials)
                await google_calendar_service.stop_channel(
                    access_token, registration.channel_id, registration.resource_id
                )
        except ProviderError as exc:
            logger.warning("Could not stop Google channel %s: %s", registration.channel_id, exc)
        finally:
            integration_service.delete_google_webhook(db, integration.id)
        logger.info("Google watch removed guild=%s", guild_id)
