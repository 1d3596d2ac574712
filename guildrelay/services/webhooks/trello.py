"""Trello webhook handler."""

from __future__ import annotations

import hmac
import logging

from fastapi import Request
from sqlalchemy.orm import Session

from guildrelay.core.config import settings
from guildrelay.core.errors import CredentialsError
from guildrelay.core.structured_logging import build_log_context
from guildrelay.db.enums import Provider
from guildrelay.services import relay_service, trello_service
from guildrelay.services.trello_service import TrelloRegistration
from guildrelay.services.webhooks.base import (
    NotificationRecord,
    RelayOutcome,
    Verification,
    parse_json,
    read_body_safe,
)

logger = logging.getLogger(__name__)

TITLE = "Trello Notification"
COLOR = 0x0079BF
THUMBNAIL = "https://cdn.iconscout.com/icon/free/png-256/trello-3-569395.png"

DESCRIPTIONS = {
    "createCard": "Card created",
    "updateCard": "Card updated",
    "moveCard": "Card moved",
    "deleteCard": "Card deleted",
    "createList": "List created",
    "updateList": "List updated",
    "deleteList": "List deleted",
}


def _verify_secret(secret_id: str | None, secret: str) -> bool:
    if not secret_id or not secret:
        return False
    return hmac.compare_digest(secret_id.encode("utf-8"), secret.encode("utf-8"))


class TrelloWebhookHandler:
    provider = Provider.TRELLO
    codenames = frozenset(DESCRIPTIONS)

    def verify(self, method: str, secret_id: str | None) -> Verification:
        """
        HEAD is Trello's liveness check and always passes.

        A wrong secretId answers 410, which makes Trello drop the webhook.
        """
        if method.upper() == "HEAD":
            return Verification.ok()
        if not settings.WEBHOOK_SECRET:
            logger.error("WEBHOOK_SECRET not configured")
            return Verification.rejected("webhook not configured", 403)
        if not _verify_secret(secret_id, settings.WEBHOOK_SECRET):
            return Verification.rejected("invalid secret", 410)
        return Verification.ok()

    def classify(self, payload: dict) -> str | None:
        action = payload.get("action") or {}
        action_type = action.get("type")
        data = action.get("data") or {}

        if action_type == "createCard":
            return "createCard"
        if action_type == "updateCard":
            card = data.get("card") or {}
            if card.get("closed"):
                return "deleteCard"
            if data.get("listBefore") or data.get("listAfter"):
                return "moveCard"
            if (data.get("old") or {}).get("idList"):
                # Trello sends a second updateCard for every move; drop it
                return None
            return "updateCard"
        if action_type == "createList":
            return "createList"
        if action_type == "updateList":
            if (data.get("list") or {}).get("closed"):
                return "deleteList"
            return "updateList"
        return None

    def render_fields(self, payload: dict, codename: str) -> list[tuple[str, str]]:
        data = (payload.get("action") or {}).get("data") or {}
        board = (data.get("board") or {}).get("name", "")

        if codename in ("createList", "updateList", "deleteList"):
            return [("List:", (data.get("list") or {}).get("name", "")), ("Board:", board)]

        card = data.get("card") or {}
        fields = [("Card:", card.get("name", ""))]
        if card.get("desc"):
            fields.append(("Description:", card["desc"]))
        if codename == "moveCard":
            fields.append(("List before:", (data.get("listBefore") or {}).get("name", "")))
            fields.append(("List after:", (data.get("listAfter") or {}).get("name", "")))
        fields.append(("Board:", board))
        return fields

    def build_record(self, payload: dict, codename: str) -> NotificationRecord:
        return NotificationRecord(
            title=TITLE,
            description=DESCRIPTIONS[codename],
            fields=self.render_fields(payload, codename),
            color=COLOR,
            thumbnail=THUMBNAIL,
            inline_labels=frozenset({"Description:", "List before:", "List after:"}),
        )

    async def handle(self, request: Request, db: Session, **kwargs) -> RelayOutcome:
        """
        Receive a Trello action callback.

        The guild is identified by the ``guildId`` query parameter; the
        shared secret travels as ``secretId`` in the same query string.
        """
        sink = kwargs["sink"]
        guild_id = request.query_params.get("guildId")
        log_context = build_log_context(guild_id=guild_id, provider=self.provider.value, route="trello")

        verification = self.verify(request.method, request.query_params.get("secretId"))
        if not verification.authentic:
            logger.warning("Trello webhook rejected: %s", verification.reason, extra=log_context)
            return RelayOutcome.rejected(verification.reason, verification.status_code)
        if request.method.upper() == "HEAD":
            return RelayOutcome.ok(reason="alive")

        body = await read_body_safe(request)
        payload = parse_json(body)
        if payload is None:
            logger.info("Trello webhook with non-JSON body", extra=log_context)
            return RelayOutcome.recoverable("invalid json")
        if not guild_id:
            return RelayOutcome.recoverable("missing guildId")

        codename = self.classify(payload)
        if codename is None:
            action_type = (payload.get("action") or {}).get("type")
            logger.info("Trello action not relayed: %s", action_type, extra=log_context)
            return RelayOutcome.ok(reason="ignored")

        record = self.build_record(payload, codename)
        return await relay_service.relay_notification(
            db, sink, guild_id, self.provider, codename, record
        )

    async def register_webhook(
        self, guild_id: str, credentials: dict[str, str], db: Session
    ) -> TrelloRegistration:
        result = await trello_service.register_board_webhooks(
            guild_id,
            credentials["Organization ID"],
            credentials["API Key"],
            credentials["API Token"],
        )
        if not result.success_boards:
            raise CredentialsError("Could not create Trello webhooks for any board")
        return result

    async def teardown_webhook(
        self, guild_id: str, credentials: dict[str, str] | None, db: Session
    ) -> None:
        if credentials is None:
            return
        # Removes every webhook of the token, not only this guild's
        await trello_service.remove_all_webhooks(credentials["API Key"], credentials["API Token"])
