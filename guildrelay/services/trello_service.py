"""Trello REST calls used to manage board webhooks."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from urllib.parse import quote

from guildrelay.core.config import settings
from guildrelay.core.errors import ProviderError, ProviderNotFoundError
from guildrelay.services.http_service import provider_request

logger = logging.getLogger(__name__)

PROVIDER = "trello"


@dataclass
class TrelloRegistration:
    """Outcome of registering one webhook per organization board."""

    created: list[dict[str, str]] = field(default_factory=list)
    success_boards: list[str] = field(default_factory=list)
    failed_boards: list[str] = field(default_factory=list)


def _auth(api_key: str, api_token: str) -> dict[str, str]:
    return {"key": api_key, "token": api_token}


async def get_boards(org_id: str, api_key: str, api_token: str) -> list[dict]:
    response = await provider_request(
        PROVIDER,
        "GET",
        f"{settings.TRELLO_API_BASE_URL}/organizations/{quote(org_id, safe='')}/boards",
        params=_auth(api_key, api_token),
        headers={"Accept": "application/json"},
    )
    return [
        {"id": board.get("id"), "name": board.get("name"), "desc": board.get("desc")}
        for board in response.json()
    ]


async def list_token_webhooks(api_key: str, api_token: str) -> list[dict]:
    response = await provider_request(
        PROVIDER,
        "GET",
        f"{settings.TRELLO_API_BASE_URL}/tokens/{quote(api_token, safe='')}/webhooks",
        params=_auth(api_key, api_token),
        headers={"Accept": "application/json"},
    )
    return response.json()


async def create_webhook(callback_url: str, model_id: str, api_key: str, api_token: str) -> str:
    response = await provider_request(
        PROVIDER,
        "POST",
        f"{settings.TRELLO_API_BASE_URL}/tokens/{quote(api_token, safe='')}/webhooks",
        params=_auth(api_key, api_token),
        json={"callbackURL": callback_url, "idModel": model_id},
        headers={"Accept": "application/json"},
    )
    return response.json()["id"]


async def delete_webhook(webhook_id: str, api_key: str, api_token: str) -> None:
    await provider_request(
        PROVIDER,
        "DELETE",
        f"{settings.TRELLO_API_BASE_URL}/webhooks/{quote(str(webhook_id), safe='')}",
        params=_auth(api_key, api_token),
    )


async def register_board_webhooks(
    guild_id: str,
    org_id: str,
    api_key: str,
    api_token: str,
) -> TrelloRegistration:
    """
    Create one webhook per board of the organization.

    Boards that already have a webhook for this guild's callback URL count as
    successes without a second create. Per-board failures are collected,
    not raised; failing to list boards or webhooks is raised.
    """
    callback_url = settings.trello_callback_url(guild_id)
    boards = await get_boards(org_id, api_key, api_token)
    existing = {
        webhook.get("idModel")
        for webhook in await list_token_webhooks(api_key, api_token)
        if webhook.get("callbackURL") == callback_url
    }

    result = TrelloRegistration()

    async def _register(board: dict) -> None:
        if board["id"] in existing:
            logger.info("Trello webhook already present for board %s", board["id"])
            result.success_boards.append(board["name"])
            return
        try:
            webhook_id = await create_webhook(callback_url, board["id"], api_key, api_token)
        except ProviderError as exc:
            logger.warning("Trello webhook creation failed for board %s: %s", board["id"], exc)
            result.failed_boards.append(board["name"])
            return
        result.created.append({"webhook_id": webhook_id, "board_id": board["id"]})
        result.success_boards.append(board["name"])

    await asyncio.gather(*(_register(board) for board in boards))
    return result


async def remove_all_webhooks(api_key: str, api_token: str) -> int:
    """
    Delete every webhook owned by the API token, including ones other
    applications created with the same token. Trello has no narrower filter.

    Returns the number of webhooks deleted; already-deleted ones are skipped.
    """
    try:
        webhooks = await list_token_webhooks(api_key, api_token)
    except ProviderNotFoundError:
        logger.info("Trello token has no webhooks to remove")
        return 0

    deleted = 0
    for webhook in webhooks:
        try:
            await delete_webhook(webhook["id"], api_key, api_token)
        except ProviderNotFoundError:
            continue
        deleted += 1
    logger.info("Removed %d Trello webhooks", deleted)
    return deleted
