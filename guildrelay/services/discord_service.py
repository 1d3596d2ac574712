"""Discord delivery sink.

A single REST client is created at startup and shared by every request.
Delivery is best-effort: failures are logged, never raised to the endpoint.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any

import httpx

from guildrelay.core.config import settings
from guildrelay.core.errors import ProviderError, TransientProviderError
from guildrelay.services.http_service import raise_for_provider_status
from guildrelay.services.webhooks.base import NotificationRecord

logger = logging.getLogger(__name__)

PROVIDER = "discord"

# Discord embed limits
MAX_FIELDS = 25
MAX_FIELD_NAME = 256
MAX_FIELD_VALUE = 1024
MAX_DESCRIPTION = 4096


class DiscordRestClient:
    def __init__(
        self,
        *,
        bot_token: str,
        timeout_seconds: float = 5.0,
        base_url: str = "https://discord.com/api/v10",
        max_rate_limit_retries: int = 2,
    ) -> None:
        self._client = httpx.AsyncClient(base_url=base_url, timeout=timeout_seconds)
        self._authorization_header = f"Bot {bot_token}"
        self._max_rate_limit_retries = max_rate_limit_retries

    @classmethod
    def from_settings(cls) -> "DiscordRestClient":
        return cls(
            bot_token=settings.DISCORD_BOT_TOKEN,
            timeout_seconds=settings.DISCORD_HTTP_TIMEOUT,
            base_url=settings.DISCORD_API_BASE_URL,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "DiscordRestClient":
        return self

    async def __aexit__(self, *_exc_info: object) -> None:
        await self.close()

    async def _request(self, method: str, path: str, *, payload: dict[str, Any] | None = None) -> Any:
        rate_limit_retries = 0
        while True:
            try:
                response = await self._client.request(
                    method,
                    path,
                    json=payload,
                    headers={"Authorization": self._authorization_header},
                )
            except httpx.RequestError as exc:
                raise TransientProviderError(PROVIDER, f"{method} {path} failed: {exc}") from exc

            if response.status_code == 429 and rate_limit_retries < self._max_rate_limit_retries:
                rate_limit_retries += 1
                try:
                    retry_after = max(float(response.headers.get("Retry-After", "1")), 0.0)
                except ValueError:
                    retry_after = 1.0
                logger.info(
                    "Discord rate limited on %s %s, retrying after %.1fs (attempt %d)",
                    method,
                    path,
                    retry_after,
                    rate_limit_retries,
                )
                await asyncio.sleep(retry_after)
                continue

            raise_for_provider_status(PROVIDER, response, method=method, url=path)
            if not response.content:
                return None
            return response.json()

    async def create_message(self, channel_id: str, payload: dict[str, Any]) -> dict[str, Any]:
        return await self._request("POST", f"/channels/{channel_id}/messages", payload=payload)


def _clip(value: str, limit: int) -> str:
    return value if len(value) <= limit else value[: limit - 3] + "..."


def build_embed(record: NotificationRecord) -> dict[str, Any]:
    embed: dict[str, Any] = {
        "title": record.title,
        "color": record.color,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "fields": [
            {
                "name": _clip(name, MAX_FIELD_NAME),
                # Discord rejects empty field values
                "value": _clip(value, MAX_FIELD_VALUE) if value else "-",
                "inline": record.inline_fields or name in record.inline_labels,
            }
            for name, value in record.fields[:MAX_FIELDS]
        ],
    }
    if record.description:
        embed["description"] = _clip(record.description, MAX_DESCRIPTION)
    if record.url:
        embed["url"] = record.url
    if record.thumbnail:
        embed["thumbnail"] = {"url": record.thumbnail}
    return embed


async def deliver(client: DiscordRestClient, channel_id: str, record: NotificationRecord) -> bool:
    """
    Post the record to a channel. Returns False on any failure.

    A deleted channel, a bot kicked from the guild or a network error must not
    change the response we give the provider, so nothing is raised.
    """
    try:
        await client.create_message(channel_id, {"embeds": [build_embed(record)]})
    except ProviderError as exc:
        logger.warning(
            "Discord delivery failed channel=%s status=%s: %s",
            channel_id,
            exc.status_code,
            exc,
        )
        return False
    except Exception:
        logger.exception("Unexpected Discord delivery error channel=%s", channel_id)
        return False
    return True
