"""GitHub REST calls used to manage the organization webhook."""

from __future__ import annotations

import logging
from urllib.parse import quote

from guildrelay.core.config import settings
from guildrelay.core.errors import ProviderNotFoundError
from guildrelay.services.http_service import provider_request

logger = logging.getLogger(__name__)

PROVIDER = "github"


def _headers(api_token: str) -> dict[str, str]:
    return {
        "Authorization": f"token {api_token}",
        "Accept": "application/vnd.github.v3+json",
    }


def _hooks_url(org: str) -> str:
    return f"{settings.GITHUB_API_BASE_URL}/orgs/{quote(org, safe='')}/hooks"


async def list_org_hooks(org: str, api_token: str) -> list[dict]:
    response = await provider_request(PROVIDER, "GET", _hooks_url(org), headers=_headers(api_token))
    return response.json()


def find_hook(hooks: list[dict], callback_url: str) -> dict | None:
    for hook in hooks:
        if (hook.get("config") or {}).get("url") == callback_url:
            return hook
    return None


async def create_org_hook(guild_id: str, org: str, api_token: str) -> dict:
    """
    Subscribe this guild's callback URL to every event of the organization.

    If a hook with the same URL exists it is returned instead.
    """
    callback_url = settings.github_callback_url(guild_id)
    existing = find_hook(await list_org_hooks(org, api_token), callback_url)
    if existing is not None:
        logger.info("GitHub webhook already exists id=%s org=%s", existing.get("id"), org)
        return {"hook_id": existing.get("id"), "created": False}

    response = await provider_request(
        PROVIDER,
        "POST",
        _hooks_url(org),
        headers=_headers(api_token),
        json={
            "name": "web",
            "config": {
                "url": callback_url,
                "content_type": "json",
                "secret": settings.WEBHOOK_SECRET,
            },
            "events": ["*"],
            "active": True,
        },
    )
    hook = response.json()
    logger.info("GitHub webhook created id=%s org=%s", hook.get("id"), org)
    return {"hook_id": hook.get("id"), "created": True}


async def delete_org_hook(guild_id: str, org: str, api_token: str) -> bool:
    """Delete the guild's hook. Returns False when there was nothing to delete."""
    callback_url = settings.github_callback_url(guild_id)
    hook = find_hook(await list_org_hooks(org, api_token), callback_url)
    if hook is None:
        logger.info("GitHub webhook not found org=%s", org)
        return False

    try:
        await provider_request(
            PROVIDER,
            "DELETE",
            f"{_hooks_url(org)}/{quote(str(hook['id']), safe='')}",
            headers=_headers(api_token),
        )
    except ProviderNotFoundError:
        return False
    logger.info("GitHub webhook deleted id=%s org=%s", hook["id"], org)
    return True
