from __future__ import annotations

import pytest

from factories import (
    CHANNEL_ID,
    GITHUB_TOKENS,
    GUILD_ID,
    INTERNAL_HEADERS,
    TRELLO_TOKENS,
    configure,
)
from guildrelay.core.errors import ProviderAuthError
from guildrelay.db.enums import Provider
from guildrelay.services import github_service, integration_service, trello_service
from guildrelay.services.trello_service import TrelloRegistration


def _token_items(tokens: dict[str, str]) -> dict:
    return {"tokens": [{"name": name, "key": key} for name, key in tokens.items()]}


# =============================================================================
# Internal secret
# =============================================================================


@pytest.mark.asyncio
async def test_missing_internal_secret_is_forbidden(client):
    response = await client.post("/guilds", json={"guild_id": GUILD_ID})
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_unconfigured_internal_secret_is_not_implemented(client, monkeypatch):
    from guildrelay.core.config import settings

    monkeypatch.setattr(settings, "INTERNAL_SECRET", "")
    response = await client.post("/guilds", json={"guild_id": GUILD_ID}, headers=INTERNAL_HEADERS)
    assert response.status_code == 501


# =============================================================================
# Guild lifecycle
# =============================================================================


@pytest.mark.asyncio
async def test_onboard_guild(client, db):
    response = await client.post(
        "/guilds",
        json={"guild_id": GUILD_ID, "channel_id": CHANNEL_ID},
        headers=INTERNAL_HEADERS,
    )

    assert response.status_code == 201
    assert sorted(response.json()["providers"]) == ["github", "googlecalendar", "trello"]
    assert integration_service.guild_exists(db, GUILD_ID)


@pytest.mark.asyncio
async def test_onboard_existing_guild_conflicts(client, guild):
    response = await client.post("/guilds", json={"guild_id": GUILD_ID}, headers=INTERNAL_HEADERS)
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_delete_guild_tears_down_configured_webhooks(client, db, guild, monkeypatch):
    configure(db, Provider.GITHUB, GITHUB_TOKENS)
    deleted = []

    async def fake_delete(guild_id, org, token):
        deleted.append((guild_id, org))
        return True

    monkeypatch.setattr(github_service, "delete_org_hook", fake_delete)

    response = await client.delete(f"/guilds/{GUILD_ID}", headers=INTERNAL_HEADERS)

    assert response.status_code == 204
    assert deleted == [(GUILD_ID, "acme")]
    assert not integration_service.guild_exists(db, GUILD_ID)


@pytest.mark.asyncio
async def test_delete_unknown_guild(client):
    response = await client.delete("/guilds/404", headers=INTERNAL_HEADERS)
    assert response.status_code == 404


# =============================================================================
# Integration settings
# =============================================================================


@pytest.mark.asyncio
async def test_update_integration_channel(client, guild):
    response = await client.patch(
        f"/guilds/{GUILD_ID}/integrations/github",
        json={"channel_id": "4242", "enabled": False},
        headers=INTERNAL_HEADERS,
    )

    assert response.status_code == 200
    body = response.json()
    assert body["discord_channel"] == "4242"
    assert body["enabled"] is False


@pytest.mark.asyncio
async def test_unknown_provider_is_not_found(client, guild):
    response = await client.get(f"/guilds/{GUILD_ID}/integrations/slack", headers=INTERNAL_HEADERS)
    assert response.status_code == 404


# =============================================================================
# Credentials
# =============================================================================


@pytest.mark.asyncio
async def test_token_names_report_configuration(client, db, guild):
    configure(db, Provider.GITHUB, GITHUB_TOKENS)

    response = await client.get(f"/guilds/{GUILD_ID}/integrations/github/tokens", headers=INTERNAL_HEADERS)

    assert response.json() == {
        "provider": "github",
        "tokens": {"Token": True, "Organization": True},
        "configured": True,
    }


@pytest.mark.asyncio
async def test_put_trello_tokens_registers_boards(client, db, guild, monkeypatch):
    async def fake_register(guild_id, org_id, key, token):
        assert (org_id, key, token) == ("org-1", "trello-key", "trello-token")
        return TrelloRegistration(success_boards=["Roadmap"], failed_boards=["Ops"])

    monkeypatch.setattr(trello_service, "register_board_webhooks", fake_register)

    response = await client.put(
        f"/guilds/{GUILD_ID}/integrations/trello/tokens",
        json=_token_items(TRELLO_TOKENS),
        headers=INTERNAL_HEADERS,
    )

    assert response.status_code == 200
    assert response.json()["success_boards"] == ["Roadmap"]
    assert response.json()["failed_boards"] == ["Ops"]
    integration_id = integration_service.get_integration_id(db, GUILD_ID, Provider.TRELLO)
    assert integration_service.get_credentials(db, integration_id) == TRELLO_TOKENS


@pytest.mark.asyncio
async def test_put_incomplete_batch_is_rejected_and_cleared(client, db, guild, monkeypatch):
    integration_id = configure(db, Provider.GITHUB, GITHUB_TOKENS)
    torn_down = []

    async def fake_delete(guild_id, org, token):
        torn_down.append(org)
        return True

    monkeypatch.setattr(github_service, "delete_org_hook", fake_delete)

    response = await client.put(
        f"/guilds/{GUILD_ID}/integrations/github/tokens",
        json=_token_items({"Token": "gh-token"}),
        headers=INTERNAL_HEADERS,
    )

    assert response.status_code == 400
    assert torn_down == ["acme"]
    assert integration_service.get_credentials(db, integration_id) is None


@pytest.mark.asyncio
async def test_put_tokens_rejected_by_provider_clears_batch(client, db, guild, monkeypatch):
    async def refuse(guild_id, org, token):
        raise ProviderAuthError("github", "POST /orgs/acme/hooks returned 401", status_code=401)

    monkeypatch.setattr(github_service, "create_org_hook", refuse)

    response = await client.put(
        f"/guilds/{GUILD_ID}/integrations/github/tokens",
        json=_token_items(GITHUB_TOKENS),
        headers=INTERNAL_HEADERS,
    )

    assert response.status_code == 502
    integration_id = integration_service.get_integration_id(db, GUILD_ID, Provider.GITHUB)
    assert integration_service.get_credentials(db, integration_id) is None


@pytest.mark.asyncio
async def test_delete_tokens(client, db, guild, monkeypatch):
    integration_id = configure(db, Provider.GITHUB, GITHUB_TOKENS)

    async def fake_delete(guild_id, org, token):
        return False

    monkeypatch.setattr(github_service, "delete_org_hook", fake_delete)

    response = await client.delete(f"/guilds/{GUILD_ID}/integrations/github/tokens", headers=INTERNAL_HEADERS)

    assert response.status_code == 204
    assert integration_service.get_credentials(db, integration_id) is None


# =============================================================================
# Notifications
# =============================================================================


@pytest.mark.asyncio
async def test_enable_and_list_notifications(client, guild):
    response = await client.post(
        f"/guilds/{GUILD_ID}/integrations/github/notifications",
        json={"names": ["Push", "Release", "Push"]},
        headers=INTERNAL_HEADERS,
    )

    assert response.status_code == 200
    enabled = {item["name"] for item in response.json() if item["enabled"]}
    assert enabled == {"Push", "Release"}

    listing = await client.get(f"/guilds/{GUILD_ID}/integrations/github/notifications", headers=INTERNAL_HEADERS)
    push = next(item for item in listing.json() if item["name"] == "Push")
    assert push == {
        "name": "Push",
        "description": "Triggered when a push is made",
        "codename": "github-push",
        "enabled": True,
    }


@pytest.mark.asyncio
async def test_enable_unknown_notification_is_rejected(client, db, guild):
    response = await client.post(
        f"/guilds/{GUILD_ID}/integrations/github/notifications",
        json={"names": ["Push", "Card Created"]},
        headers=INTERNAL_HEADERS,
    )

    assert response.status_code == 400
    integration_id = integration_service.get_integration_id(db, GUILD_ID, Provider.GITHUB)
    assert integration_service.get_all_notifications(db, integration_id) == []


@pytest.mark.asyncio
async def test_disable_notification(client, guild):
    await client.post(
        f"/guilds/{GUILD_ID}/integrations/github/notifications",
        json={"names": ["Push"]},
        headers=INTERNAL_HEADERS,
    )

    first = await client.delete(f"/guilds/{GUILD_ID}/integrations/github/notifications/Push", headers=INTERNAL_HEADERS)
    second = await client.delete(f"/guilds/{GUILD_ID}/integrations/github/notifications/Push", headers=INTERNAL_HEADERS)

    assert first.status_code == 204
    assert second.status_code == 404
