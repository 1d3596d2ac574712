from __future__ import annotations

import pytest

from factories import GITHUB_TOKENS, GUILD_ID, configure
from guildrelay.core.errors import NotFoundError, TransientProviderError
from guildrelay.db.enums import Provider
from guildrelay.services import credentials_service, github_service, integration_service


@pytest.fixture
def github_calls(monkeypatch):
    calls = []

    async def fake_create(guild_id, org, token):
        calls.append(("create", org, token))
        return {"hook_id": 1, "created": True}

    async def fake_delete(guild_id, org, token):
        calls.append(("delete", org, token))
        return True

    monkeypatch.setattr(github_service, "create_org_hook", fake_create)
    monkeypatch.setattr(github_service, "delete_org_hook", fake_delete)
    return calls


@pytest.mark.asyncio
async def test_update_tears_down_old_hook_before_registering(db, guild, github_calls):
    configure(db, Provider.GITHUB, {"Token": "old-token", "Organization": "old-org"})

    result = await credentials_service.update_credentials(
        db, GUILD_ID, Provider.GITHUB, {"Token": " gh-token ", "Organization": "acme"}
    )

    assert result == {"hook_id": 1, "created": True}
    assert github_calls == [("delete", "old-org", "old-token"), ("create", "acme", "gh-token")]
    integration_id = integration_service.get_integration_id(db, GUILD_ID, Provider.GITHUB)
    assert integration_service.get_credentials(db, integration_id) == GITHUB_TOKENS


@pytest.mark.asyncio
async def test_failed_teardown_does_not_block_update(db, guild, github_calls, monkeypatch):
    configure(db, Provider.GITHUB, GITHUB_TOKENS)

    async def flaky_delete(guild_id, org, token):
        raise TransientProviderError("github", "DELETE returned 503", status_code=503)

    monkeypatch.setattr(github_service, "delete_org_hook", flaky_delete)

    await credentials_service.update_credentials(db, GUILD_ID, Provider.GITHUB, GITHUB_TOKENS)

    assert github_calls == [("create", "acme", "gh-token")]


@pytest.mark.asyncio
async def test_failed_registration_clears_batch(db, guild, monkeypatch):
    async def refuse(guild_id, org, token):
        raise TransientProviderError("github", "POST returned 502", status_code=502)

    monkeypatch.setattr(github_service, "create_org_hook", refuse)

    with pytest.raises(TransientProviderError):
        await credentials_service.update_credentials(db, GUILD_ID, Provider.GITHUB, GITHUB_TOKENS)

    integration_id = integration_service.get_integration_id(db, GUILD_ID, Provider.GITHUB)
    assert integration_service.get_credentials(db, integration_id) is None


@pytest.mark.asyncio
async def test_update_unknown_guild_raises(db):
    with pytest.raises(NotFoundError):
        await credentials_service.update_credentials(db, "404", Provider.GITHUB, GITHUB_TOKENS)


@pytest.mark.asyncio
async def test_teardown_guild_removes_rows(db, guild, github_calls):
    configure(db, Provider.GITHUB, GITHUB_TOKENS)

    await credentials_service.teardown_guild(db, GUILD_ID)

    assert github_calls == [("delete", "acme", "gh-token")]
    assert not integration_service.guild_exists(db, GUILD_ID)
