from __future__ import annotations

import pytest

from factories import GUILD_ID, enable, github_signature, json_body
from guildrelay.db.enums import Provider
from guildrelay.services.webhooks.github import GitHubWebhookHandler

GITHUB_URL = f"/github-webhook?guildId={GUILD_ID}"

PULL_REQUEST = {
    "action": "opened",
    "repository": {"full_name": "acme/widgets"},
    "pull_request": {"title": "Add feature"},
}


def _headers(body: bytes, event: str = "pull_request", signature: str | None = None) -> dict[str, str]:
    return {
        "X-GitHub-Event": event,
        "X-Hub-Signature": signature if signature is not None else github_signature(body),
        "Content-Type": "application/json",
    }


def test_pull_request_fields():
    handler = GitHubWebhookHandler()
    codename = handler.classify("pull_request")

    assert codename == "github-pull-request"
    assert handler.render_fields(PULL_REQUEST, codename) == [
        ("Repository", "acme/widgets"),
        ("Pull Request", "Add feature"),
        ("Action", "opened"),
    ]


def test_push_counts_commits():
    handler = GitHubWebhookHandler()
    payload = {
        "repository": {"full_name": "acme/widgets"},
        "pusher": {"name": "octocat"},
        "commits": [{"id": "a"}, {"id": "b"}, {"id": "c"}],
    }

    assert handler.render_fields(payload, "github-push") == [
        ("Repository", "acme/widgets"),
        ("Pusher", "octocat"),
        ("Commits", "3"),
    ]


def test_missing_payload_values_render_empty():
    fields = GitHubWebhookHandler().render_fields({"action": "created"}, "github-member")
    assert fields == [("Repository", ""), ("Member", ""), ("Action", "created")]


@pytest.mark.parametrize("event", ["star", "ping", "", None])
def test_unmapped_events_are_not_classified(event):
    assert GitHubWebhookHandler().classify(event) is None


@pytest.mark.asyncio
async def test_signed_pull_request_is_delivered(client, db, guild, discord_client):
    enable(db, Provider.GITHUB, "Pull Request")
    body = json_body(PULL_REQUEST)

    response = await client.post(GITHUB_URL, content=body, headers=_headers(body))

    assert response.status_code == 200
    assert response.json()["codename"] == "github-pull-request"
    embed = discord_client.embeds[0]
    assert embed["title"] == "Github Notification"
    assert embed["description"] == "A new Github event has occurred: github-pull-request"
    assert all(field["inline"] for field in embed["fields"])


@pytest.mark.asyncio
async def test_tampered_body_is_rejected_before_classification(client, db, guild, discord_client, monkeypatch):
    enable(db, Provider.GITHUB, "Pull Request")

    def fail_classify(self, event_type):
        raise AssertionError("classify must not run for unverified deliveries")

    monkeypatch.setattr(GitHubWebhookHandler, "classify", fail_classify)

    body = json_body(PULL_REQUEST)
    tampered = body.replace(b"opened", b"closed")

    response = await client.post(GITHUB_URL, content=tampered, headers=_headers(body))

    assert response.status_code == 403
    assert response.json() == {"status": "rejected", "reason": "invalid signature"}
    assert discord_client.sent == []


@pytest.mark.asyncio
async def test_signature_with_other_secret_is_rejected(client, guild, discord_client):
    body = json_body(PULL_REQUEST)

    response = await client.post(
        GITHUB_URL,
        content=body,
        headers=_headers(body, signature=github_signature(body, "other-secret")),
    )

    assert response.status_code == 403
    assert discord_client.sent == []


@pytest.mark.asyncio
async def test_missing_signature_is_rejected(client, guild):
    body = json_body(PULL_REQUEST)

    response = await client.post(
        GITHUB_URL,
        content=body,
        headers={"X-GitHub-Event": "pull_request"},
    )

    assert response.status_code == 403
    assert response.json()["reason"] == "missing signature"


@pytest.mark.asyncio
async def test_unknown_event_is_acknowledged(client, db, guild, discord_client):
    enable(db, Provider.GITHUB, "Pull Request")
    body = json_body({"zen": "Keep it logically awesome."})

    response = await client.post(GITHUB_URL, content=body, headers=_headers(body, event="ping"))

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "reason": "ignored"}
    assert discord_client.sent == []


@pytest.mark.asyncio
async def test_missing_channel_is_recoverable(client, db, guild, discord_client):
    from guildrelay.db.models import Integration

    enable(db, Provider.GITHUB, "Pull Request")
    integration = (
        db.query(Integration)
        .filter(Integration.guild_id == GUILD_ID, Integration.provider == Provider.GITHUB.value)
        .one()
    )
    integration.discord_channel = None
    db.commit()
    body = json_body(PULL_REQUEST)

    response = await client.post(GITHUB_URL, content=body, headers=_headers(body))

    assert response.status_code == 200
    assert response.json()["reason"] == "no channel configured"
    assert discord_client.sent == []


@pytest.mark.asyncio
async def test_discord_failure_does_not_change_response(client, db, guild, discord_client):
    from guildrelay.core.errors import ProviderNotFoundError

    enable(db, Provider.GITHUB, "Pull Request")
    discord_client.fail_with = ProviderNotFoundError("discord", "channel deleted", status_code=404)
    body = json_body(PULL_REQUEST)

    response = await client.post(GITHUB_URL, content=body, headers=_headers(body))

    assert response.status_code == 200
    assert response.json()["status"] == "recoverable"
    assert response.json()["reason"] == "delivery failed"


@pytest.mark.asyncio
async def test_non_ascii_signature_is_rejected(client, guild, discord_client):
    body = json_body(PULL_REQUEST)

    response = await client.post(
        GITHUB_URL,
        content=body,
        headers={"X-GitHub-Event": "pull_request", "X-Hub-Signature": b"sha1=\xe9\xe9"},
    )

    assert response.status_code == 403
    assert response.json()["reason"] == "invalid signature"
    assert discord_client.sent == []
