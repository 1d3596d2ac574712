from __future__ import annotations

import pytest

from guildrelay.db.enums import Provider
from guildrelay.services import notification_catalog
from guildrelay.services.webhooks import registry
from guildrelay.services.webhooks.github import GitHubWebhookHandler


def test_every_emitted_codename_is_catalogued():
    notification_catalog.validate_catalogs()


def test_uncatalogued_codename_fails_validation(monkeypatch):
    monkeypatch.setattr(
        GitHubWebhookHandler,
        "codenames",
        GitHubWebhookHandler.codenames | {"github-star"},
    )

    with pytest.raises(RuntimeError, match="github-star"):
        notification_catalog.validate_catalogs()


def test_names_and_codenames_are_unique_per_provider():
    for provider in Provider:
        catalog = notification_catalog.get_catalog(provider)
        assert len({entry.name for entry in catalog}) == len(catalog)
        assert len({entry.codename for entry in catalog}) == len(catalog)


def test_lookup_by_name_and_codename():
    entry = notification_catalog.find_by_name("trello", "Card Move")

    assert entry.codename == "moveCard"
    assert notification_catalog.find_by_codename(Provider.TRELLO, "moveCard") == entry
    assert notification_catalog.find_by_name(Provider.GITHUB, "Card Move") is None


def test_registry_covers_every_provider():
    assert {provider for provider, _ in registry.iter_handlers()} == set(Provider)
    with pytest.raises(KeyError):
        registry.get_handler("slack")
