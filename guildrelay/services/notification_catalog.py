"""Static notification catalogs per provider.

A guild's enabled-notification rows store the display ``name``; handlers emit
the ``codename``. The gate joins the two through these tables.
"""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping

from guildrelay.db.enums import Provider


@dataclass(frozen=True)
class NotificationType:
    name: str
    description: str
    codename: str


TRELLO_NOTIFICATIONS: tuple[NotificationType, ...] = (
    NotificationType("Card Created", "Triggered when a Trello card is created", "createCard"),
    NotificationType("Card Updated", "Triggered when a Trello card is updated", "updateCard"),
    NotificationType("Card Move", "Triggered when a Trello card is moved", "moveCard"),
    NotificationType("Card Deleted", "Triggered when a Trello card is deleted", "deleteCard"),
    NotificationType("List Created", "Triggered when a Trello list is created", "createList"),
    NotificationType("List Updated", "Triggered when a Trello list is updated", "updateList"),
    NotificationType("List Deleted", "Triggered when a Trello list is deleted", "deleteList"),
)

GITHUB_NOTIFICATIONS: tuple[NotificationType, ...] = (
    NotificationType("Push", "Triggered when a push is made", "github-push"),
    NotificationType("Pull Request", "Triggered when a pull request is made", "github-pull-request"),
    NotificationType("Release", "Triggered when a release is made", "github-release"),
    NotificationType("Discussions", "Triggered when a discussion is made", "github-discussions"),
    NotificationType("Branch", "Triggered when a branch is made", "github-branch"),
    NotificationType("Commit", "Triggered when a commit is made", "github-commit"),
    NotificationType("Deployment", "Triggered when a deployment is made", "github-deployment"),
    NotificationType(
        "Deployment Status",
        "Triggered when a deployment status is updated",
        "github-deployment-status",
    ),
    NotificationType("Member", "Triggered when a member is added", "github-member"),
    NotificationType(
        "Pull Request Review",
        "Triggered when a pull request review is made",
        "github-pull-request-review",
    ),
    NotificationType(
        "Pull Request Review Comment",
        "Triggered when a pull request review comment is made",
        "github-pull-request-review-comment",
    ),
    NotificationType(
        "Pull Request Review Thread",
        "Triggered when a pull request review thread is made",
        "github-pull-request-review-thread",
    ),
)

GOOGLE_CALENDAR_NOTIFICATIONS: tuple[NotificationType, ...] = (
    NotificationType(
        "Calendar Event Created",
        "Triggered when a Google Calendar event is created",
        "google-calendar-event-created",
    ),
    NotificationType(
        "Calendar Event Updated",
        "Triggered when a Google Calendar event is updated",
        "google-calendar-event-updated",
    ),
    NotificationType(
        "Calendar Event Deleted",
        "Triggered when a Google Calendar event is deleted",
        "google-calendar-event-deleted",
    ),
)

CATALOGS: Mapping[Provider, tuple[NotificationType, ...]] = MappingProxyType(
    {
        Provider.TRELLO: TRELLO_NOTIFICATIONS,
        Provider.GITHUB: GITHUB_NOTIFICATIONS,
        Provider.GOOGLE_CALENDAR: GOOGLE_CALENDAR_NOTIFICATIONS,
    }
)


def get_catalog(provider: Provider | str) -> tuple[NotificationType, ...]:
    return CATALOGS[Provider(provider)]


def find_by_codename(provider: Provider | str, codename: str) -> NotificationType | None:
    for entry in get_catalog(provider):
        if entry.codename == codename:
            return entry
    return None


def find_by_name(provider: Provider | str, name: str) -> NotificationType | None:
    for entry in get_catalog(provider):
        if entry.name == name:
            return entry
    return None


def validate_catalogs() -> None:
    """
    Check that every codename a webhook handler can emit is catalogued.

    Called once at startup; a mismatch is a programming error, so raise.
    """
    from guildrelay.services.webhooks.registry import iter_handlers

    for provider, handler in iter_handlers():
        known = {entry.codename for entry in get_catalog(provider)}
        missing = set(handler.codenames) - known
        if missing:
            raise RuntimeError(
                f"{provider.value} handler emits uncatalogued codenames: {sorted(missing)}"
            )
