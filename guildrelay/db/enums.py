"""Enum definitions for application constants."""

from enum import Enum


class Provider(str, Enum):
    """External services a guild can connect."""
    TRELLO = "trello"
    GITHUB = "github"
    GOOGLE_CALENDAR = "googlecalendar"

    @classmethod
    def has_value(cls, value: str) -> bool:
        return value in cls._value2member_map_


class ServiceType(str, Enum):
    """
    Kinds of per-integration enablement rows.

    - NOTIFICATIONS: relay event types a guild subscribed to
    - COMMANDS: slash commands enabled for the guild (managed by the bot)
    """
    NOTIFICATIONS = "notifications"
    COMMANDS = "commands"


class OutcomeKind(str, Enum):
    """How a single inbound webhook delivery ended."""
    OK = "ok"
    RECOVERABLE = "recoverable"
    FATAL = "fatal"
    REJECTED = "rejected"


# Credential names per provider, in the order the dashboard displays them.
PROVIDER_TOKEN_NAMES: dict[Provider, tuple[str, ...]] = {
    Provider.TRELLO: ("Organization ID", "API Key", "API Token"),
    Provider.GITHUB: ("Token", "Organization"),
    Provider.GOOGLE_CALENDAR: ("Calendar ID", "Client ID", "Client Secret", "Token"),
}
