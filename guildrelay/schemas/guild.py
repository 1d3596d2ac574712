"""Schemas for the internal guild administration API."""

from __future__ import annotations

from pydantic import BaseModel, Field


class GuildCreate(BaseModel):
    """Onboard a guild the bot just joined."""

    guild_id: str = Field(..., min_length=1, max_length=32)
    channel_id: str | None = Field(None, max_length=32)


class GuildCreated(BaseModel):
    guild_id: str
    providers: list[str]


class IntegrationUpdate(BaseModel):
    channel_id: str | None = Field(None, max_length=32)
    enabled: bool | None = None


class IntegrationSettingsRead(BaseModel):
    guild_id: str
    provider: str
    discord_channel: str | None
    enabled: bool
    notifications: list[str]
    commands: list[str]


class TokenItem(BaseModel):
    name: str = Field(..., min_length=1, max_length=50)
    key: str  # Plain text, stored encrypted


class TokensUpdate(BaseModel):
    tokens: list[TokenItem] = Field(..., min_length=1)


class TokenNamesRead(BaseModel):
    """Credential names and whether each one is set. Values are never returned."""

    provider: str
    tokens: dict[str, bool]
    configured: bool


class TokensUpdated(BaseModel):
    provider: str
    configured: bool
    # Trello only
    success_boards: list[str] = Field(default_factory=list)
    failed_boards: list[str] = Field(default_factory=list)


class NotificationRead(BaseModel):
    name: str
    description: str
    codename: str
    enabled: bool


class NotificationsEnable(BaseModel):
    names: list[str] = Field(..., min_length=1)
