"""SQLAlchemy ORM models for guild integrations, credentials and subscriptions."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    Boolean,
    ForeignKey,
    Index,
    Integer,
    String,
    TIMESTAMP,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from guildrelay.db.base import Base


class Integration(Base):
    """
    A guild's connection to one provider.

    Exactly one row per (guild, provider); all three are created when the
    bot joins a guild and removed together when it leaves.
    """

    __tablename__ = "integrations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    # Discord snowflake, kept as text to avoid 64-bit surprises across drivers
    guild_id: Mapped[str] = mapped_column(String(32), nullable=False)
    provider: Mapped[str] = mapped_column(String(20), nullable=False)  # trello, github, googlecalendar
    discord_channel: Mapped[str | None] = mapped_column(String(32), nullable=True)
    enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )

    tokens: Mapped[list["IntegrationToken"]] = relationship(
        back_populates="integration", cascade="all, delete-orphan", passive_deletes=True
    )
    services: Mapped[list["IntegrationService"]] = relationship(
        back_populates="integration", cascade="all, delete-orphan", passive_deletes=True
    )
    google_webhook: Mapped["GoogleCalendarWebhook | None"] = relationship(
        back_populates="integration", cascade="all, delete-orphan", passive_deletes=True
    )

    __table_args__ = (
        UniqueConstraint("guild_id", "provider", name="uq_integrations_guild_provider"),
        Index("idx_integrations_guild", "guild_id"),
    )


class IntegrationToken(Base):
    """
    One named credential of an integration (e.g. "API Key").

    Rows are created empty at onboarding; the key is Fernet-encrypted and an
    empty string means "not configured".
    """

    __tablename__ = "integration_tokens"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    integration_id: Mapped[int] = mapped_column(
        ForeignKey("integrations.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(50), nullable=False)
    key_encrypted: Mapped[str] = mapped_column(Text, default="", nullable=False)

    integration: Mapped["Integration"] = relationship(back_populates="tokens")

    __table_args__ = (
        UniqueConstraint("integration_id", "name", name="uq_integration_tokens_name"),
    )


class IntegrationService(Base):
    """Enabled notification (or command) of an integration, by display name."""

    __tablename__ = "integration_services"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    integration_id: Mapped[int] = mapped_column(
        ForeignKey("integrations.id", ondelete="CASCADE"), nullable=False
    )
    service_type: Mapped[str] = mapped_column(String(20), nullable=False)  # notifications, commands
    name: Mapped[str] = mapped_column(String(100), nullable=False)

    integration: Mapped["Integration"] = relationship(back_populates="services")

    __table_args__ = (
        UniqueConstraint(
            "integration_id", "service_type", "name", name="uq_integration_services_name"
        ),
    )


class GoogleCalendarWebhook(Base):
    """
    Active Google Calendar watch channel for an integration.

    Pushes are only accepted when their channel/resource ids match this row.
    sync_token NULL means the next pull is a full resync.
    """

    __tablename__ = "google_calendar_webhooks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    integration_id: Mapped[int] = mapped_column(
        ForeignKey("integrations.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    channel_id: Mapped[str] = mapped_column(String(64), nullable=False)
    resource_id: Mapped[str] = mapped_column(String(255), nullable=False)
    resource_uri: Mapped[str | None] = mapped_column(Text, nullable=True)
    sync_token: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )

    integration: Mapped["Integration"] = relationship(back_populates="google_webhook")
