"""Baseline migration - guild integrations, credentials and subscriptions

Revision ID: 0001_baseline
Revises:
Create Date: 2026-10-18

Creates the integration tables and the Google Calendar watch table.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0001_baseline'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create integration tables."""

    # ==========================================================================
    # integrations - one row per (guild, provider)
    # ==========================================================================
    op.create_table(
        'integrations',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('guild_id', sa.String(32), nullable=False),
        sa.Column('provider', sa.String(20), nullable=False),
        sa.Column('discord_channel', sa.String(32), nullable=True),
        sa.Column('enabled', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint('guild_id', 'provider', name='uq_integrations_guild_provider'),
    )
    op.create_index('idx_integrations_guild', 'integrations', ['guild_id'])

    # ==========================================================================
    # integration_tokens - encrypted credentials, empty string = unset
    # ==========================================================================
    op.create_table(
        'integration_tokens',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            'integration_id',
            sa.Integer(),
            sa.ForeignKey('integrations.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column('name', sa.String(50), nullable=False),
        sa.Column('key_encrypted', sa.Text(), nullable=False, server_default=''),
        sa.UniqueConstraint('integration_id', 'name', name='uq_integration_tokens_name'),
    )

    # ==========================================================================
    # integration_services - enabled notifications / commands by name
    # ==========================================================================
    op.create_table(
        'integration_services',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            'integration_id',
            sa.Integer(),
            sa.ForeignKey('integrations.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column('service_type', sa.String(20), nullable=False),
        sa.Column('name', sa.String(100), nullable=False),
        sa.UniqueConstraint(
            'integration_id', 'service_type', 'name', name='uq_integration_services_name'
        ),
    )

    # ==========================================================================
    # google_calendar_webhooks - the single active watch channel per integration
    # ==========================================================================
    op.create_table(
        'google_calendar_webhooks',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            'integration_id',
            sa.Integer(),
            sa.ForeignKey('integrations.id', ondelete='CASCADE'),
            nullable=False,
            unique=True,
        ),
        sa.Column('channel_id', sa.String(64), nullable=False),
        sa.Column('resource_id', sa.String(255), nullable=False),
        sa.Column('resource_uri', sa.Text(), nullable=True),
        sa.Column('sync_token', sa.Text(), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.func.now(), nullable=False),
    )


def downgrade() -> None:
    op.drop_table('google_calendar_webhooks')
    op.drop_table('integration_services')
    op.drop_table('integration_tokens')
    op.drop_index('idx_integrations_guild', table_name='integrations')
    op.drop_table('integrations')
