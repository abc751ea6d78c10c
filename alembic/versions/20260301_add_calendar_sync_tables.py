"""Add calendar connection, venue calendar and synced event tables

Revision ID: 5b7e2c91d0a4
Revises:
Create Date: 2026-03-01

Creates the tables owned by the calendar sync service:
- calendar_connections: one linked Google account per user, encrypted tokens
- venue_calendars: per-venue calendars created in a connection's account
- synced_events: (connection, event, scope) -> Google event + content hash
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '5b7e2c91d0a4'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table('calendar_connections',
        sa.Column('user_id', sa.String(length=255), nullable=False),
        sa.Column('tenant_id', sa.String(length=255), nullable=False),
        sa.Column('provider_email', sa.String(length=255), nullable=False),
        sa.Column('provider_user_id', sa.String(length=255), nullable=True),
        sa.Column('access_token_encrypted', sa.LargeBinary(), nullable=False),
        sa.Column('refresh_token_encrypted', sa.LargeBinary(), nullable=False),
        sa.Column('token_expiry', sa.DateTime(timezone=True), nullable=False),
        sa.Column('organization_calendar_id', sa.String(length=1024), nullable=True),
        sa.Column('personal_calendar_id', sa.String(length=1024), nullable=True),
        sa.Column('sync_organization_calendar', sa.Boolean(), nullable=False,
                  server_default=sa.false()),
        sa.Column('sync_personal_calendar', sa.Boolean(), nullable=False,
                  server_default=sa.false()),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('requires_reauth', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('last_sync_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_sync_error', sa.Text(), nullable=True),
        sa.Column('id', sa.CHAR(length=32), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('calendar_connections', schema=None) as batch_op:
        batch_op.create_index('ix_calendar_connections_user_id', ['user_id'], unique=True)
        batch_op.create_index('ix_calendar_connections_tenant_id', ['tenant_id'], unique=False)

    op.create_table('venue_calendars',
        sa.Column('connection_id', sa.CHAR(length=32), nullable=False),
        sa.Column('venue_id', sa.String(length=255), nullable=False),
        sa.Column('provider_calendar_id', sa.String(length=1024), nullable=True),
        sa.Column('sync_enabled', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('id', sa.CHAR(length=32), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['connection_id'], ['calendar_connections.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('venue_calendars', schema=None) as batch_op:
        batch_op.create_index(
            'ix_venue_calendars_connection_venue', ['connection_id', 'venue_id'], unique=True
        )

    op.create_table('synced_events',
        sa.Column('connection_id', sa.CHAR(length=32), nullable=False),
        sa.Column('event_id', sa.String(length=255), nullable=False),
        sa.Column('scope', sa.String(length=20), nullable=False),
        sa.Column('venue_id', sa.String(length=255), nullable=True),
        sa.Column('scope_key', sa.String(length=300), nullable=False),
        sa.Column('provider_calendar_id', sa.String(length=1024), nullable=False),
        sa.Column('provider_event_id', sa.String(length=1024), nullable=False),
        sa.Column('event_hash', sa.String(length=64), nullable=True),
        sa.Column('last_synced_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('id', sa.CHAR(length=32), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['connection_id'], ['calendar_connections.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('synced_events', schema=None) as batch_op:
        batch_op.create_index('ix_synced_events_event_id', ['event_id'], unique=False)
        batch_op.create_index(
            'ix_synced_events_target', ['connection_id', 'event_id', 'scope_key'], unique=True
        )


def downgrade() -> None:
    with op.batch_alter_table('synced_events', schema=None) as batch_op:
        batch_op.drop_index('ix_synced_events_target')
        batch_op.drop_index('ix_synced_events_event_id')
    op.drop_table('synced_events')

    with op.batch_alter_table('venue_calendars', schema=None) as batch_op:
        batch_op.drop_index('ix_venue_calendars_connection_venue')
    op.drop_table('venue_calendars')

    with op.batch_alter_table('calendar_connections', schema=None) as batch_op:
        batch_op.drop_index('ix_calendar_connections_tenant_id')
        batch_op.drop_index('ix_calendar_connections_user_id')
    op.drop_table('calendar_connections')
