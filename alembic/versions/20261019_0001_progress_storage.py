"""Progress storage and audit log

Revision ID: 0001
Revises: 
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '0001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Key/value documents: progress records, quiz state, pending purchases
    op.create_table(
        'storage_entries',
        sa.Column('key', sa.String(255), primary_key=True),
        sa.Column('value', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    # Append-only audit log
    op.create_table(
        'event_logs',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('event_type', sa.String(100), nullable=False),
        sa.Column('history_event_id', sa.String(255), nullable=True),
        sa.Column('user_id', sa.String(255), nullable=False),
        sa.Column('payload', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_event_logs_event_type', 'event_logs', ['event_type'])
    op.create_index('ix_event_logs_history_event_id', 'event_logs', ['history_event_id'])
    op.create_index('ix_event_logs_user_id', 'event_logs', ['user_id'])
    op.create_index('ix_event_logs_created_at', 'event_logs', ['created_at'])
    op.create_index('ix_event_logs_user_event', 'event_logs', ['user_id', 'history_event_id'])
    op.create_index('ix_event_logs_type_time', 'event_logs', ['event_type', 'created_at'])


def downgrade() -> None:
    op.drop_index('ix_event_logs_type_time', table_name='event_logs')
    op.drop_index('ix_event_logs_user_event', table_name='event_logs')
    op.drop_index('ix_event_logs_created_at', table_name='event_logs')
    op.drop_index('ix_event_logs_user_id', table_name='event_logs')
    op.drop_index('ix_event_logs_history_event_id', table_name='event_logs')
    op.drop_index('ix_event_logs_event_type', table_name='event_logs')
    op.drop_table('event_logs')
    op.drop_table('storage_entries')
