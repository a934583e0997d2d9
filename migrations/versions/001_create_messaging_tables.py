"""create messaging tables

Revision ID: 001
Revises:
Create Date: 2026-10-17 09:12:44.318204

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'profiles',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('username', sa.String(length=50), nullable=True),
        sa.Column('full_name', sa.String(length=100), nullable=True),
        sa.Column('avatar_url', sa.String(length=500), nullable=True),
        sa.Column('is_profile_private', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_online', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('last_seen', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id', name='pk_profiles'),
        sa.UniqueConstraint('username', name='uq_profiles_username'),
    )

    op.create_table(
        'messages',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('sender_id', sa.String(length=36), nullable=False),
        sa.Column('recipient_id', sa.String(length=36), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('media_url', sa.String(length=500), nullable=True),
        sa.Column('workout_id', sa.String(length=36), nullable=True),
        sa.Column('achievement_id', sa.String(length=36), nullable=True),
        sa.Column('client_key', sa.String(length=64), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('is_read', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('read_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['sender_id'], ['profiles.id'], name='fk_messages_sender_id_profiles'),
        sa.ForeignKeyConstraint(['recipient_id'], ['profiles.id'], name='fk_messages_recipient_id_profiles'),
        sa.PrimaryKeyConstraint('id', name='pk_messages'),
    )
    op.create_index('idx_messages_sender_recipient', 'messages', ['sender_id', 'recipient_id'])
    op.create_index('idx_messages_recipient_is_read', 'messages', ['recipient_id', 'is_read'])
    op.create_index('idx_messages_created_at', 'messages', ['created_at'])
    op.create_index('idx_messages_client_key', 'messages', ['client_key'])

    op.create_table(
        'follows',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('follower_id', sa.String(length=36), nullable=False),
        sa.Column('following_id', sa.String(length=36), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='pending'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("status IN ('pending', 'accepted', 'rejected')", name='ck_follows_status_valid'),
        sa.ForeignKeyConstraint(['follower_id'], ['profiles.id'], name='fk_follows_follower_id_profiles'),
        sa.ForeignKeyConstraint(['following_id'], ['profiles.id'], name='fk_follows_following_id_profiles'),
        sa.PrimaryKeyConstraint('id', name='pk_follows'),
        sa.UniqueConstraint('follower_id', 'following_id', name='uq_follows_pair'),
    )
    op.create_index('idx_follows_following_status', 'follows', ['following_id', 'status'])

    op.create_table(
        'blocked_users',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('blocker_id', sa.String(length=36), nullable=False),
        sa.Column('blocked_id', sa.String(length=36), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['blocker_id'], ['profiles.id'], name='fk_blocked_users_blocker_id_profiles'),
        sa.ForeignKeyConstraint(['blocked_id'], ['profiles.id'], name='fk_blocked_users_blocked_id_profiles'),
        sa.PrimaryKeyConstraint('id', name='pk_blocked_users'),
        sa.UniqueConstraint('blocker_id', 'blocked_id', name='uq_blocked_users_pair'),
    )


def downgrade() -> None:
    op.drop_table('blocked_users')
    op.drop_index('idx_follows_following_status', table_name='follows')
    op.drop_table('follows')
    op.drop_index('idx_messages_client_key', table_name='messages')
    op.drop_index('idx_messages_created_at', table_name='messages')
    op.drop_index('idx_messages_recipient_is_read', table_name='messages')
    op.drop_index('idx_messages_sender_recipient', table_name='messages')
    op.drop_table('messages')
    op.drop_table('profiles')
