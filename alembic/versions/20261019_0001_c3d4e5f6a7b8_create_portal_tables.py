"""create portal_users, otp_store and notifications

Revision ID: c3d4e5f6a7b8
Revises:
Create Date: 2026-10-19

Tables:
  portal_users   credential records, created only after OTP verification
  otp_store      hashed one-time codes with pending signup/login payloads
  notifications  per-user notifications with read flag
"""
from alembic import op
import sqlalchemy as sa

revision = 'c3d4e5f6a7b8'
down_revision = None
branch_labels = None
depends_on = None

user_type = sa.Enum('administrator', 'agency', 'citizen', name='portal_user_type')
otp_type = sa.Enum('registration', 'login', name='otp_type')
notification_type = sa.Enum('info', 'success', 'warning', 'error', name='notification_type')
notification_priority = sa.Enum('low', 'normal', 'high', 'urgent', name='notification_priority')
notification_category = sa.Enum(
    'general', 'proposal', 'grievance', 'registration', 'course', 'grant', 'system',
    name='notification_category',
)


def upgrade() -> None:
    op.create_table(
        'portal_users',
        sa.Column('id', sa.Uuid(), primary_key=True, nullable=False),
        sa.Column('name', sa.String(150), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('password', sa.String(), nullable=False),
        sa.Column('user_type', user_type, nullable=False),
        sa.Column('is_verified', sa.Boolean(), server_default='0', nullable=False),
        sa.Column('last_login', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_portal_users_email', 'portal_users', ['email'], unique=True)
    op.create_index('ix_portal_users_user_type', 'portal_users', ['user_type'])

    op.create_table(
        'otp_store',
        sa.Column('id', sa.Uuid(), primary_key=True, nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('otp_hash', sa.String(), nullable=False),
        sa.Column('otp_type', otp_type, nullable=False),
        sa.Column('user_data', sa.JSON(), nullable=False),
        sa.Column('is_used', sa.Boolean(), server_default='0', nullable=False),
        sa.Column('expires_at', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_otp_store_email', 'otp_store', ['email'])
    op.create_index('ix_otp_store_expires_at', 'otp_store', ['expires_at'])

    op.create_table(
        'notifications',
        sa.Column('id', sa.Uuid(), primary_key=True, nullable=False),
        sa.Column(
            'user_id', sa.Uuid(),
            sa.ForeignKey('portal_users.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column('title', sa.String(200), nullable=False),
        sa.Column('body', sa.Text(), nullable=False),
        sa.Column('link', sa.String(500), nullable=True),
        sa.Column('read', sa.Boolean(), server_default='0', nullable=False),
        sa.Column('type', notification_type, nullable=False),
        sa.Column('priority', notification_priority, nullable=False),
        sa.Column('category', notification_category, nullable=False),
        sa.Column('metadata', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_notifications_user_id', 'notifications', ['user_id'])
    op.create_index('ix_notifications_read', 'notifications', ['read'])
    op.create_index('ix_notifications_created_at', 'notifications', ['created_at'])


def downgrade() -> None:
    op.drop_table('notifications')
    op.drop_table('otp_store')
    op.drop_table('portal_users')
    for enum in (notification_category, notification_priority, notification_type, otp_type, user_type):
        enum.drop(op.get_bind(), checkfirst=True)
