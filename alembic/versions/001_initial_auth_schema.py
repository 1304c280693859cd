"""initial auth schema: users, 2FA config, backup codes, sessions, pending sessions, attempt log

Revision ID: 001_initial_auth_schema
Revises:
Create Date: 2026-10-19

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '001_initial_auth_schema'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('password_hash', sa.String(255), nullable=False),
        sa.Column('first_name', sa.String(100), nullable=False),
        sa.Column('last_name', sa.String(100), nullable=False),
        sa.Column('phone', sa.String(20), nullable=True),
        sa.Column('role', sa.Enum('user', 'admin', name='userrole'), nullable=False),
        sa.Column('account_verified', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('email_verified', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('last_login_utc', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at_utc', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at_utc', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'user_two_factor',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.String(36), nullable=False),
        sa.Column('secret', sa.String(64), nullable=False),
        sa.Column('is_enabled', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('setup_initiated_at_utc', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_used_at_utc', sa.DateTime(timezone=True), nullable=True),
        sa.Column('backup_codes_used', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at_utc', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
    )

    op.create_table(
        'user_backup_codes',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.String(36), nullable=False),
        sa.Column('code_hash', sa.String(64), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('created_at_utc', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'code_hash', name='uq_backup_code_user_hash'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
    )
    op.create_index('ix_user_backup_codes_user_id', 'user_backup_codes', ['user_id'])

    op.create_table(
        'user_sessions',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('user_id', sa.String(36), nullable=False),
        sa.Column('token_hash', sa.String(64), nullable=False),
        sa.Column('is_2fa_complete', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('ip_address', sa.String(45), nullable=True),
        sa.Column('user_agent', sa.Text(), nullable=True),
        sa.Column('created_at_utc', sa.DateTime(timezone=True), nullable=False),
        sa.Column('expires_at_utc', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
    )
    op.create_index('ix_user_sessions_user_id', 'user_sessions', ['user_id'])
    op.create_index('ix_user_sessions_token_hash', 'user_sessions', ['token_hash'], unique=True)
    op.create_index('ix_user_sessions_expires_at_utc', 'user_sessions', ['expires_at_utc'])

    op.create_table(
        'login_challenges',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('user_id', sa.String(36), nullable=False),
        sa.Column('token_hash', sa.String(64), nullable=False),
        sa.Column('failed_attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('expires_at_utc', sa.DateTime(timezone=True), nullable=False),
        sa.Column('created_at_utc', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
    )
    op.create_index('ix_login_challenges_user_id', 'login_challenges', ['user_id'])
    op.create_index('ix_login_challenges_token_hash', 'login_challenges', ['token_hash'], unique=True)

    op.create_table(
        'user_2fa_attempts',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.String(36), nullable=False),
        sa.Column(
            'purpose',
            sa.Enum('LOGIN', 'VERIFY_SETUP', 'DISABLE', 'REGENERATE_CODES', name='attemptpurpose'),
            nullable=False,
        ),
        sa.Column('success', sa.Boolean(), nullable=False),
        sa.Column('token_used', sa.String(10), nullable=True),
        sa.Column('ip_address', sa.String(45), nullable=True),
        sa.Column('attempted_at_utc', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
    )
    op.create_index('ix_user_2fa_attempts_user_id', 'user_2fa_attempts', ['user_id'])
    op.create_index('ix_user_2fa_attempts_attempted_at_utc', 'user_2fa_attempts', ['attempted_at_utc'])


def downgrade() -> None:
    op.drop_index('ix_user_2fa_attempts_attempted_at_utc', table_name='user_2fa_attempts')
    op.drop_index('ix_user_2fa_attempts_user_id', table_name='user_2fa_attempts')
    op.drop_table('user_2fa_attempts')
    op.drop_index('ix_login_challenges_token_hash', table_name='login_challenges')
    op.drop_index('ix_login_challenges_user_id', table_name='login_challenges')
    op.drop_table('login_challenges')
    op.drop_index('ix_user_sessions_expires_at_utc', table_name='user_sessions')
    op.drop_index('ix_user_sessions_token_hash', table_name='user_sessions')
    op.drop_index('ix_user_sessions_user_id', table_name='user_sessions')
    op.drop_table('user_sessions')
    op.drop_index('ix_user_backup_codes_user_id', table_name='user_backup_codes')
    op.drop_table('user_backup_codes')
    op.drop_table('user_two_factor')
    op.drop_index('ix_users_email', table_name='users')
    op.drop_table('users')
