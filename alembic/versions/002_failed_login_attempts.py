"""add failed_login_attempts table for password-step throttling

Revision ID: 002_failed_login_attempts
Revises: 001_initial_auth_schema
Create Date: 2026-10-20

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '002_failed_login_attempts'
down_revision = '001_initial_auth_schema'
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'failed_login_attempts',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('ip_address', sa.String(45), nullable=True),
        sa.Column('attempted_at_utc', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_failed_login_attempts_email', 'failed_login_attempts', ['email'])
    op.create_index('ix_failed_login_attempts_ip_address', 'failed_login_attempts', ['ip_address'])
    op.create_index('ix_failed_login_attempts_attempted_at_utc', 'failed_login_attempts', ['attempted_at_utc'])


def downgrade() -> None:
    op.drop_index('ix_failed_login_attempts_attempted_at_utc', table_name='failed_login_attempts')
    op.drop_index('ix_failed_login_attempts_ip_address', table_name='failed_login_attempts')
    op.drop_index('ix_failed_login_attempts_email', table_name='failed_login_attempts')
    op.drop_table('failed_login_attempts')
