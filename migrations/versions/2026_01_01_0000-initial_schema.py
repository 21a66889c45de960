"""Initial schema

Revision ID: 001_initial
Revises:
Create Date: 2026-01-01 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect

# revision identifiers, used by Alembic.
revision: str = '001_initial'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """
    Create initial database schema:
    - urls table: short links owned by users
    - clicks table: click events, the analytics input
    - api_keys table: hashed API keys with scopes and expiry
    - api_key_usage table: one row per API key authenticated request
    """
    bind = op.get_bind()
    existing_tables = inspect(bind).get_table_names()

    if 'urls' not in existing_tables:
        op.create_table(
            'urls',
            sa.Column('id', sa.String(length=36), nullable=False),
            sa.Column('user_id', sa.String(length=36), nullable=False),
            sa.Column('short_code', sa.String(length=20), nullable=False),
            sa.Column('original_url', sa.Text(), nullable=False),
            sa.Column('title', sa.String(length=255), nullable=True),
            sa.Column('clicks', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index('ix_urls_user_id', 'urls', ['user_id'])
        op.create_index('ix_urls_short_code', 'urls', ['short_code'], unique=True)
        op.create_index('ix_urls_created_at', 'urls', ['created_at'])

    if 'clicks' not in existing_tables:
        op.create_table(
            'clicks',
            sa.Column('id', sa.String(length=36), nullable=False),
            sa.Column('url_id', sa.String(length=36), nullable=False),
            sa.Column('short_code', sa.String(length=20), nullable=False),
            sa.Column('country_name', sa.String(length=100), nullable=True),
            sa.Column('browser_name', sa.String(length=100), nullable=True),
            sa.Column('device_type', sa.String(length=20), nullable=True),
            sa.Column('referer_type', sa.String(length=20), nullable=True),
            sa.Column('referer_domain', sa.String(length=255), nullable=True),
            sa.Column('referer_source', sa.String(length=100), nullable=True),
            sa.Column('accept_language', sa.String(length=255), nullable=True),
            sa.Column('is_bot', sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column('ip_address', sa.String(length=45), nullable=True),
            sa.Column('clicked_at', sa.DateTime(timezone=True), nullable=False),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index('ix_clicks_url_id', 'clicks', ['url_id'])
        op.create_index('ix_clicks_clicked_at', 'clicks', ['clicked_at'])
        op.create_index('ix_clicks_url_id_clicked_at', 'clicks', ['url_id', 'clicked_at'])

    if 'api_keys' not in existing_tables:
        op.create_table(
            'api_keys',
            sa.Column('id', sa.String(length=36), nullable=False),
            sa.Column('user_id', sa.String(length=36), nullable=False),
            sa.Column('name', sa.String(length=100), nullable=False),
            sa.Column('key_hash', sa.String(length=64), nullable=False),
            sa.Column('key_prefix', sa.String(length=20), nullable=False),
            sa.Column('scopes', sa.JSON(), nullable=False),
            sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
            sa.Column('last_used_at', sa.DateTime(timezone=True), nullable=True),
            sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
            sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index('ix_api_keys_user_id', 'api_keys', ['user_id'])
        op.create_index('ix_api_keys_key_hash', 'api_keys', ['key_hash'], unique=True)
        op.create_index('ix_api_keys_is_active', 'api_keys', ['is_active'])
        op.create_index('ix_api_keys_created_at', 'api_keys', ['created_at'])

    if 'api_key_usage' not in existing_tables:
        op.create_table(
            'api_key_usage',
            sa.Column('id', sa.Integer(), nullable=False, autoincrement=True),
            sa.Column('api_key_id', sa.String(length=36), nullable=False),
            sa.Column('endpoint', sa.String(length=255), nullable=False),
            sa.Column('method', sa.String(length=10), nullable=False),
            sa.Column('ip_address', sa.String(length=45), nullable=True),
            sa.Column('user_agent', sa.String(length=500), nullable=True),
            sa.Column('response_status', sa.Integer(), nullable=True),
            sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index('ix_api_key_usage_api_key_id', 'api_key_usage', ['api_key_id'])
        op.create_index('ix_api_key_usage_created_at', 'api_key_usage', ['created_at'])


def downgrade() -> None:
    """Drop all tables created by upgrade."""
    op.drop_table('api_key_usage')
    op.drop_table('api_keys')
    op.drop_table('clicks')
    op.drop_table('urls')
