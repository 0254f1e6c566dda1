"""initial

Revision ID: 0001
Revises: 
Create Date: 2026-10-19 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

revision = '0001'
down_revision = None
branch_labels = None
depends_on = None

def upgrade():
    op.create_table('events',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('user_id', sa.String(64), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('location', sa.String(255), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('cover', sa.String(1024), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True)
    )
    op.create_index('ix_events_id', 'events', ['id'])
    op.create_index('ix_events_user_id', 'events', ['user_id'])
    op.create_table('cohosts',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('event_id', sa.Integer, sa.ForeignKey('events.id', ondelete='CASCADE'), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('access_level', sa.String(16), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now())
    )
    op.create_index('ix_cohosts_event_id', 'cohosts', ['event_id'])
    op.create_table('moments',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('key', sa.String(1024), nullable=False, unique=True),
        sa.Column('name', sa.String(512), nullable=False),
        sa.Column('user_id', sa.String(64), nullable=False),
        sa.Column('event_id', sa.Integer, sa.ForeignKey('events.id', ondelete='CASCADE'), nullable=False),
        sa.Column('size', sa.BigInteger, nullable=False),
        sa.Column('type', sa.String(255), nullable=True),
        sa.Column('bucket', sa.String(255), nullable=False),
        sa.Column('file_path', sa.String(2048), nullable=True),
        sa.Column('uploaded_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True)
    )
    op.create_index('ix_moments_id', 'moments', ['id'])
    op.create_index('ix_moments_user_id', 'moments', ['user_id'])
    op.create_index('ix_moments_event_id', 'moments', ['event_id'])
    op.create_index('ix_moments_uploaded_at', 'moments', ['uploaded_at'])
    op.create_table('links',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('event_id', sa.Integer, sa.ForeignKey('events.id', ondelete='CASCADE'), nullable=False),
        sa.Column('token', sa.String(64), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('access_types', sa.JSON(), nullable=True),
        sa.Column('required_email', sa.String(255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now())
    )
    op.create_index('ix_links_event_id', 'links', ['event_id'])
    op.create_index('ix_links_token', 'links', ['token'], unique=True)

def downgrade():
    op.drop_table('links')
    op.drop_table('moments')
    op.drop_table('cohosts')
    op.drop_table('events')
