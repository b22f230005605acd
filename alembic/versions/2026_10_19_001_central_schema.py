"""Central store: central users, tenants and memberships

Revision ID: 001_central_schema
Revises: 
Create Date: 2026-10-19

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers
revision = '001_central_schema'
down_revision = None


def upgrade():
    # Central users
    op.create_table(
        'central_users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('global_id', sa.String(36), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('password_hash', sa.String(), nullable=False),
        sa.Column('email_verified_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_central_users_global_id', 'central_users', ['global_id'], unique=True)
    op.create_index('ix_central_users_email', 'central_users', ['email'], unique=True)

    # Tenants
    op.create_table(
        'tenants',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_tenants_name', 'tenants', ['name'])

    # Memberships
    op.create_table(
        'tenant_memberships',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('global_id', sa.String(36), sa.ForeignKey('central_users.global_id'), nullable=False),
        sa.Column('tenant_id', sa.String(36), sa.ForeignKey('tenants.id'), nullable=False),
        sa.Column('favorite', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('global_id', 'tenant_id', name='uq_tenant_memberships_global_tenant'),
    )
    op.create_index('ix_tenant_memberships_global_id', 'tenant_memberships', ['global_id'])
    op.create_index('ix_tenant_memberships_tenant_id', 'tenant_memberships', ['tenant_id'])

    # At most one favorite tenant per central user
    op.create_index(
        'uq_tenant_memberships_favorite',
        'tenant_memberships',
        ['global_id'],
        unique=True,
        sqlite_where=sa.text('favorite = 1'),
        postgresql_where=sa.text('favorite'),
    )


def downgrade():
    op.drop_index('uq_tenant_memberships_favorite', table_name='tenant_memberships')
    op.drop_table('tenant_memberships')
    op.drop_table('tenants')
    op.drop_table('central_users')
