"""Create visit engine tables.

Revision ID: a1b2c3d4e5f6
Revises:
Create Date: 2026-10-18

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'a1b2c3d4e5f6'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    """Create tenants, programs, customers, stamps, memberships, rewards and review_requests."""
    op.create_table(
        'tenants',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('slug', sa.String(100), nullable=False),
        sa.Column('status', sa.String(20), server_default='trial'),
        sa.Column('trial_ends_at', sa.DateTime(), nullable=True),
        sa.Column('lat', sa.Float(), nullable=True),
        sa.Column('lng', sa.Float(), nullable=True),
        sa.Column('geofence_message', sa.String(255), nullable=True),
        sa.Column('settings', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('slug'),
    )

    op.create_table(
        'programs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(255), nullable=True),
        sa.Column('program_type', sa.String(20), nullable=False, server_default='sellos'),
        sa.Column('goal', sa.Integer(), nullable=False, server_default='10'),
        sa.Column('reward_description', sa.String(500), nullable=True),
        sa.Column('config', sa.JSON(), nullable=True),
        sa.Column('is_active', sa.Boolean(), server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id']),
    )
    op.create_index('ix_programs_tenant_id', 'programs', ['tenant_id'])
    op.create_index(
        'uq_programs_one_active_per_tenant',
        'programs',
        ['tenant_id'],
        unique=True,
        postgresql_where=sa.text('is_active'),
        sqlite_where=sa.text('is_active = 1'),
    )

    op.create_table(
        'customers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('phone', sa.String(30), nullable=False),
        sa.Column('name', sa.String(255), nullable=True),
        sa.Column('current_points', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('lifetime_points', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('rewards_redeemed', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('tier', sa.String(10), nullable=False, server_default='bronce'),
        sa.Column('streak', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_visit_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id']),
        sa.UniqueConstraint('tenant_id', 'phone', name='uq_tenant_customer_phone'),
        sa.CheckConstraint('current_points <= lifetime_points', name='ck_customer_balance_within_lifetime'),
    )
    op.create_index('ix_customers_tenant_id', 'customers', ['tenant_id'])

    op.create_table(
        'stamps',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('visit_date', sa.Date(), nullable=False),
        sa.Column('program_type', sa.String(20), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('applied_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id']),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id']),
        sa.UniqueConstraint('customer_id', 'tenant_id', 'visit_date', name='uq_stamp_customer_tenant_day'),
    )
    op.create_index('ix_stamps_tenant_id', 'stamps', ['tenant_id'])
    op.create_index('ix_stamps_status', 'stamps', ['status'])

    op.create_table(
        'memberships',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('program_id', sa.Integer(), nullable=False),
        sa.Column('state', sa.String(20), nullable=False, server_default='activo'),
        sa.Column('remaining_uses', sa.Integer(), nullable=True),
        sa.Column('balance', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('expires_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id']),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id']),
        sa.ForeignKeyConstraint(['program_id'], ['programs.id']),
        sa.CheckConstraint('balance >= 0', name='ck_membership_balance_non_negative'),
        sa.CheckConstraint('remaining_uses IS NULL OR remaining_uses >= 0', name='ck_membership_uses_non_negative'),
    )
    op.create_index('ix_memberships_customer_id', 'memberships', ['customer_id'])
    op.create_index('ix_memberships_tenant_id', 'memberships', ['tenant_id'])

    op.create_table(
        'rewards',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('program_id', sa.Integer(), nullable=False),
        sa.Column('code', sa.String(40), nullable=False),
        sa.Column('description', sa.String(500), nullable=True),
        sa.Column('redeemed', sa.Boolean(), server_default=sa.false()),
        sa.Column('redeemed_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id']),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id']),
        sa.ForeignKeyConstraint(['program_id'], ['programs.id']),
        sa.UniqueConstraint('code'),
    )
    op.create_index('ix_rewards_customer_id', 'rewards', ['customer_id'])
    op.create_index('ix_rewards_tenant_id', 'rewards', ['tenant_id'])

    op.create_table(
        'review_requests',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=False),
        sa.Column('scheduled_for', sa.DateTime(), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('sent_at', sa.DateTime(), nullable=True),
        sa.Column('error', sa.String(500), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id'], ondelete='CASCADE'),
    )
    op.create_index('ix_review_requests_tenant_id', 'review_requests', ['tenant_id'])
    op.create_index('ix_review_requests_scheduled_for', 'review_requests', ['scheduled_for'])


def downgrade():
    """Drop visit engine tables."""
    op.drop_table('review_requests')
    op.drop_table('rewards')
    op.drop_table('memberships')
    op.drop_table('stamps')
    op.drop_table('customers')
    op.drop_index('uq_programs_one_active_per_tenant', table_name='programs')
    op.drop_table('programs')
    op.drop_table('tenants')
