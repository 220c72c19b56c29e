"""create companies, users, activities and activity_dead_letters

Revision ID: 7c2e4a91b3d5
Revises:
Create Date: 2026-10-12 10:14:32.518204

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '7c2e4a91b3d5'
down_revision = None
branch_labels = None
depends_on = None

ACTIVITY_TYPES = (
    'login',
    'logout',
    'give_recognition',
    'receive_recognition',
    'profile_update',
    'admin_action',
)


def upgrade():
    op.create_table('companies',
    sa.Column('id', sa.String(length=36), nullable=False),
    sa.Column('name', sa.String(length=255), nullable=False),
    sa.Column('tracking_enabled', sa.Boolean(), nullable=False),
    sa.Column('tracking_config', sa.JSON(), nullable=True),
    sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
    sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('name')
    )
    op.create_index('ix_companies_tracking_enabled', 'companies', ['tracking_enabled'], unique=False)

    op.create_table('users',
    sa.Column('id', sa.String(length=36), nullable=False),
    sa.Column('company_id', sa.String(length=36), nullable=False),
    sa.Column('email', sa.String(length=255), nullable=False),
    sa.Column('name', sa.String(length=255), nullable=False),
    sa.Column('role', sa.String(length=50), nullable=False),
    sa.Column('discarded_at', sa.DateTime(timezone=True), nullable=True),
    sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
    sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
    sa.ForeignKeyConstraint(['company_id'], ['companies.id'], ondelete='RESTRICT'),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('company_id', 'email', name='uq_users_company_email')
    )
    op.create_index('ix_users_company_id', 'users', ['company_id'], unique=False)
    op.create_index('ix_users_discarded_at', 'users', ['discarded_at'], unique=False)
    op.create_index('ix_users_company_role', 'users', ['company_id', 'role'], unique=False)

    op.create_table('activities',
    sa.Column('id', sa.String(length=36), nullable=False),
    sa.Column('user_id', sa.String(length=36), nullable=False),
    sa.Column('company_id', sa.String(length=36), nullable=False),
    sa.Column('activity_type', sa.String(length=50), nullable=False),
    sa.Column('metadata', sa.JSON(), nullable=False),
    sa.Column('occurred_at', sa.DateTime(timezone=True), nullable=False),
    sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
    sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
    sa.CheckConstraint(
        'activity_type IN ({})'.format(', '.join(f"'{t}'" for t in ACTIVITY_TYPES)),
        name='valid_activity_type',
    ),
    sa.ForeignKeyConstraint(['company_id'], ['companies.id'], ondelete='RESTRICT'),
    sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='RESTRICT'),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_activities_user_id', 'activities', ['user_id'], unique=False)
    op.create_index('ix_activities_company_id', 'activities', ['company_id'], unique=False)
    op.create_index('ix_activities_activity_type', 'activities', ['activity_type'], unique=False)
    op.create_index('ix_activities_occurred_at', 'activities', ['occurred_at'], unique=False)
    op.create_index('ix_activities_company_occurred', 'activities', ['company_id', 'occurred_at'], unique=False)
    op.create_index('ix_activities_user_type', 'activities', ['user_id', 'activity_type'], unique=False)
    op.create_index('ix_activities_company_type_occurred', 'activities', ['company_id', 'activity_type', 'occurred_at'], unique=False)

    op.create_table('activity_dead_letters',
    sa.Column('id', sa.String(length=36), nullable=False),
    sa.Column('payload', sa.JSON(), nullable=False),
    sa.Column('error_class', sa.String(length=255), nullable=False),
    sa.Column('error_message', sa.Text(), nullable=True),
    sa.Column('attempts', sa.Integer(), nullable=False),
    sa.Column('failed_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
    sa.PrimaryKeyConstraint('id')
    )


def downgrade():
    op.drop_table('activity_dead_letters')
    op.drop_index('ix_activities_company_type_occurred', table_name='activities')
    op.drop_index('ix_activities_user_type', table_name='activities')
    op.drop_index('ix_activities_company_occurred', table_name='activities')
    op.drop_index('ix_activities_occurred_at', table_name='activities')
    op.drop_index('ix_activities_activity_type', table_name='activities')
    op.drop_index('ix_activities_company_id', table_name='activities')
    op.drop_index('ix_activities_user_id', table_name='activities')
    op.drop_table('activities')
    op.drop_index('ix_users_company_role', table_name='users')
    op.drop_index('ix_users_discarded_at', table_name='users')
    op.drop_index('ix_users_company_id', table_name='users')
    op.drop_table('users')
    op.drop_index('ix_companies_tracking_enabled', table_name='companies')
    op.drop_table('companies')
