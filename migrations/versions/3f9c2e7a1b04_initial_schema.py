"""Initial schema: users, settings, concession booklets and applications

Revision ID: 3f9c2e7a1b04
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '3f9c2e7a1b04'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('email', sa.String(length=120), nullable=False),
        sa.Column('password_hash', sa.String(length=256), nullable=True),
        sa.Column('first_name', sa.String(length=100), nullable=True),
        sa.Column('middle_name', sa.String(length=100), nullable=True),
        sa.Column('last_name', sa.String(length=100), nullable=True),
        sa.Column('role', sa.String(length=20), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    with op.batch_alter_table('users', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_users_email'), ['email'], unique=True)

    op.create_table(
        'settings',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('key', sa.String(length=100), nullable=False),
        sa.Column('value', sa.Text(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    with op.batch_alter_table('settings', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_settings_key'), ['key'], unique=True)

    op.create_table(
        'concession_booklets',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('booklet_number', sa.Integer(), nullable=False),
        sa.Column('serial_start_number', sa.String(length=20), nullable=False),
        sa.Column('serial_end_number', sa.String(length=20), nullable=False),
        sa.Column('total_pages', sa.Integer(), nullable=False),
        sa.Column('damaged_pages', sa.JSON(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('applications_count', sa.Integer(), nullable=False),
        sa.Column('anchor_x', sa.Float(), nullable=False),
        sa.Column('anchor_y', sa.Float(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('serial_start_number'),
    )
    with op.batch_alter_table('concession_booklets', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_concession_booklets_booklet_number'), ['booklet_number'], unique=True)
        batch_op.create_index(batch_op.f('ix_concession_booklets_status'), ['status'], unique=False)

    op.create_table(
        'concession_applications',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('student_id', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('application_type', sa.String(length=20), nullable=False),
        sa.Column('previous_application_id', sa.Integer(), nullable=True),
        sa.Column('station', sa.String(length=100), nullable=True),
        sa.Column('period_months', sa.Integer(), nullable=False),
        sa.Column('concession_booklet_id', sa.Integer(), nullable=True),
        sa.Column('page_offset', sa.Integer(), nullable=True),
        sa.Column('reviewed_by_id', sa.Integer(), nullable=True),
        sa.Column('reviewed_at', sa.DateTime(), nullable=True),
        sa.Column('rejection_reason', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=True),
        sa.ForeignKeyConstraint(['student_id'], ['users.id']),
        sa.ForeignKeyConstraint(['reviewed_by_id'], ['users.id']),
        sa.ForeignKeyConstraint(['previous_application_id'], ['concession_applications.id']),
        sa.ForeignKeyConstraint(['concession_booklet_id'], ['concession_booklets.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('concession_booklet_id', 'page_offset', name='uq_application_booklet_page'),
    )
    with op.batch_alter_table('concession_applications', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_concession_applications_student_id'), ['student_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_concession_applications_status'), ['status'], unique=False)
        batch_op.create_index(
            batch_op.f('ix_concession_applications_concession_booklet_id'), ['concession_booklet_id'], unique=False
        )


def downgrade():
    with op.batch_alter_table('concession_applications', schema=None) as batch_op:
        batch_op.drop_index(batch_op.f('ix_concession_applications_concession_booklet_id'))
        batch_op.drop_index(batch_op.f('ix_concession_applications_status'))
        batch_op.drop_index(batch_op.f('ix_concession_applications_student_id'))
    op.drop_table('concession_applications')

    with op.batch_alter_table('concession_booklets', schema=None) as batch_op:
        batch_op.drop_index(batch_op.f('ix_concession_booklets_status'))
        batch_op.drop_index(batch_op.f('ix_concession_booklets_booklet_number'))
    op.drop_table('concession_booklets')

    with op.batch_alter_table('settings', schema=None) as batch_op:
        batch_op.drop_index(batch_op.f('ix_settings_key'))
    op.drop_table('settings')

    with op.batch_alter_table('users', schema=None) as batch_op:
        batch_op.drop_index(batch_op.f('ix_users_email'))
    op.drop_table('users')
