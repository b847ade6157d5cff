"""engagement ledger: points, streaks, log events, leaderboards

Revision ID: 7a1c2e9d4b30
Revises:
Create Date: 2026-10-18 09:30:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '7a1c2e9d4b30'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'points_accounts',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('points', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('points_accounts', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_points_accounts_user_id'), ['user_id'], unique=True)

    op.create_table(
        'points_actions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('account_id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('action_type', sa.String(length=40), nullable=False),
        sa.Column('points_earned', sa.Integer(), nullable=False),
        sa.Column('balance_after', sa.Integer(), nullable=False),
        sa.Column('idempotency_key', sa.String(length=160), nullable=True),
        sa.Column('occurred_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['account_id'], ['points_accounts.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('points_actions', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_points_actions_account_id'), ['account_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_points_actions_user_id'), ['user_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_points_actions_idempotency_key'), ['idempotency_key'], unique=True)
        batch_op.create_index(batch_op.f('ix_points_actions_occurred_at'), ['occurred_at'], unique=False)

    op.create_table(
        'streak_states',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('current_streak', sa.Integer(), nullable=False),
        sa.Column('longest_streak', sa.Integer(), nullable=False),
        sa.Column('last_logged_date', sa.Date(), nullable=True),
        sa.Column('total_logs', sa.Integer(), nullable=False),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('streak_states', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_streak_states_user_id'), ['user_id'], unique=True)

    op.create_table(
        'log_events',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('occurred_at', sa.DateTime(), nullable=False),
        sa.Column('title', sa.String(length=200), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('time_spent', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('log_events', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_log_events_user_id'), ['user_id'], unique=False)
        batch_op.create_index('idx_log_events_user_occurred', ['user_id', 'occurred_at'], unique=False)

    op.create_table(
        'leaderboard_snapshots',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('window_type', sa.String(length=16), nullable=False),
        sa.Column('window_start', sa.DateTime(), nullable=False),
        sa.Column('window_end', sa.DateTime(), nullable=False),
        sa.Column('generated_at', sa.DateTime(), nullable=False),
        sa.Column('entries_json', sa.Text(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('leaderboard_snapshots', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_leaderboard_snapshots_window_type'), ['window_type'], unique=True)

    op.create_table(
        'audit_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('action', sa.String(length=64), nullable=False),
        sa.Column('user_id', sa.String(length=64), nullable=True),
        sa.Column('computed_points', sa.Integer(), nullable=True),
        sa.Column('stored_points', sa.Integer(), nullable=True),
        sa.Column('meta', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('audit_logs', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_audit_logs_action'), ['action'], unique=False)
        batch_op.create_index(batch_op.f('ix_audit_logs_user_id'), ['user_id'], unique=False)


def downgrade():
    with op.batch_alter_table('audit_logs', schema=None) as batch_op:
        batch_op.drop_index(batch_op.f('ix_audit_logs_user_id'))
        batch_op.drop_index(batch_op.f('ix_audit_logs_action'))

    op.drop_table('audit_logs')

    with op.batch_alter_table('leaderboard_snapshots', schema=None) as batch_op:
        batch_op.drop_index(batch_op.f('ix_leaderboard_snapshots_window_type'))

    op.drop_table('leaderboard_snapshots')

    with op.batch_alter_table('log_events', schema=None) as batch_op:
        batch_op.drop_index('idx_log_events_user_occurred')
        batch_op.drop_index(batch_op.f('ix_log_events_user_id'))

    op.drop_table('log_events')

    with op.batch_alter_table('streak_states', schema=None) as batch_op:
        batch_op.drop_index(batch_op.f('ix_streak_states_user_id'))

    op.drop_table('streak_states')

    with op.batch_alter_table('points_actions', schema=None) as batch_op:
        batch_op.drop_index(batch_op.f('ix_points_actions_occurred_at'))
        batch_op.drop_index(batch_op.f('ix_points_actions_idempotency_key'))
        batch_op.drop_index(batch_op.f('ix_points_actions_user_id'))
        batch_op.drop_index(batch_op.f('ix_points_actions_account_id'))

    op.drop_table('points_actions')

    with op.batch_alter_table('points_accounts', schema=None) as batch_op:
        batch_op.drop_index(batch_op.f('ix_points_accounts_user_id'))

    op.drop_table('points_accounts')
