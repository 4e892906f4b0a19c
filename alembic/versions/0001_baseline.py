"""Baseline: accounts, users, boards, activity seen state and releases.

Revision ID: 0001_baseline
Revises:
Create Date: 2026-10-18

Creates:
- accounts, users, boards, board_preferences
- activity_seen_items, activity_watermarks
- releases, release_accounts, release_tags, release_tag_assignments, release_items
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '0001_baseline'
down_revision = None
branch_labels = None
depends_on = None


def _ts(name: str, nullable: bool = False) -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=True), nullable=nullable)


def upgrade() -> None:
    # ==========================================================================
    # accounts / users / boards
    # ==========================================================================
    op.create_table(
        'accounts',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        _ts('created_at'),
        _ts('updated_at'),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table(
        'users',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('role', sa.String(50), nullable=False),
        sa.Column('account_id', sa.Uuid(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('token_version', sa.Integer(), nullable=False),
        _ts('created_at'),
        sa.ForeignKeyConstraint(['account_id'], ['accounts.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email'),
    )
    op.create_index('idx_users_account_id', 'users', ['account_id'])

    op.create_table(
        'boards',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('type', sa.String(20), nullable=False),
        sa.Column('account_id', sa.Uuid(), nullable=False),
        sa.Column('team_id', sa.String(100), nullable=False),
        sa.Column('project_id', sa.String(100), nullable=True),
        _ts('created_at'),
        _ts('updated_at'),
        sa.ForeignKeyConstraint(['account_id'], ['accounts.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('idx_boards_account_id', 'boards', ['account_id'])

    op.create_table(
        'board_preferences',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('board_id', sa.Uuid(), nullable=False),
        sa.Column('view', sa.String(20), nullable=False),
        sa.Column('sort_rules', sa.JSON(), nullable=False),
        _ts('updated_at'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['board_id'], ['boards.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'board_id', name='uq_board_pref_user_board'),
    )

    # ==========================================================================
    # activity seen state
    # ==========================================================================
    op.create_table(
        'activity_seen_items',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('board_id', sa.Uuid(), nullable=False),
        sa.Column('item_id', sa.String(255), nullable=False),
        _ts('seen_at'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['board_id'], ['boards.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'board_id', 'item_id', name='uq_activity_seen_item'),
    )
    op.create_index('idx_activity_seen_user_board', 'activity_seen_items', ['user_id', 'board_id'])

    op.create_table(
        'activity_watermarks',
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('board_id', sa.Uuid(), nullable=False),
        _ts('last_seen_at'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['board_id'], ['boards.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('user_id', 'board_id'),
    )

    # ==========================================================================
    # releases
    # ==========================================================================
    op.create_table(
        'releases',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('status', sa.String(20), nullable=False),
        _ts('published_at', nullable=True),
        sa.Column('created_by_user_id', sa.Uuid(), nullable=True),
        _ts('created_at'),
        _ts('updated_at'),
        sa.ForeignKeyConstraint(['created_by_user_id'], ['users.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('idx_releases_timeline', 'releases', ['published_at', 'created_at'])
    op.create_index('idx_releases_status', 'releases', ['status'])

    op.create_table(
        'release_accounts',
        sa.Column('release_id', sa.Uuid(), nullable=False),
        sa.Column('account_id', sa.Uuid(), nullable=False),
        sa.ForeignKeyConstraint(['release_id'], ['releases.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['account_id'], ['accounts.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('release_id', 'account_id'),
    )

    op.create_table(
        'release_tags',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('slug', sa.String(100), nullable=False),
        _ts('created_at'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('slug'),
    )

    op.create_table(
        'release_tag_assignments',
        sa.Column('release_id', sa.Uuid(), nullable=False),
        sa.Column('tag_id', sa.Uuid(), nullable=False),
        sa.ForeignKeyConstraint(['release_id'], ['releases.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['tag_id'], ['release_tags.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('release_id', 'tag_id'),
    )

    op.create_table(
        'release_items',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('release_id', sa.Uuid(), nullable=False),
        sa.Column('issue_id', sa.String(100), nullable=False),
        sa.Column('issue_identifier', sa.String(50), nullable=False),
        sa.Column('title', sa.String(500), nullable=False),
        sa.Column('state_name', sa.String(100), nullable=False),
        sa.Column('state_type', sa.String(50), nullable=True),
        sa.Column('priority', sa.Integer(), nullable=True),
        sa.Column('board_type', sa.String(20), nullable=False),
        sa.Column('account_id', sa.Uuid(), nullable=False),
        _ts('created_at'),
        sa.ForeignKeyConstraint(['release_id'], ['releases.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['account_id'], ['accounts.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('release_id', 'issue_id', name='uq_release_item_issue'),
    )


def downgrade() -> None:
    op.drop_table('release_items')
    op.drop_table('release_tag_assignments')
    op.drop_table('release_tags')
    op.drop_table('release_accounts')
    op.drop_index('idx_releases_status', table_name='releases')
    op.drop_index('idx_releases_timeline', table_name='releases')
    op.drop_table('releases')
    op.drop_table('activity_watermarks')
    op.drop_index('idx_activity_seen_user_board', table_name='activity_seen_items')
    op.drop_table('activity_seen_items')
    op.drop_table('board_preferences')
    op.drop_index('idx_boards_account_id', table_name='boards')
    op.drop_table('boards')
    op.drop_index('idx_users_account_id', table_name='users')
    op.drop_table('users')
    op.drop_table('accounts')
