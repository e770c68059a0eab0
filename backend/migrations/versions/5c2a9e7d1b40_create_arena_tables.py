"""create user, challenge, room and game tables

Revision ID: 5c2a9e7d1b40
Revises:
Create Date: 2026-10-18 00:00:00
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '5c2a9e7d1b40'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'user',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('username', sa.String(length=64), nullable=False),
        sa.Column('email', sa.String(length=120), nullable=False),
        sa.Column('password_hash', sa.String(length=256), nullable=False),
        sa.Column('display_name', sa.String(length=64), nullable=True),
        sa.Column('avatar', sa.String(length=256), nullable=True),
        sa.Column('level', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('experience', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('games_played', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('games_won', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('average_score', sa.Float(), nullable=False, server_default='0'),
        sa.Column('total_play_time', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('best_streak', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('current_streak', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('notifications', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('sound_enabled', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('theme', sa.String(length=16), nullable=False, server_default='light'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_login_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
    )
    op.create_index('ix_user_username', 'user', ['username'], unique=True)
    op.create_index('ix_user_email', 'user', ['email'], unique=True)

    op.create_table(
        'challenge',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('title', sa.String(length=128), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('question', sa.Text(), nullable=False),
        sa.Column('type', sa.String(length=32), nullable=False),
        sa.Column('difficulty', sa.String(length=16), nullable=False),
        sa.Column('options_json', sa.Text(), nullable=True),
        sa.Column('correct_answer', sa.String(length=256), nullable=False),
        sa.Column('explanation', sa.Text(), nullable=True),
        sa.Column('time_limit', sa.Integer(), nullable=False, server_default='60'),
        sa.Column('base_score', sa.Integer(), nullable=False, server_default='100'),
        sa.Column('hints_json', sa.Text(), nullable=True),
        sa.Column('tags_json', sa.Text(), nullable=True),
        sa.Column('created_by', sa.Integer(), sa.ForeignKey('user.id'), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('times_used', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('correct_attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('average_time', sa.Float(), nullable=False, server_default='0'),
        sa.Column('success_rate', sa.Float(), nullable=False, server_default='0'),
    )
    op.create_index('ix_challenge_type', 'challenge', ['type'])
    op.create_index('ix_challenge_difficulty', 'challenge', ['difficulty'])

    op.create_table(
        'room',
        sa.Column('id', sa.String(length=32), primary_key=True),
        sa.Column('room_code', sa.String(length=6), nullable=False),
        sa.Column('status', sa.String(length=32), nullable=False),
        sa.Column('is_public', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('snapshot', sa.Text(), nullable=False),
    )
    op.create_index('ix_room_room_code', 'room', ['room_code'], unique=True)
    op.create_index('ix_room_status', 'room', ['status'])

    op.create_table(
        'game',
        sa.Column('id', sa.String(length=32), primary_key=True),
        sa.Column('room_id', sa.String(length=32), nullable=False),
        sa.Column('status', sa.String(length=32), nullable=False),
        sa.Column('snapshot', sa.Text(), nullable=False),
    )
    op.create_index('ix_game_room_id', 'game', ['room_id'], unique=True)
    op.create_index('ix_game_status', 'game', ['status'])


def downgrade():
    op.drop_index('ix_game_status', table_name='game')
    op.drop_index('ix_game_room_id', table_name='game')
    op.drop_table('game')
    op.drop_index('ix_room_status', table_name='room')
    op.drop_index('ix_room_room_code', table_name='room')
    op.drop_table('room')
    op.drop_index('ix_challenge_difficulty', table_name='challenge')
    op.drop_index('ix_challenge_type', table_name='challenge')
    op.drop_table('challenge')
    op.drop_index('ix_user_email', table_name='user')
    op.drop_index('ix_user_username', table_name='user')
    op.drop_table('user')
