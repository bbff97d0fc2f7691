"""create quiz, game, game flow and player tables

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
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('username', sa.String(length=64), nullable=False),
        sa.Column('password_hash', sa.String(length=256), nullable=False),
    )
    op.create_index('ix_user_username', 'user', ['username'], unique=True)

    op.create_table(
        'quiz_sets',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('user_id', sa.String(length=36), sa.ForeignKey('user.id'), nullable=True),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('play_settings', sa.JSON(), nullable=True),
        sa.Column('times_played', sa.Integer(), nullable=False, server_default='0'),
    )

    op.create_table(
        'questions',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('question_set_id', sa.String(length=36), sa.ForeignKey('quiz_sets.id'), nullable=False),
        sa.Column('question_text', sa.Text(), nullable=False),
        sa.Column('question_type', sa.String(length=32), nullable=False, server_default='multiple_choice'),
        sa.Column('image_url', sa.String(length=512), nullable=True),
        sa.Column('show_question_time', sa.Integer(), nullable=True),
        sa.Column('answering_time', sa.Integer(), nullable=True),
        sa.Column('points', sa.Integer(), nullable=False, server_default='100'),
        sa.Column('difficulty', sa.String(length=32), nullable=False, server_default='easy'),
        sa.Column('order_index', sa.Integer(), nullable=False),
        sa.Column('explanation_title', sa.String(length=255), nullable=True),
        sa.Column('explanation_text', sa.Text(), nullable=True),
        sa.Column('explanation_image_url', sa.String(length=512), nullable=True),
        sa.Column('show_explanation_time', sa.Integer(), nullable=True),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_questions_question_set_id', 'questions', ['question_set_id'])

    op.create_table(
        'answers',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('question_id', sa.String(length=36), sa.ForeignKey('questions.id'), nullable=False),
        sa.Column('answer_text', sa.String(length=512), nullable=False),
        sa.Column('image_url', sa.String(length=512), nullable=True),
        sa.Column('is_correct', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('order_index', sa.Integer(), nullable=False),
    )
    op.create_index('ix_answers_question_id', 'answers', ['question_id'])

    op.create_table(
        'games',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('user_id', sa.String(length=36), sa.ForeignKey('user.id'), nullable=False),
        sa.Column('quiz_set_id', sa.String(length=36), sa.ForeignKey('quiz_sets.id'), nullable=False),
        sa.Column('game_code', sa.String(length=16), nullable=False),
        sa.Column('status', sa.String(length=32), nullable=False, server_default='waiting'),
        sa.Column('current_question_index', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('locked', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('game_settings', sa.JSON(), nullable=True),
        sa.Column('current_players', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('paused_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('resumed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('ended_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_games_user_id', 'games', ['user_id'])
    op.create_index('ix_games_game_code', 'games', ['game_code'], unique=True)

    op.create_table(
        'game_flows',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('game_id', sa.String(length=36), sa.ForeignKey('games.id', ondelete='CASCADE'),
                  nullable=False, unique=True),
        sa.Column('quiz_set_id', sa.String(length=36), sa.ForeignKey('quiz_sets.id'), nullable=False),
        sa.Column('total_questions', sa.Integer(), nullable=False),
        sa.Column('current_question_id', sa.String(length=36), nullable=True),
        sa.Column('current_question_index', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('next_question_id', sa.String(length=36), nullable=True),
        sa.Column('current_question_start_time', sa.DateTime(timezone=True), nullable=True),
        sa.Column('current_question_end_time', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        'players',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('game_id', sa.String(length=36), sa.ForeignKey('games.id', ondelete='CASCADE'), nullable=False),
        sa.Column('player_name', sa.String(length=64), nullable=False),
        sa.Column('device_id', sa.String(length=100), nullable=False),
        sa.Column('is_host', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_logged_in', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_players_game_id', 'players', ['game_id'])

    op.create_table(
        'game_player_data',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('player_id', sa.String(length=36), sa.ForeignKey('players.id', ondelete='CASCADE'), nullable=False),
        sa.Column('game_id', sa.String(length=36), sa.ForeignKey('games.id', ondelete='CASCADE'), nullable=False),
        sa.Column('player_device_id', sa.String(length=100), nullable=False),
        sa.Column('score', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('answer_report', sa.JSON(), nullable=False),
    )
    op.create_index('ix_game_player_data_player_id', 'game_player_data', ['player_id'])
    op.create_index('ix_game_player_data_game_id', 'game_player_data', ['game_id'])


def downgrade():
    op.drop_table('game_player_data')
    op.drop_table('players')
    op.drop_table('game_flows')
    op.drop_table('games')
    op.drop_table('answers')
    op.drop_table('questions')
    op.drop_table('quiz_sets')
    op.drop_table('user')
