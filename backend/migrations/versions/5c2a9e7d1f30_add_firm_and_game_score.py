"""add firm catalog and game_score tables

Revision ID: 5c2a9e7d1f30
Revises:
Create Date: 2026-10-19 10:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '5c2a9e7d1f30'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    insp = sa.inspect(bind)
    existing_tables = set(insp.get_table_names())

    if 'firm' not in existing_tables:
        op.create_table(
            'firm',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('name', sa.String(length=128), nullable=False),
            sa.Column('contact', sa.String(length=256), nullable=True),
            sa.Column('games', sa.Text(), nullable=True),
        )
        op.create_index('ix_firm_name', 'firm', ['name'], unique=True)

    if 'game_score' not in existing_tables:
        op.create_table(
            'game_score',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('player_id', sa.String(length=128), nullable=False),
            sa.Column('firm_name', sa.String(length=128), nullable=False),
            sa.Column('game_name', sa.String(length=64), nullable=False),
            sa.Column('score', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('details', sa.Text(), nullable=True),
            sa.Column('created_at', sa.DateTime(), nullable=False),
        )
        op.create_index('ix_game_score_player_id', 'game_score', ['player_id'])
        op.create_index('ix_game_score_firm_name', 'game_score', ['firm_name'])


def downgrade():
    bind = op.get_bind()
    insp = sa.inspect(bind)
    existing_tables = set(insp.get_table_names())

    if 'game_score' in existing_tables:
        op.drop_index('ix_game_score_firm_name', table_name='game_score')
        op.drop_index('ix_game_score_player_id', table_name='game_score')
        op.drop_table('game_score')
    if 'firm' in existing_tables:
        op.drop_index('ix_firm_name', table_name='firm')
        op.drop_table('firm')
