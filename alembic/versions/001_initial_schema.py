"""Initial schema with users, surveys and survey states

Revision ID: 001_initial_schema
Revises: 
Create Date: 2026-03-02 12:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001_initial_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Create surveys table
    op.create_table(
        'surveys',
        sa.Column('guid', sa.Uuid(), nullable=False),
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('calculations_type', sa.String(length=64), nullable=False),
        sa.Column('questions', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.Column('deleted_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('guid')
    )
    op.create_index(
        'ix_surveys_id',
        'surveys',
        ['id'],
        unique=True,
        postgresql_where=sa.text('deleted_at IS NULL'),
        sqlite_where=sa.text('deleted_at IS NULL'),
    )

    # Create users table
    op.create_table(
        'users',
        sa.Column('guid', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.BigInteger(), nullable=False),
        sa.Column('chat_id', sa.BigInteger(), nullable=False),
        sa.Column('nickname', sa.String(length=255), nullable=False),
        sa.Column('current_survey', sa.Uuid(), nullable=True),
        sa.Column('last_activity', sa.DateTime(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['current_survey'], ['surveys.guid']),
        sa.PrimaryKeyConstraint('guid'),
        sa.UniqueConstraint('user_id')
    )

    # Create survey_states table
    op.create_table(
        'survey_states',
        sa.Column('user_guid', sa.Uuid(), nullable=False),
        sa.Column('survey_guid', sa.Uuid(), nullable=False),
        sa.Column('state', sa.String(length=20), nullable=False),
        sa.Column('answers', sa.JSON(), nullable=False),
        sa.Column('results', sa.JSON(none_as_null=True), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint("state IN ('active', 'finished')", name='check_survey_state_value'),
        sa.CheckConstraint(
            "(state = 'finished') = (results IS NOT NULL)",
            name='check_results_iff_finished'
        ),
        sa.ForeignKeyConstraint(['user_guid'], ['users.guid'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['survey_guid'], ['surveys.guid']),
        sa.PrimaryKeyConstraint('user_guid', 'survey_guid')
    )
    op.create_index(
        'ix_survey_states_state_updated_at', 'survey_states', ['state', 'updated_at'], unique=False
    )


def downgrade() -> None:
    op.drop_index('ix_survey_states_state_updated_at', table_name='survey_states')
    op.drop_table('survey_states')
    op.drop_table('users')
    op.drop_index('ix_surveys_id', table_name='surveys')
    op.drop_table('surveys')
