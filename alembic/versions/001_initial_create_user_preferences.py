"""initial create user_preferences

Revision ID: 001
Revises: 
Create Date: 2026-10-19 10:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Criar tabela user_preferences (uma linha por usuário)
    op.create_table(
        'user_preferences',
        sa.Column('user_id', sa.String(length=128), nullable=False),
        sa.Column('display_name', sa.String(length=200), nullable=True),
        sa.Column('business_sector', sa.String(length=100), nullable=True),
        sa.Column('business_other_sector', sa.String(length=200), nullable=True),
        sa.Column('business_description', sa.Text(), nullable=True),
        sa.Column('role_type', sa.String(length=100), nullable=True),
        sa.Column('role_other_type', sa.String(length=200), nullable=True),
        sa.Column('themes_selected', sa.JSON(), nullable=False),
        sa.Column('themes_custom', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('user_id')
    )


def downgrade() -> None:
    op.drop_table('user_preferences')
