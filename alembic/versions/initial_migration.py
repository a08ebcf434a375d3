"""Initial migration

Revision ID: initial_migration
Revises: 
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
import sqlmodel

# revision identifiers, used by Alembic.
revision: str = 'initial_migration'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Create filerecord table
    op.create_table(
        'filerecord',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('original_name', sqlmodel.sql.sqltypes.AutoString(length=255), nullable=False),
        sa.Column('size', sa.Integer(), nullable=False),
        sa.Column('content_type', sqlmodel.sql.sqltypes.AutoString(length=100), nullable=False),
        sa.Column('declared_content_type', sqlmodel.sql.sqltypes.AutoString(length=255), nullable=True),
        sa.Column('bucket', sqlmodel.sql.sqltypes.AutoString(length=255), nullable=False),
        sa.Column('object_key', sqlmodel.sql.sqltypes.AutoString(length=1024), nullable=False),
        sa.Column('uploaded_at', sa.DateTime(), nullable=False),
        sa.Column('url', sqlmodel.sql.sqltypes.AutoString(length=2048), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )


def downgrade() -> None:
    op.drop_table('filerecord')
