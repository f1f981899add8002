"""create reference_images table

Revision ID: 4b1d2e9c7a10
Revises:
Create Date: 2026-10-19 10:12:41.204917

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '4b1d2e9c7a10'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        'reference_images',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('source_url', sa.Text(), nullable=False),
        sa.Column('tags', sa.JSON(), nullable=False),
        sa.Column('fingerprint', sa.String(length=1024), nullable=False),
        sa.Column('fingerprint_algorithm', sa.String(length=32), nullable=False),
        sa.Column('fingerprint_length', sa.Integer(), nullable=False),
        sa.Column('file_name', sa.String(length=255), nullable=True),
        sa.Column('mime_type', sa.String(length=100), nullable=True),
        sa.Column('file_size', sa.Integer(), nullable=True),
        sa.Column('uploaded_by', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_reference_images_id', 'reference_images', ['id'])
    # candidates are filtered by algorithm and listed newest first
    op.create_index('ix_reference_images_fingerprint_algorithm', 'reference_images', ['fingerprint_algorithm'])
    op.create_index('ix_reference_images_created_at', 'reference_images', ['created_at'])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index('ix_reference_images_created_at', table_name='reference_images')
    op.drop_index('ix_reference_images_fingerprint_algorithm', table_name='reference_images')
    op.drop_index('ix_reference_images_id', table_name='reference_images')
    op.drop_table('reference_images')
