"""documents table for tenant metadata

Revision ID: 001_documents_table
Revises:
Create Date: 2026-10-17
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001_documents_table'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'documents',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('collection_path', sa.String(), nullable=False),
        sa.Column('doc_id', sa.String(), nullable=False),
        sa.Column('data', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint('collection_path', 'doc_id', name='uq_document_path_id'),
    )
    op.create_index('ix_documents_collection_path', 'documents', ['collection_path'])


def downgrade() -> None:
    op.drop_index('ix_documents_collection_path', table_name='documents')
    op.drop_table('documents')
