"""Initial schema

Revision ID: 001
Revises:
Create Date: 2026-10-19

Creates the vector extension and the document, document_chunk,
conversation and message tables.
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from pgvector.sqlalchemy import Vector
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

EMBEDDING_DIM = 384


def upgrade() -> None:
    """Create all tables."""
    op.execute("CREATE EXTENSION IF NOT EXISTS vector")

    # document table
    op.create_table(
        "document",
        sa.Column("document_id", postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("original_filename", sa.Text(), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("file_type", sa.Text(), nullable=False),
        sa.Column("complexity", sa.Text(), server_default="simple", nullable=False),
        sa.Column("page_count", sa.Integer(), nullable=True),
        sa.Column("pii_found", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("pii_types", sa.JSON(), server_default=sa.text("'[]'"), nullable=False),
        sa.Column("doi", sa.Text(), nullable=True),
        sa.Column("doc_title", sa.Text(), nullable=True),
        sa.Column("authors", sa.JSON(), nullable=True),
        sa.Column("journal", sa.Text(), nullable=True),
        sa.Column("publish_year", sa.Integer(), nullable=True),
        sa.Column("abstract", sa.Text(), nullable=True),
        sa.Column("keywords", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.CheckConstraint("file_type IN ('pdf', 'doc', 'ppt', 'xls')", name="ck_document_file_type"),
        sa.CheckConstraint(
            "complexity IN ('simple', 'complex', 'structured')", name="ck_document_complexity"
        ),
    )
    op.create_index("idx_document_user", "document", ["user_id", "created_at"])

    # document_chunk table
    op.create_table(
        "document_chunk",
        sa.Column("chunk_id", postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("document_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("chunk_index", sa.Integer(), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("token_count", sa.Integer(), nullable=False),
        sa.Column("embedding", Vector(EMBEDDING_DIM), nullable=True),
        sa.ForeignKeyConstraint(["document_id"], ["document.document_id"], ondelete="CASCADE"),
    )
    op.create_index("idx_chunk_document_order", "document_chunk", ["document_id", "chunk_index"])

    # conversation table
    op.create_table(
        "conversation",
        sa.Column("conversation_id", postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("document_ids", sa.JSON(), server_default=sa.text("'[]'"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    )
    op.create_index("idx_conversation_user", "conversation", ["user_id", "created_at"])

    # message table
    op.create_table(
        "message",
        sa.Column("message_id", postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("conversation_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("role", sa.Text(), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("confidence_score", sa.Float(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.ForeignKeyConstraint(
            ["conversation_id"], ["conversation.conversation_id"], ondelete="CASCADE"
        ),
        sa.CheckConstraint("role IN ('user', 'assistant')", name="ck_message_role"),
    )
    op.create_index("idx_message_conversation", "message", ["conversation_id", "created_at"])


def downgrade() -> None:
    """Drop all tables."""
    op.drop_table("message")
    op.drop_table("conversation")
    op.drop_table("document_chunk")
    op.drop_table("document")
