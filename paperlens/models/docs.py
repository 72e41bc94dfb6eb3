"""Document domain models."""

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, Field

FileType = Literal["pdf", "doc", "ppt", "xls"]
Complexity = Literal["simple", "complex", "structured"]


class DocumentMetadata(BaseModel):
    """Bibliographic metadata derived after ingestion."""

    doi: str | None = None
    doc_title: str | None = None
    authors: list[str] | None = None
    journal: str | None = None
    publish_year: int | None = None
    abstract: str | None = Field(None, max_length=500)
    keywords: list[str] | None = None


class UserDocument(BaseModel):
    """User document with finished (redacted) Markdown content."""

    document_id: UUID
    user_id: UUID
    title: str
    original_filename: str
    content: str
    file_type: FileType
    complexity: Complexity = "simple"
    page_count: int | None = None
    pii_found: bool = False
    pii_types: list[str] = Field(default_factory=list)
    metadata: DocumentMetadata = Field(default_factory=DocumentMetadata)
    created_at: datetime


class ChunkMatch(BaseModel):
    """Retrieved chunk with cosine similarity score."""

    document_id: UUID
    chunk_index: int
    content: str
    similarity: float
