"""Document indexing - chunk, embed and atomically replace a document's chunks."""

import logging
import uuid

from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from paperlens.db.models import DocumentChunk as DocumentChunkDB
from paperlens.docs.chunker import chunk_document
from paperlens.docs.embedder import Embedder
from paperlens.errors import IndexingError

logger = logging.getLogger(__name__)


async def index_document_chunks(
    *,
    document_id: uuid.UUID,
    content: str,
    embedder: Embedder,
    session: AsyncSession,
) -> int:
    """Replace a document's chunk set with freshly embedded chunks.

    Embeddings are computed before the transaction opens. The delete and
    the inserts then commit together, so readers see either the old chunk
    set or the new one, never a mix.

    Args:
        document_id: Document whose chunks are rebuilt
        content: Finished (redacted) Markdown
        embedder: Embedding service
        session: Async database session

    Returns:
        Number of chunks written

    Raises:
        IndexingError: Embedding or persistence failed; prior chunks are kept
    """
    chunks = chunk_document(content)

    # Sequential per chunk; the transaction below is what must stay atomic
    try:
        vectors = [await embedder.embed(chunk.content) for chunk in chunks]
    except Exception as e:
        raise IndexingError(f"Embedding failed for document {document_id}") from e

    try:
        await session.execute(
            delete(DocumentChunkDB).where(DocumentChunkDB.document_id == document_id)
        )
        session.add_all(
            [
                DocumentChunkDB(
                    chunk_id=uuid.uuid4(),
                    document_id=document_id,
                    chunk_index=chunk.index,
                    content=chunk.content,
                    token_count=chunk.token_count,
                    embedding=vector,
                )
                for chunk, vector in zip(chunks, vectors, strict=True)
            ]
        )
        await session.commit()
    except SQLAlchemyError as e:
        await session.rollback()
        raise IndexingError(f"Persisting chunks failed for document {document_id}") from e

    logger.info(f"Indexed document {document_id}: {len(chunks)} chunks")
    return len(chunks)


async def get_chunk_count(*, document_id: uuid.UUID, session: AsyncSession) -> int:
    """Number of indexed chunks for a document."""
    result = await session.execute(
        select(func.count())
        .select_from(DocumentChunkDB)
        .where(DocumentChunkDB.document_id == document_id)
    )
    return int(result.scalar_one())


async def count_indexed_chunks(
    *, document_ids: list[uuid.UUID], session: AsyncSession
) -> int:
    """Total indexed chunks across a set of documents."""
    if not document_ids:
        return 0
    result = await session.execute(
        select(func.count())
        .select_from(DocumentChunkDB)
        .where(DocumentChunkDB.document_id.in_(document_ids))
    )
    return int(result.scalar_one())
