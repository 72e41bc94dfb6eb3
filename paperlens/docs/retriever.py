"""Document retriever - nearest chunks by cosine similarity."""

import uuid

import numpy as np
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from paperlens.db.models import DocumentChunk as DocumentChunkDB
from paperlens.docs.embedder import Embedder
from paperlens.models.docs import ChunkMatch

DEFAULT_TOP_K = 15


async def find_relevant_chunks(
    *,
    query: str,
    document_ids: list[uuid.UUID],
    embedder: Embedder,
    session: AsyncSession,
    top_k: int = DEFAULT_TOP_K,
) -> list[ChunkMatch]:
    """Return the top-k chunks of the candidate documents closest to the query.

    Scoring: similarity = 1 - cosine distance between the query embedding
    and each chunk embedding. On PostgreSQL the ranking runs inside pgvector;
    other dialects rank the candidate rows with numpy.

    Args:
        query: Natural-language question
        document_ids: Candidate documents (already ownership-checked)
        embedder: Same embedding service used at index time
        session: Async database session
        top_k: Maximum number of results

    Returns:
        Matches sorted by descending similarity; empty if nothing is indexed
    """
    if not document_ids or top_k <= 0:
        return []

    # Skip the embedding call entirely when nothing has been indexed
    exists = await session.execute(
        select(DocumentChunkDB.chunk_id)
        .where(DocumentChunkDB.document_id.in_(document_ids))
        .limit(1)
    )
    if exists.first() is None:
        return []

    query_vector = await embedder.embed(query)

    if session.get_bind().dialect.name == "postgresql":
        return await _rank_in_database(query_vector, document_ids, session, top_k)
    return await _rank_in_memory(query_vector, document_ids, session, top_k)


async def _rank_in_database(
    query_vector: list[float],
    document_ids: list[uuid.UUID],
    session: AsyncSession,
    top_k: int,
) -> list[ChunkMatch]:
    distance = DocumentChunkDB.embedding.cosine_distance(query_vector).label("distance")
    stmt = (
        select(
            DocumentChunkDB.document_id,
            DocumentChunkDB.chunk_index,
            DocumentChunkDB.content,
            distance,
        )
        .where(
            DocumentChunkDB.document_id.in_(document_ids),
            DocumentChunkDB.embedding.is_not(None),
        )
        .order_by(distance)
        .limit(top_k)
    )
    result = await session.execute(stmt)

    return [
        ChunkMatch(
            document_id=row.document_id,
            chunk_index=row.chunk_index,
            content=row.content,
            similarity=1.0 - float(row.distance),
        )
        for row in result.all()
    ]


async def _rank_in_memory(
    query_vector: list[float],
    document_ids: list[uuid.UUID],
    session: AsyncSession,
    top_k: int,
) -> list[ChunkMatch]:
    stmt = select(DocumentChunkDB).where(
        DocumentChunkDB.document_id.in_(document_ids),
        DocumentChunkDB.embedding.is_not(None),
    )
    result = await session.execute(stmt)
    rows = list(result.scalars().all())
    if not rows:
        return []

    query = np.asarray(query_vector, dtype=np.float32)
    matrix = np.vstack([np.asarray(row.embedding, dtype=np.float32) for row in rows])
    norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
    similarities = (matrix @ query) / np.where(norms == 0, 1.0, norms)

    # Sort by similarity descending, then document order for determinism
    ranked = sorted(
        zip(rows, similarities.tolist(), strict=True),
        key=lambda pair: (-pair[1], str(pair[0].document_id), pair[0].chunk_index),
    )

    return [
        ChunkMatch(
            document_id=row.document_id,
            chunk_index=row.chunk_index,
            content=row.content,
            similarity=float(score),
        )
        for row, score in ranked[:top_k]
    ]
