"""Document endpoints - upload, list, get, delete, reindex and search."""

import logging
import uuid
from typing import Annotated

from fastapi import (
    APIRouter,
    Depends,
    File,
    Form,
    HTTPException,
    Query,
    Response,
    UploadFile,
    status,
)
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from paperlens.api.auth import get_current_context
from paperlens.db.context import RequestContext
from paperlens.db.engine import get_session
from paperlens.db.repositories import SqlDocumentRepository, to_user_document
from paperlens.docs.embedder import Embedder, get_embedder
from paperlens.docs.indexer import index_document_chunks
from paperlens.docs.retriever import DEFAULT_TOP_K, find_relevant_chunks
from paperlens.errors import IndexingError, UnsupportedFileError
from paperlens.extraction.pipeline import process_upload, schedule_post_ingest
from paperlens.llm.client import GenerationClient, get_llm_client
from paperlens.models.docs import ChunkMatch, UserDocument

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/documents", tags=["documents"])


class DocumentListResponse(BaseModel):
    """Response for GET /documents."""

    documents: list[UserDocument]


class ReindexResponse(BaseModel):
    """Response for POST /documents/{document_id}/reindex."""

    document_id: uuid.UUID
    chunk_count: int


class DocumentSearchResponse(BaseModel):
    """Response for GET /documents/{document_id}/search."""

    matches: list[ChunkMatch]
    query: str


@router.post("/upload", response_model=UserDocument, status_code=status.HTTP_201_CREATED)
async def upload_document(
    file: Annotated[UploadFile, File()],
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    session: Annotated[AsyncSession, Depends(get_session)],
    client: Annotated[GenerationClient, Depends(get_llm_client)],
    upload_id: Annotated[str | None, Form()] = None,
) -> UserDocument:
    """Upload a file and convert it to a redacted Markdown document.

    Progress is published under upload_id; clients that want to follow it
    open GET /uploads/{upload_id}/events before posting. Metadata
    extraction and indexing start after the document is created.

    Args:
        file: Multipart file (PDF, Word, PowerPoint or Excel)
        ctx: Request context (user_id)
        session: Database session
        client: Generation client
        upload_id: Optional client-chosen progress token

    Returns:
        Created document
    """
    data = await file.read()
    try:
        doc = await process_upload(
            data=data,
            filename=file.filename or "upload",
            declared_mime=file.content_type or "",
            ctx=ctx,
            upload_id=upload_id or uuid.uuid4().hex,
            session=session,
            client=client,
        )
    except UnsupportedFileError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    except Exception as e:
        logger.error(f"Upload error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to process file",
        ) from e
    finally:
        await file.close()

    schedule_post_ingest(doc.document_id)
    return to_user_document(doc)


@router.get("", response_model=DocumentListResponse)
async def list_documents(
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    session: Annotated[AsyncSession, Depends(get_session)],
) -> DocumentListResponse:
    """List the current user's documents, newest first."""
    docs = await SqlDocumentRepository(session).list_documents(ctx)
    return DocumentListResponse(documents=[to_user_document(doc) for doc in docs])


@router.get("/{document_id}", response_model=UserDocument)
async def get_document(
    document_id: uuid.UUID,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    session: Annotated[AsyncSession, Depends(get_session)],
) -> UserDocument:
    """Get one document with its content and metadata."""
    doc = await SqlDocumentRepository(session).get_document(document_id, ctx)
    if doc is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Document not found")
    return to_user_document(doc)


@router.delete("/{document_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_document(
    document_id: uuid.UUID,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    session: Annotated[AsyncSession, Depends(get_session)],
) -> Response:
    """Delete a document, its chunks, and its references from conversations."""
    deleted = await SqlDocumentRepository(session).delete_document(document_id, ctx)
    if not deleted:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Document not found")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{document_id}/reindex", response_model=ReindexResponse)
async def reindex_document(
    document_id: uuid.UUID,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    session: Annotated[AsyncSession, Depends(get_session)],
    embedder: Annotated[Embedder, Depends(get_embedder)],
) -> ReindexResponse:
    """Rebuild the document's chunk set.

    Returns:
        Number of chunks written

    Raises:
        HTTPException: 404 if missing, 503 if indexing failed (document kept)
    """
    doc = await SqlDocumentRepository(session).get_document(document_id, ctx)
    if doc is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Document not found")

    try:
        count = await index_document_chunks(
            document_id=document_id,
            content=doc.content,
            embedder=embedder,
            session=session,
        )
    except IndexingError as e:
        logger.error(f"Reindex failed for document {document_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="search unavailable",
        ) from e

    return ReindexResponse(document_id=document_id, chunk_count=count)


@router.get("/{document_id}/search", response_model=DocumentSearchResponse)
async def search_document(
    document_id: uuid.UUID,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    session: Annotated[AsyncSession, Depends(get_session)],
    embedder: Annotated[Embedder, Depends(get_embedder)],
    query: Annotated[str, Query(min_length=1, max_length=1000)],
    limit: Annotated[int, Query(ge=1, le=50)] = DEFAULT_TOP_K,
) -> DocumentSearchResponse:
    """Return the document's chunks most similar to the query."""
    doc = await SqlDocumentRepository(session).get_document(document_id, ctx)
    if doc is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Document not found")

    matches = await find_relevant_chunks(
        query=query,
        document_ids=[document_id],
        embedder=embedder,
        session=session,
        top_k=limit,
    )
    return DocumentSearchResponse(matches=matches, query=query)
