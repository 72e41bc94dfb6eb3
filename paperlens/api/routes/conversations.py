"""Conversation endpoints - CRUD plus SSE chat streaming."""

import json
import logging
import uuid
from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Response, status
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from paperlens.api.auth import get_current_context
from paperlens.api.routes.uploads import SSE_HEADERS
from paperlens.db.context import RequestContext
from paperlens.db.engine import get_async_engine, get_session
from paperlens.db.repositories import (
    SqlConversationRepository,
    SqlDocumentRepository,
    to_conversation_summary,
)
from paperlens.docs.context import build_chat_context
from paperlens.docs.embedder import Embedder, get_embedder
from paperlens.extraction.pipeline import schedule_background
from paperlens.llm.client import GenerationClient, get_llm_client
from paperlens.llm.confidence import record_confidence
from paperlens.models.chat import ConversationDetail, ConversationSummary

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/conversations", tags=["conversations"])


class CreateConversationRequest(BaseModel):
    """Request body for POST /conversations."""

    document_ids: list[uuid.UUID] = Field(..., min_length=1, description="Documents to chat about")
    title: str | None = Field(None, max_length=200)


class ConversationListResponse(BaseModel):
    """Response for GET /conversations."""

    conversations: list[ConversationSummary]


class SendMessageRequest(BaseModel):
    """Request body for POST /conversations/{conversation_id}/messages."""

    content: str = Field(..., min_length=1, description="User question")


def _sse(event: str, payload: dict) -> str:
    return f"event: {event}\ndata: {json.dumps(payload)}\n\n"


@router.post("", response_model=ConversationSummary, status_code=status.HTTP_201_CREATED)
async def create_conversation(
    request: CreateConversationRequest,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    session: Annotated[AsyncSession, Depends(get_session)],
) -> ConversationSummary:
    """Create a conversation over one or more of the user's documents.

    Raises:
        HTTPException: 404 if any document is missing or not owned by the user
    """
    conversation = await SqlConversationRepository(session).create_conversation(
        ctx, document_ids=request.document_ids, title=request.title
    )
    if conversation is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Document not found")
    return to_conversation_summary(conversation)


@router.get("", response_model=ConversationListResponse)
async def list_conversations(
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    session: Annotated[AsyncSession, Depends(get_session)],
) -> ConversationListResponse:
    """List the current user's conversations, newest first."""
    conversations = await SqlConversationRepository(session).list_conversations(ctx)
    return ConversationListResponse(
        conversations=[to_conversation_summary(c) for c in conversations]
    )


@router.get("/{conversation_id}", response_model=ConversationDetail)
async def get_conversation(
    conversation_id: uuid.UUID,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    session: Annotated[AsyncSession, Depends(get_session)],
) -> ConversationDetail:
    """Get a conversation with its ordered messages."""
    detail = await SqlConversationRepository(session).get_conversation_detail(
        conversation_id, ctx
    )
    if detail is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Conversation not found"
        )
    return detail


@router.delete("/{conversation_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_conversation(
    conversation_id: uuid.UUID,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    session: Annotated[AsyncSession, Depends(get_session)],
) -> Response:
    """Delete a conversation and its messages."""
    deleted = await SqlConversationRepository(session).delete_conversation(conversation_id, ctx)
    if not deleted:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Conversation not found"
        )
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{conversation_id}/messages")
async def send_message(
    conversation_id: uuid.UUID,
    request: SendMessageRequest,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    session: Annotated[AsyncSession, Depends(get_session)],
    client: Annotated[GenerationClient, Depends(get_llm_client)],
    embedder: Annotated[Embedder, Depends(get_embedder)],
) -> StreamingResponse:
    """Answer a question about the conversation's documents via SSE.

    Context comes from retrieved chunks when the documents are indexed,
    otherwise from the leading content of each document. The finished
    answer is stored and scored for confidence in the background.

    Args:
        conversation_id: Conversation ID
        request: User message
        ctx: Request context (user_id)
        session: Database session
        client: Generation client
        embedder: Embedding service for retrieval

    Returns:
        SSE stream of token deltas, then a done (or error) event
    """
    conversations = SqlConversationRepository(session)
    conversation = await conversations.get_conversation(conversation_id, ctx)
    if conversation is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Conversation not found"
        )

    history = [{"role": m.role, "content": m.content} for m in conversation.messages]
    document_ids = [uuid.UUID(value) for value in conversation.document_ids]
    documents = await SqlDocumentRepository(session).get_documents(document_ids, ctx)

    await conversations.add_message(conversation_id, role="user", content=request.content)

    context = await build_chat_context(
        query=request.content,
        documents=documents,
        embedder=embedder,
        session=session,
    )
    messages = [
        {"role": "system", "content": context.system_prompt},
        *history,
        {"role": "user", "content": request.content},
    ]

    async def event_generator() -> AsyncGenerator[str, None]:
        """Generate SSE events."""
        full_response = ""
        try:
            async for delta in client.stream(messages):
                full_response += delta
                yield _sse("token", {"content": delta})

            # The request session may already be closed once streaming starts
            async with AsyncSession(get_async_engine(), expire_on_commit=False) as stream_session:
                assistant = await SqlConversationRepository(stream_session).add_message(
                    conversation_id, role="assistant", content=full_response
                )
        except Exception as e:
            logger.error(f"Chat generation failed for conversation {conversation_id}: {e}")
            yield _sse("error", {"error": "Failed to generate response"})
            return

        schedule_background(
            record_confidence(
                message_id=assistant.message_id,
                context=context.context_text,
                question=request.content,
                answer=full_response,
            )
        )
        yield _sse(
            "done",
            {
                "done": True,
                "message_id": str(assistant.message_id),
                "used_retrieval": context.used_retrieval,
            },
        )

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )
