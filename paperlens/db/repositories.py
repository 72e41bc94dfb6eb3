"""User-scoped repositories for documents, conversations and messages.

Every query filters by the caller's user_id; a row owned by someone else is
indistinguishable from a missing row.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from paperlens.db.context import RequestContext
from paperlens.db.models import Conversation, Document, DocumentChunk, Message
from paperlens.models.chat import ChatMessage, ConversationDetail, ConversationSummary, Role
from paperlens.models.docs import DocumentMetadata, UserDocument
from paperlens.models.extraction import ExtractionOutcome

DEFAULT_CONVERSATION_TITLE = "New Conversation"


def _now() -> datetime:
    return datetime.now(timezone.utc)


def to_user_document(doc: Document) -> UserDocument:
    """Convert an ORM document row to its API model."""
    return UserDocument(
        document_id=doc.document_id,
        user_id=doc.user_id,
        title=doc.title,
        original_filename=doc.original_filename,
        content=doc.content,
        file_type=doc.file_type,  # type: ignore[arg-type]
        complexity=doc.complexity,  # type: ignore[arg-type]
        page_count=doc.page_count,
        pii_found=doc.pii_found,
        pii_types=list(doc.pii_types or []),
        metadata=DocumentMetadata(
            doi=doc.doi,
            doc_title=doc.doc_title,
            authors=doc.authors,
            journal=doc.journal,
            publish_year=doc.publish_year,
            abstract=doc.abstract,
            keywords=doc.keywords,
        ),
        created_at=doc.created_at,
    )


def to_chat_message(message: Message) -> ChatMessage:
    """Convert an ORM message row to its API model."""
    return ChatMessage(
        message_id=message.message_id,
        conversation_id=message.conversation_id,
        role=message.role,  # type: ignore[arg-type]
        content=message.content,
        confidence_score=message.confidence_score,
        created_at=message.created_at,
    )


def to_conversation_summary(conversation: Conversation) -> ConversationSummary:
    """Convert an ORM conversation row to its API model."""
    return ConversationSummary(
        conversation_id=conversation.conversation_id,
        user_id=conversation.user_id,
        title=conversation.title,
        document_ids=[uuid.UUID(value) for value in conversation.document_ids],
        created_at=conversation.created_at,
    )


class SqlDocumentRepository:
    """Async SQL access to the caller's documents."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create_document(
        self,
        ctx: RequestContext,
        *,
        original_filename: str,
        outcome: ExtractionOutcome,
    ) -> Document:
        """Persist a finished document.

        The outcome content has already been through redaction; this is the
        only way a Document row gets created.
        """
        doc = Document(
            document_id=uuid.uuid4(),
            user_id=ctx.user_id,
            title=original_filename,
            original_filename=original_filename,
            content=outcome.content,
            file_type=outcome.file_type,
            complexity=outcome.complexity,
            page_count=outcome.page_count,
            pii_found=outcome.pii.pii_found,
            pii_types=list(outcome.pii.types_detected),
            created_at=_now(),
        )
        self._session.add(doc)
        await self._session.commit()
        return doc

    async def list_documents(self, ctx: RequestContext) -> list[Document]:
        """List documents newest first."""
        result = await self._session.execute(
            select(Document)
            .where(Document.user_id == ctx.user_id)
            .order_by(Document.created_at.desc())
        )
        return list(result.scalars().all())

    async def get_document(
        self, document_id: uuid.UUID, ctx: RequestContext
    ) -> Document | None:
        """Get a document by ID."""
        result = await self._session.execute(
            select(Document).where(
                Document.document_id == document_id,
                Document.user_id == ctx.user_id,
            )
        )
        return result.scalar_one_or_none()

    async def get_documents(
        self, document_ids: list[uuid.UUID], ctx: RequestContext
    ) -> list[Document]:
        """Get the caller's documents among the given IDs, in the given order."""
        if not document_ids:
            return []
        result = await self._session.execute(
            select(Document).where(
                Document.document_id.in_(document_ids),
                Document.user_id == ctx.user_id,
            )
        )
        by_id = {doc.document_id: doc for doc in result.scalars().all()}
        return [by_id[doc_id] for doc_id in document_ids if doc_id in by_id]

    async def delete_document(self, document_id: uuid.UUID, ctx: RequestContext) -> bool:
        """Delete a document with its chunks, and detach it from conversations.

        Conversations left without any document are deleted too.

        Returns:
            False if the document does not exist for this user
        """
        doc = await self.get_document(document_id, ctx)
        if doc is None:
            return False

        await self._session.execute(
            delete(DocumentChunk).where(DocumentChunk.document_id == document_id)
        )

        key = str(document_id)
        result = await self._session.execute(
            select(Conversation).where(Conversation.user_id == ctx.user_id)
        )
        for conversation in result.scalars().all():
            if key not in conversation.document_ids:
                continue
            remaining = [value for value in conversation.document_ids if value != key]
            if remaining:
                conversation.document_ids = remaining
            else:
                await self._session.execute(
                    delete(Message).where(
                        Message.conversation_id == conversation.conversation_id
                    )
                )
                await self._session.delete(conversation)

        await self._session.delete(doc)
        await self._session.commit()
        return True

    async def apply_document_metadata(
        self, document_id: uuid.UUID, metadata: DocumentMetadata
    ) -> None:
        """Store bibliographic metadata on a document.

        Called from background tasks, which run without a request context.
        """
        doc = await self._session.get(Document, document_id)
        if doc is None:
            return

        doc.doi = metadata.doi
        doc.doc_title = metadata.doc_title
        doc.authors = metadata.authors
        doc.journal = metadata.journal
        doc.publish_year = metadata.publish_year
        doc.abstract = metadata.abstract
        doc.keywords = metadata.keywords
        await self._session.commit()


class SqlConversationRepository:
    """Async SQL access to the caller's conversations and messages."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create_conversation(
        self,
        ctx: RequestContext,
        *,
        document_ids: list[uuid.UUID],
        title: str | None = None,
    ) -> Conversation | None:
        """Create a conversation over documents the caller owns.

        Returns:
            None if any document is missing or owned by someone else
        """
        unique_ids = list(dict.fromkeys(document_ids))
        owned = await SqlDocumentRepository(self._session).get_documents(unique_ids, ctx)
        if not unique_ids or len(owned) != len(unique_ids):
            return None

        conversation = Conversation(
            conversation_id=uuid.uuid4(),
            user_id=ctx.user_id,
            title=title or DEFAULT_CONVERSATION_TITLE,
            document_ids=[str(doc_id) for doc_id in unique_ids],
            created_at=_now(),
        )
        self._session.add(conversation)
        await self._session.commit()
        return conversation

    async def list_conversations(self, ctx: RequestContext) -> list[Conversation]:
        """List conversations newest first."""
        result = await self._session.execute(
            select(Conversation)
            .where(Conversation.user_id == ctx.user_id)
            .order_by(Conversation.created_at.desc())
        )
        return list(result.scalars().all())

    async def get_conversation(
        self, conversation_id: uuid.UUID, ctx: RequestContext
    ) -> Conversation | None:
        """Get a conversation with its messages loaded."""
        result = await self._session.execute(
            select(Conversation)
            .options(selectinload(Conversation.messages))
            .where(
                Conversation.conversation_id == conversation_id,
                Conversation.user_id == ctx.user_id,
            )
        )
        return result.scalar_one_or_none()

    async def get_conversation_detail(
        self, conversation_id: uuid.UUID, ctx: RequestContext
    ) -> ConversationDetail | None:
        """Get a conversation and its ordered messages as API models."""
        conversation = await self.get_conversation(conversation_id, ctx)
        if conversation is None:
            return None
        return ConversationDetail(
            conversation=to_conversation_summary(conversation),
            messages=[to_chat_message(m) for m in conversation.messages],
        )

    async def delete_conversation(
        self, conversation_id: uuid.UUID, ctx: RequestContext
    ) -> bool:
        """Delete a conversation and its messages."""
        conversation = await self.get_conversation(conversation_id, ctx)
        if conversation is None:
            return False

        # Messages are loaded, so the ORM cascade removes them
        await self._session.delete(conversation)
        await self._session.commit()
        return True

    async def add_message(
        self, conversation_id: uuid.UUID, *, role: Role, content: str
    ) -> Message:
        """Append a message to a conversation (ownership checked by the caller)."""
        message = Message(
            message_id=uuid.uuid4(),
            conversation_id=conversation_id,
            role=role,
            content=content,
            created_at=_now(),
        )
        self._session.add(message)
        await self._session.commit()
        return message

    async def set_confidence(self, message_id: uuid.UUID, score: float) -> None:
        """Store the confidence score of an assistant message."""
        message = await self._session.get(Message, message_id)
        if message is None:
            return
        message.confidence_score = score
        await self._session.commit()
