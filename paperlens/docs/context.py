"""Chat context assembly - retrieved chunks or truncated full documents."""

import logging
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from paperlens.config import get_settings
from paperlens.db.models import Document
from paperlens.docs.embedder import Embedder
from paperlens.docs.indexer import count_indexed_chunks
from paperlens.docs.retriever import find_relevant_chunks

logger = logging.getLogger(__name__)

BASE_SYSTEM_PROMPT = (
    "You are a helpful AI assistant that answers questions about documents. "
    "Answer only from the provided document content; if the answer is not there, say so. "
    "Use Markdown formatting in your responses including tables and LaTeX formulas when relevant."
)


@dataclass(frozen=True)
class ChatContext:
    """System prompt for a chat turn plus how its context was obtained."""

    system_prompt: str
    context_text: str
    used_retrieval: bool


async def build_chat_context(
    *,
    query: str,
    documents: list[Document],
    embedder: Embedder,
    session: AsyncSession,
) -> ChatContext:
    """Assemble grounding context for a chat turn.

    Uses top-k retrieval when any of the documents are indexed; otherwise
    falls back to the leading characters of each document's content.
    """
    settings = get_settings()
    if not documents:
        return ChatContext(system_prompt=BASE_SYSTEM_PROMPT, context_text="", used_retrieval=False)

    titles = {doc.document_id: doc.title for doc in documents}
    document_ids = list(titles)

    indexed = await count_indexed_chunks(document_ids=document_ids, session=session)

    if indexed > 0:
        matches = await find_relevant_chunks(
            query=query,
            document_ids=document_ids,
            embedder=embedder,
            session=session,
            top_k=settings.chat_top_k,
        )
        sections = [
            f"[{titles[m.document_id]} - excerpt {m.chunk_index + 1}]\n{m.content}"
            for m in matches
        ]
        context_text = "\n\n---\n\n".join(sections)
        header = "Relevant excerpts from the user's documents (most relevant first):"
        used_retrieval = True
    else:
        logger.info("No indexed chunks for conversation documents, using full-content fallback")
        budget = settings.chat_fallback_chars // len(documents)
        sections = [
            f'Document titled "{doc.title}" (Markdown):\n{doc.content[:budget]}'
            for doc in documents
        ]
        context_text = "\n\n---\n\n".join(sections)
        header = "Document content:"
        used_retrieval = False

    names = ", ".join(f'"{doc.title}"' for doc in documents)
    system_prompt = (
        f"{BASE_SYSTEM_PROMPT}\n\nYou are analyzing: {names}.\n\n{header}\n\n{context_text}"
    )
    return ChatContext(
        system_prompt=system_prompt,
        context_text=context_text,
        used_retrieval=used_retrieval,
    )
