"""Integration tests for chat context assembly."""

import uuid

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from paperlens.config import get_settings
from paperlens.db.context import RequestContext
from paperlens.db.repositories import SqlDocumentRepository
from paperlens.docs.context import BASE_SYSTEM_PROMPT, build_chat_context
from paperlens.docs.indexer import index_document_chunks
from tests.fakes import HashingEmbedder, make_outcome


async def _documents(session: AsyncSession, contents: list[str]):  # type: ignore[no-untyped-def]
    repo = SqlDocumentRepository(session)
    ctx = RequestContext(user_id=uuid.uuid4())
    return [
        await repo.create_document(ctx, original_filename=f"doc{i}.pdf", outcome=make_outcome(c))
        for i, c in enumerate(contents)
    ]


@pytest.mark.asyncio
async def test_unindexed_documents_use_leading_content(
    session: AsyncSession, embedder: HashingEmbedder
) -> None:
    """Test the fallback to truncated full content when nothing is indexed."""
    budget = get_settings().chat_fallback_chars
    docs = await _documents(session, ["A" * (budget + 500)])

    context = await build_chat_context(
        query="What is this?", documents=docs, embedder=embedder, session=session
    )

    assert context.used_retrieval is False
    assert context.context_text.count("A") == budget
    assert context.system_prompt.startswith(BASE_SYSTEM_PROMPT)
    assert '"doc0.pdf"' in context.system_prompt
    assert embedder.calls == []


@pytest.mark.asyncio
async def test_fallback_budget_is_shared(
    session: AsyncSession, embedder: HashingEmbedder
) -> None:
    """Test that several documents split the fallback budget evenly."""
    budget = get_settings().chat_fallback_chars
    docs = await _documents(session, ["B" * budget, "C" * budget])

    context = await build_chat_context(
        query="Compare", documents=docs, embedder=embedder, session=session
    )

    assert context.context_text.count("B") == budget // 2
    assert context.context_text.count("C") == budget // 2


@pytest.mark.asyncio
async def test_indexed_documents_use_retrieval(
    session: AsyncSession, embedder: HashingEmbedder
) -> None:
    """Test that retrieved excerpts are labelled with their document title."""
    content = "\n\n".join(f"Glaciers carve valleys over millennia. Fact {i}." for i in range(40))
    docs = await _documents(session, [content])
    await index_document_chunks(
        document_id=docs[0].document_id, content=content, embedder=embedder, session=session
    )

    context = await build_chat_context(
        query="How do glaciers shape valleys?", documents=docs, embedder=embedder, session=session
    )

    assert context.used_retrieval is True
    assert "[doc0.pdf - excerpt 1]" in context.context_text
    assert "Glaciers carve valleys" in context.system_prompt


@pytest.mark.asyncio
async def test_no_documents_gives_base_prompt(
    session: AsyncSession, embedder: HashingEmbedder
) -> None:
    """Test context for a conversation whose documents are all gone."""
    context = await build_chat_context(
        query="Hello", documents=[], embedder=embedder, session=session
    )

    assert context.system_prompt == BASE_SYSTEM_PROMPT
    assert context.context_text == ""
