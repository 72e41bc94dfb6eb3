"""Answer confidence scoring - how well the context supports an answer."""

import logging
import re
import uuid

from sqlalchemy.ext.asyncio import AsyncSession

from paperlens.db.engine import get_async_engine
from paperlens.db.repositories import SqlConversationRepository
from paperlens.llm.client import GenerationClient, get_llm_client

logger = logging.getLogger(__name__)

CONFIDENCE_CONTEXT_LIMIT = 20_000
CONFIDENCE_MAX_TOKENS = 16

_INTEGER = re.compile(r"-?\d+")

CONFIDENCE_SYSTEM_PROMPT = """You grade answers for groundedness.

Given document context, a question and an answer, rate from 0 to 100 how fully the answer is supported by the context.
0 means unsupported or contradicted, 100 means every claim is directly backed by the context.
Respond with the integer only."""


def parse_score(raw: str) -> float | None:
    """Take the first integer in the response, clamped to 0-100."""
    match = _INTEGER.search(raw)
    if match is None:
        return None
    return float(max(0, min(100, int(match.group(0)))))


async def score_answer(
    *, context: str, question: str, answer: str, client: GenerationClient
) -> float | None:
    """Rate an answer's support by its context.

    Returns:
        Score in [0, 100], or None when the call fails or has no number
    """
    try:
        completion = await client.complete(
            [
                {"role": "system", "content": CONFIDENCE_SYSTEM_PROMPT},
                {
                    "role": "user",
                    "content": (
                        f"Context:\n{context[:CONFIDENCE_CONTEXT_LIMIT]}\n\n"
                        f"Question:\n{question}\n\nAnswer:\n{answer}"
                    ),
                },
            ],
            max_tokens=CONFIDENCE_MAX_TOKENS,
        )
    except Exception as e:
        logger.warning(f"Confidence scoring call failed: {e}")
        return None

    score = parse_score(completion.text)
    if score is None:
        logger.warning("Confidence response contained no score")
    return score


async def record_confidence(
    *, message_id: uuid.UUID, context: str, question: str, answer: str
) -> None:
    """Background task: score an assistant message and store the result."""
    client = await get_llm_client()
    score = await score_answer(context=context, question=question, answer=answer, client=client)
    if score is None:
        return

    async with AsyncSession(get_async_engine(), expire_on_commit=False) as session:
        try:
            await SqlConversationRepository(session).set_confidence(message_id, score)
        except Exception as e:
            logger.error(f"Storing confidence failed for message {message_id}: {e}")
            return
    logger.info(f"Message {message_id} confidence: {score:.0f}")
