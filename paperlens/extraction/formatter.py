"""Markdown formatting of raw extracted text.

AI-assisted formatting is only used when the raw layout has lost structure
(tables, math, or fragmented lines). Everything else gets mechanical cleanup.
"""

import logging
import re

from paperlens.extraction.complexity import MATH_PATTERN, TABLE_PATTERN
from paperlens.llm.client import GenerationClient

logger = logging.getLogger(__name__)

FORMAT_INPUT_LIMIT = 100_000
FORMAT_MAX_TOKENS = 16384
FRAGMENTED_MAX_AVG_LINE = 30
FRAGMENTED_MIN_LINES = 20

FORMAT_SYSTEM_PROMPT = """You are a document formatting expert. Convert the following extracted document text into well-structured Markdown.

Rules:
- Structure the content with proper headings, lists, and paragraphs
- If you detect table-like data, format it as a proper Markdown table
- If you detect mathematical expressions, format them with LaTeX ($ inline, $$ block)
- Preserve the document's logical structure
- Do NOT add commentary - just output the formatted markdown

The user message is the extracted document text."""

SPREADSHEET_SYSTEM_PROMPT = """You are a spreadsheet formatting expert. Convert the following sheet dumps (comma-separated cells, one sheet per "## Sheet:" heading) into Markdown.

Rules:
- Keep one "## Sheet: <name>" heading per sheet
- Render each sheet's data as a proper Markdown table, using the first non-empty row as the header when it looks like one
- Keep every cell value exactly as given; do not compute or summarize
- Do NOT add commentary - just output the formatted markdown"""


def is_fragmented(text: str) -> bool:
    """Many short lines: the layout was broken into fragments."""
    lines = [line for line in text.split("\n") if line.strip()]
    if len(lines) <= FRAGMENTED_MIN_LINES:
        return False
    avg_line_length = sum(len(line.strip()) for line in lines) / len(lines)
    return avg_line_length < FRAGMENTED_MAX_AVG_LINE


def needs_ai_formatting(text: str) -> bool:
    """Gate for the AI formatting pass."""
    return (
        TABLE_PATTERN.search(text) is not None
        or MATH_PATTERN.search(text) is not None
        or is_fragmented(text)
    )


def basic_cleanup(text: str) -> str:
    """Mechanical Markdown cleanup with no model involved."""
    cleaned = text.replace("\r\n", "\n").replace("\r", "\n")
    cleaned = cleaned.replace("\f", "\n\n---\n\n")
    cleaned = "\n".join(line.rstrip() for line in cleaned.split("\n"))
    cleaned = re.sub(r"\n{3,}", "\n\n", cleaned)
    return cleaned.strip()


async def _format_with_ai(text: str, client: GenerationClient, system_prompt: str) -> str:
    try:
        completion = await client.complete(
            [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": text[:FORMAT_INPUT_LIMIT]},
            ],
            max_tokens=FORMAT_MAX_TOKENS,
        )
    except Exception as e:
        logger.error(f"AI formatting failed, using basic cleanup: {e}")
        return basic_cleanup(text)

    formatted = completion.text.strip()
    if not formatted:
        logger.warning("AI formatting returned empty output, using basic cleanup")
        return basic_cleanup(text)
    return formatted


async def format_markdown(text: str, client: GenerationClient) -> str:
    """Turn raw extracted text into Markdown."""
    if needs_ai_formatting(text):
        logger.info("Raw text has tables, math, or fragmented layout; using AI formatting")
        return await _format_with_ai(text, client, FORMAT_SYSTEM_PROMPT)
    return basic_cleanup(text)


async def format_spreadsheet(text: str, client: GenerationClient) -> str:
    """Spreadsheets always get AI tabular formatting."""
    return await _format_with_ai(text, client, SPREADSHEET_SYSTEM_PROMPT)
