"""Unit tests for Markdown formatting."""

import pytest

from paperlens.extraction.formatter import (
    FORMAT_INPUT_LIMIT,
    SPREADSHEET_SYSTEM_PROMPT,
    basic_cleanup,
    format_markdown,
    format_spreadsheet,
    is_fragmented,
    needs_ai_formatting,
)
from paperlens.llm.client import Completion
from tests.fakes import FailingClient, ScriptedClient, last_user_text

TABLE_TEXT = "Results\n| Model | Score |\n| A | 0.91 |\n"


def test_basic_cleanup_normalizes_layout() -> None:
    """Test line endings, form feeds, trailing spaces and blank-line runs."""
    raw = "Line one   \r\n\r\n\r\n\r\nLine two\fPage two  \n"

    assert basic_cleanup(raw) == "Line one\n\nLine two\n\n---\n\nPage two"


def test_fragmented_text_detection() -> None:
    """Test that many short lines count as fragmented, few do not."""
    assert is_fragmented("\n".join(["word"] * 25)) is True
    assert is_fragmented("\n".join(["word"] * 5)) is False
    assert is_fragmented("\n".join(["a full sentence of ordinary prose text here"] * 25)) is False


def test_ai_gate() -> None:
    """Test that tables or math require AI formatting and prose does not."""
    assert needs_ai_formatting(TABLE_TEXT)
    assert needs_ai_formatting("where x ≈ 2")
    assert not needs_ai_formatting("Plain paragraph of text.")


@pytest.mark.asyncio
async def test_plain_prose_skips_the_model() -> None:
    """Test that prose is cleaned without any generation call."""
    client = ScriptedClient()

    result = await format_markdown("Plain paragraph.  \n\n\n\nSecond one.", client)

    assert result == "Plain paragraph.\n\nSecond one."
    assert client.calls == []


@pytest.mark.asyncio
async def test_table_text_is_formatted_by_model() -> None:
    """Test that table-like text is sent raw to the model and its output used."""
    client = ScriptedClient(
        lambda messages, max_tokens: Completion(text="| Model | Score |\n|---|---|\n| A | 0.91 |")
    )

    result = await format_markdown(TABLE_TEXT, client)

    assert result.startswith("| Model | Score |")
    assert last_user_text(client.calls[0][0]) == TABLE_TEXT


@pytest.mark.asyncio
async def test_model_input_is_capped() -> None:
    """Test that at most FORMAT_INPUT_LIMIT characters reach the model."""
    client = ScriptedClient(lambda messages, max_tokens: Completion(text="ok"))

    await format_markdown(TABLE_TEXT + "y" * (FORMAT_INPUT_LIMIT * 2), client)

    assert len(last_user_text(client.calls[0][0])) == FORMAT_INPUT_LIMIT


@pytest.mark.asyncio
async def test_model_failure_falls_back_to_cleanup() -> None:
    """Test that a failed formatting call degrades to basic cleanup."""
    result = await format_markdown(TABLE_TEXT, FailingClient())

    assert result == basic_cleanup(TABLE_TEXT)


@pytest.mark.asyncio
async def test_empty_model_output_falls_back_to_cleanup() -> None:
    """Test that blank model output is never used as content."""
    client = ScriptedClient(lambda messages, max_tokens: Completion(text="   "))

    assert await format_markdown(TABLE_TEXT, client) == basic_cleanup(TABLE_TEXT)


@pytest.mark.asyncio
async def test_spreadsheets_always_use_tabular_prompt() -> None:
    """Test that sheet dumps go to the model with the spreadsheet prompt."""
    client = ScriptedClient(lambda messages, max_tokens: Completion(text="## Sheet: Q1\n\n| a | b |"))

    result = await format_spreadsheet("## Sheet: Q1\n\na,b", client)

    messages, _ = client.calls[0]
    assert messages[0]["content"] == SPREADSHEET_SYSTEM_PROMPT
    assert result == "## Sheet: Q1\n\n| a | b |"
