"""Unit tests for layered PII redaction."""

import pytest

from paperlens.llm.client import Completion
from paperlens.privacy.pii import (
    AI_INPUT_LIMIT,
    detect_and_redact,
    detect_and_redact_sync,
    redact_with_ai,
    redact_with_patterns,
    sanitize_metadata_field,
)
from tests.fakes import FailingClient, ScriptedClient, last_user_text

SAMPLE = (
    "Applicant SSN 123-45-6789, email jane.doe@example.com, "
    "phone 555-123-4567, DL A1234567, DOB: 01/02/1980."
)


def _echo(suffix: str = "PII_TYPES_FOUND: none") -> ScriptedClient:
    """Client that returns the text it was sent, plus a types line."""
    return ScriptedClient(
        lambda messages, max_tokens: Completion(text=f"{last_user_text(messages)}\n{suffix}")
    )


def test_patterns_redact_each_category() -> None:
    """Test that every deterministic category is replaced by its label."""
    redacted, types_found = redact_with_patterns(SAMPLE)

    assert "123-45-6789" not in redacted
    assert "jane.doe@example.com" not in redacted
    assert "555-123-4567" not in redacted
    assert "A1234567" not in redacted
    assert "01/02/1980" not in redacted
    assert "[SSN REDACTED]" in redacted
    assert "[EMAIL REDACTED]" in redacted
    assert "[PHONE REDACTED]" in redacted
    assert "[DRIVERS LICENSE REDACTED]" in redacted
    assert "[DOB REDACTED]" in redacted
    assert types_found == ["SSN", "Email", "Drivers License", "Date of Birth", "Phone"]


@pytest.mark.parametrize(
    "text",
    ["DL A1234567 on file", "DL# B7654321 on file", "Driver's License: C1234567 on file"],
)
def test_drivers_license_with_separator_is_fully_redacted(text: str) -> None:
    """Test that the whole license number is claimed before the phone detector runs."""
    redacted, types_found = redact_with_patterns(text)

    assert redacted == "[DRIVERS LICENSE REDACTED] on file"
    assert types_found == ["Drivers License"]


def test_pattern_redaction_is_idempotent() -> None:
    """Test that redacting already-redacted text changes nothing."""
    once, _ = redact_with_patterns(SAMPLE)
    twice, types_found = redact_with_patterns(once)

    assert twice == once
    assert types_found == []


def test_street_address_is_redacted() -> None:
    """Test that a street address with state and ZIP is detected."""
    redacted, types_found = redact_with_patterns(
        "Ship to 742 Evergreen Terrace, Springfield, IL 62704 by Friday."
    )

    assert "[ADDRESS REDACTED]" in redacted
    assert "Evergreen" not in redacted
    assert "Address" in types_found


def test_clean_text_is_untouched() -> None:
    """Test that text without PII passes through unchanged."""
    text = "The model reached 94% accuracy on the 2019 benchmark."
    assert redact_with_patterns(text) == (text, [])


@pytest.mark.asyncio
async def test_ssn_never_survives_even_if_ai_returns_it() -> None:
    """Test that the pattern pass is reapplied to the AI output."""
    result = await detect_and_redact(SAMPLE, _echo())

    assert "123-45-6789" not in result.redacted_text
    assert "[SSN REDACTED]" in result.redacted_text
    assert result.pii_found is True
    assert "SSN" in result.types_detected


@pytest.mark.asyncio
async def test_ai_types_are_merged_with_pattern_types() -> None:
    """Test that types from both phases are unioned without duplicates."""
    client = ScriptedClient(
        lambda messages, max_tokens: Completion(
            text="Patient: [NAME REDACTED], SSN 123-45-6789\nPII_TYPES_FOUND: Name, SSN"
        )
    )

    result = await detect_and_redact("Patient: John Smith, SSN 123-45-6789", client)

    assert result.redacted_text == "Patient: [NAME REDACTED], SSN [SSN REDACTED]"
    assert result.types_detected == ["SSN", "Name"]


@pytest.mark.asyncio
async def test_ai_failure_falls_back_to_patterns() -> None:
    """Test that a failing AI phase yields exactly the pattern-only result."""
    result = await detect_and_redact(SAMPLE, FailingClient())
    expected = detect_and_redact_sync(SAMPLE)

    assert result == expected


@pytest.mark.asyncio
async def test_ai_phase_only_sees_prefix_and_tail_is_kept() -> None:
    """Test that text past the AI limit is appended back and still pattern-redacted."""
    head = "x" * AI_INPUT_LIMIT
    tail = " Contact jane@example.com for details."
    client = _echo()

    result = await detect_and_redact(head + tail, client)

    sent = last_user_text(client.calls[0][0])
    assert len(sent) == AI_INPUT_LIMIT
    assert result.redacted_text.startswith(head)
    assert result.redacted_text.endswith("Contact [EMAIL REDACTED] for details.")


@pytest.mark.asyncio
async def test_missing_types_line_leaves_text_unchanged() -> None:
    """Test that a response without the types line is discarded."""
    client = ScriptedClient(lambda messages, max_tokens: Completion(text="cleaned text"))

    redacted, types_found = await redact_with_ai("original text", client)

    assert redacted == "original text"
    assert types_found == []


@pytest.mark.asyncio
async def test_truncated_response_keeps_full_document() -> None:
    """Test that output cut off at the token limit never replaces the document."""
    text = "Quarterly results were strong across every region. " * 30
    client = ScriptedClient(
        lambda messages, max_tokens: Completion(
            text="Quarterly results were strong across", finish_reason="length"
        )
    )

    result = await detect_and_redact(text, client)

    assert result.redacted_text == text
    assert result.pii_found is False


@pytest.mark.asyncio
async def test_truncated_response_with_types_line_is_ignored() -> None:
    """Test that a truncated response is discarded even if it carries a types line."""
    client = ScriptedClient(
        lambda messages, max_tokens: Completion(
            text="Patient: [NAME REDACTED]\nPII_TYPES_FOUND: Name", finish_reason="length"
        )
    )

    redacted, types_found = await redact_with_ai("Patient: John Smith, admitted twice", client)

    assert redacted == "Patient: John Smith, admitted twice"
    assert types_found == []


def test_sanitize_metadata_field() -> None:
    """Test that metadata fields are pattern-redacted and empties become None."""
    assert sanitize_metadata_field("") is None
    assert sanitize_metadata_field(None) is None
    assert sanitize_metadata_field("Contact: a@b.org") == "Contact: [EMAIL REDACTED]"
