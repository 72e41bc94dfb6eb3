"""PII redaction: deterministic patterns layered with an AI-assisted pass.

The pattern phase is synchronous and guaranteed. The AI phase is best-effort
and degrades to a no-op on any failure. Both run concurrently; the pattern
phase is then reapplied to the AI output so deterministic categories can
never be lost.
"""

import asyncio
import logging
import re
from dataclasses import dataclass

from paperlens.llm.client import GenerationClient
from paperlens.models.extraction import PiiDetectionResult

logger = logging.getLogger(__name__)

AI_INPUT_LIMIT = 30_000
AI_MAX_TOKENS = 16384

SSN_PATTERN = re.compile(r"\b\d{3}[-\s]?\d{2}[-\s]?\d{4}\b")

PHONE_PATTERN = re.compile(r"(?:\+?1[-.\s]?)?(?:\(?\d{3}\)?[-.\s]?)?\d{3}[-.\s]?\d{4}\b")

EMAIL_PATTERN = re.compile(r"\b[A-Za-z0-9._%+\-]+@[A-Za-z0-9.\-]+\.[A-Za-z]{2,}\b")

CREDIT_CARD_PATTERN = re.compile(r"\b(?:\d{4}[-\s]?){3}\d{4}\b")

BANK_ACCOUNT_PATTERN = re.compile(
    r"\b(?:account\s*(?:#|number|no\.?)?[:.\s]*)\d{6,17}\b", re.IGNORECASE
)

# The identifier must contain a digit so the redaction label itself never matches
DRIVERS_LICENSE_PATTERN = re.compile(
    r"\b(?:DL\s*(?:#|no\.?)?[:.\s]*|driver'?s?\s*(?:license|lic)\.?\s*(?:#|number|no\.?)?[:.\s]*)"
    r"(?=[A-Z]*\d)[A-Z0-9]{5,15}\b",
    re.IGNORECASE,
)

DOB_PATTERN = re.compile(
    r"\b(?:(?:DOB|date\s*of\s*birth|born|birthday|birth\s*date)\s*[:.\s]*\s*)"
    r"(?:\d{1,2}[-/]\d{1,2}[-/]\d{2,4}|\w+\s+\d{1,2},?\s+\d{4}|\d{4}[-/]\d{1,2}[-/]\d{1,2})\b",
    re.IGNORECASE,
)

ADDRESS_PATTERN = re.compile(
    r"\b\d{1,6}\s+(?:[A-Za-z0-9]+\s){1,4}"
    r"(?:Street|St|Avenue|Ave|Boulevard|Blvd|Drive|Dr|Court|Ct|Road|Rd|Lane|Ln|Way|Place|Pl"
    r"|Circle|Cir|Terrace|Ter|Trail|Trl|Pike|Highway|Hwy)\.?"
    r"(?:\s*(?:#|Apt\.?|Suite|Ste\.?|Unit|Bldg\.?|Floor|Fl\.?)\s*[A-Za-z0-9\-]+)?"
    r"\s*,?\s*[A-Za-z\s]+,?\s*[A-Z]{2}\s+\d{5}(?:-\d{4})?\b",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class PatternConfig:
    """One deterministic detector."""

    pattern: re.Pattern[str]
    label: str
    type: str


# Order matters: phone runs last so address and DOB claim their digits first
PII_PATTERNS: tuple[PatternConfig, ...] = (
    PatternConfig(SSN_PATTERN, "[SSN REDACTED]", "SSN"),
    PatternConfig(EMAIL_PATTERN, "[EMAIL REDACTED]", "Email"),
    PatternConfig(CREDIT_CARD_PATTERN, "[CREDIT CARD REDACTED]", "Credit Card"),
    PatternConfig(ADDRESS_PATTERN, "[ADDRESS REDACTED]", "Address"),
    PatternConfig(BANK_ACCOUNT_PATTERN, "[BANK ACCOUNT REDACTED]", "Bank Account"),
    PatternConfig(DRIVERS_LICENSE_PATTERN, "[DRIVERS LICENSE REDACTED]", "Drivers License"),
    PatternConfig(DOB_PATTERN, "[DOB REDACTED]", "Date of Birth"),
    PatternConfig(PHONE_PATTERN, "[PHONE REDACTED]", "Phone"),
)

PII_TYPES_SENTINEL = re.compile(r"PII_TYPES_FOUND:\s*(.+)$", re.MULTILINE)

AI_SYSTEM_PROMPT = """You are a PII redaction specialist. Your job is to find and redact any remaining personally identifiable information (PII) in the text that simple regex patterns might miss.

Look for:
- Full personal names when used in context of personal data (e.g., "Patient: John Smith", "Tenant: Jane Doe") - replace with [NAME REDACTED]
- Financial details like specific salary amounts, loan amounts tied to individuals - replace with [FINANCIAL DETAIL REDACTED]
- Personal identification numbers not caught by standard patterns - replace with [ID REDACTED]
- Any other PII that could identify a specific individual

Do NOT redact:
- Author names in academic citations or bibliographic references
- Names of organizations, companies, or institutions
- Public figures mentioned in academic/news context
- Generic dates not tied to personal birth dates
- Property addresses when only city/state/zip (no street address)

Return the text with redactions applied. If no additional PII is found, return the text unchanged.
After the redacted text, on a new line, output exactly: PII_TYPES_FOUND: followed by a comma-separated list of PII types found (or "none" if nothing was redacted)."""


def redact_with_patterns(text: str) -> tuple[str, list[str]]:
    """Apply every deterministic detector in order.

    Returns:
        (redacted text, detected types in detector order)
    """
    result = text
    types_detected: list[str] = []

    for config in PII_PATTERNS:
        if config.pattern.search(result):
            types_detected.append(config.type)
            result = config.pattern.sub(config.label, result)

    return result, types_detected


async def redact_with_ai(text: str, client: GenerationClient) -> tuple[str, list[str]]:
    """Ask the model for residual PII; failure or incomplete output leaves the text unchanged.

    Only the first AI_INPUT_LIMIT characters are sent; the remainder is
    appended back unprocessed.
    """
    try:
        completion = await client.complete(
            [
                {"role": "system", "content": AI_SYSTEM_PROMPT},
                {"role": "user", "content": text[:AI_INPUT_LIMIT]},
            ],
            max_tokens=AI_MAX_TOKENS,
        )
    except Exception as e:
        logger.error(f"AI PII redaction failed, using pattern-only results: {e}")
        return text, []

    # A cut-off or unterminated response may have dropped part of the text
    match = PII_TYPES_SENTINEL.search(completion.text)
    if completion.truncated or match is None:
        logger.warning(
            f"AI PII redaction returned incomplete output "
            f"(finish_reason={completion.finish_reason}), using pattern-only results"
        )
        return text, []

    redacted = completion.text[: match.start()].strip()
    additional_types: list[str] = []
    types_str = match.group(1).strip()
    if types_str.lower() != "none":
        additional_types = [t.strip() for t in types_str.split(",") if t.strip()]

    if len(text) > AI_INPUT_LIMIT:
        redacted = redacted + text[AI_INPUT_LIMIT:]

    return redacted, additional_types


async def detect_and_redact(text: str, client: GenerationClient) -> PiiDetectionResult:
    """Run both phases concurrently and merge.

    The pattern phase is reapplied to the AI-phase text, and the detected
    types are the union of both phases.
    """
    (_, pattern_types), (ai_text, ai_types) = await asyncio.gather(
        asyncio.to_thread(redact_with_patterns, text),
        redact_with_ai(text, client),
    )

    final_text, _ = redact_with_patterns(ai_text)

    all_types = list(dict.fromkeys([*pattern_types, *ai_types]))

    return PiiDetectionResult(
        redacted_text=final_text,
        pii_found=bool(all_types),
        types_detected=all_types,
    )


def detect_and_redact_sync(text: str) -> PiiDetectionResult:
    """Pattern-only redaction for callers that cannot await the AI phase."""
    redacted, types_detected = redact_with_patterns(text)
    return PiiDetectionResult(
        redacted_text=redacted,
        pii_found=bool(types_detected),
        types_detected=types_detected,
    )


def sanitize_metadata_field(value: str | None) -> str | None:
    """Pattern-redact a short metadata field; empty values become None."""
    if not value:
        return None
    redacted, _ = redact_with_patterns(value)
    return redacted
