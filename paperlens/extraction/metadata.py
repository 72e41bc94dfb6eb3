"""Bibliographic metadata extraction, run after the document is created.

A DOI found by regex always wins over one proposed by the model. Any model
or parse failure leaves the fields empty apart from the regex DOI.
"""

import json
import logging
import re
from typing import Any

from pydantic import ValidationError

from paperlens.llm.client import GenerationClient
from paperlens.models.docs import DocumentMetadata
from paperlens.privacy.pii import sanitize_metadata_field

logger = logging.getLogger(__name__)

METADATA_INPUT_LIMIT = 15_000
METADATA_MAX_TOKENS = 2048
ABSTRACT_MAX_CHARS = 500

DOI_PREFIXED = re.compile(
    r"(?:doi:\s*|https?://(?:dx\.)?doi\.org/)(10\.\d{4,9}/[^\s\"<>]+)", re.IGNORECASE
)
DOI_BARE = re.compile(r"\b(10\.\d{4,9}/[^\s\"<>]+)")
_JSON_FENCE = re.compile(r"```(?:json)?\s*(\{[\s\S]*?\})\s*```")
_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")

METADATA_SYSTEM_PROMPT = """You extract bibliographic metadata from documents.

Respond with a single JSON object and nothing else, using exactly these keys:
{"doi": string|null, "docTitle": string|null, "authors": [string]|null, "journal": string|null, "publishYear": integer|null, "abstract": string|null, "keywords": [string]|null}

Rules:
- Use null for anything not stated in the document; never guess
- abstract must be at most 500 characters
- keywords: at most 10 short phrases"""


def find_doi(text: str) -> str | None:
    """Scan for a DOI: explicit doi:/doi.org form first, then a bare 10.x/ pattern."""
    for pattern in (DOI_PREFIXED, DOI_BARE):
        match = pattern.search(text)
        if match:
            return match.group(1).rstrip(".,;)]")
    return None


def _parse_json_object(raw: str) -> dict[str, Any] | None:
    fenced = _JSON_FENCE.search(raw)
    candidate = fenced.group(1) if fenced else None
    if candidate is None:
        bare = _JSON_OBJECT.search(raw)
        candidate = bare.group(0) if bare else None
    if candidate is None:
        return None
    try:
        data = json.loads(candidate)
    except json.JSONDecodeError:
        return None
    return data if isinstance(data, dict) else None


def _str_list(value: Any) -> list[str] | None:
    if not isinstance(value, list):
        return None
    items = [sanitize_metadata_field(str(v).strip()) for v in value if str(v).strip()]
    cleaned = [item for item in items if item]
    return cleaned or None


def _year(value: Any) -> int | None:
    try:
        year = int(value)
    except (TypeError, ValueError):
        return None
    return year if 1000 <= year <= 9999 else None


def metadata_from_response(data: dict[str, Any]) -> DocumentMetadata:
    """Map the model's JSON object onto DocumentMetadata.

    Free-text fields are PII-sanitized; the DOI is kept only if it parses as one.
    """
    doi = data.get("doi")
    abstract = data.get("abstract")
    if isinstance(abstract, str):
        abstract = (sanitize_metadata_field(abstract.strip()) or "")[:ABSTRACT_MAX_CHARS] or None
    else:
        abstract = None

    def text_field(key: str) -> str | None:
        value = data.get(key)
        return sanitize_metadata_field(value.strip()) if isinstance(value, str) else None

    return DocumentMetadata(
        doi=find_doi(doi) if isinstance(doi, str) else None,
        doc_title=text_field("docTitle"),
        authors=_str_list(data.get("authors")),
        journal=text_field("journal"),
        publish_year=_year(data.get("publishYear")),
        abstract=abstract,
        keywords=_str_list(data.get("keywords")),
    )


async def extract_metadata(content: str, client: GenerationClient) -> DocumentMetadata:
    """Derive bibliographic metadata from finished content.

    Never raises: failures are logged and yield empty fields.
    """
    regex_doi = find_doi(content)

    try:
        completion = await client.complete(
            [
                {"role": "system", "content": METADATA_SYSTEM_PROMPT},
                {"role": "user", "content": content[:METADATA_INPUT_LIMIT]},
            ],
            max_tokens=METADATA_MAX_TOKENS,
        )
    except Exception as e:
        logger.error(f"Metadata extraction call failed: {e}")
        return DocumentMetadata(doi=regex_doi)

    data = _parse_json_object(completion.text)
    if data is None:
        logger.warning("Metadata response was not a JSON object")
        return DocumentMetadata(doi=regex_doi)

    try:
        metadata = metadata_from_response(data)
    except ValidationError as e:
        logger.warning(f"Metadata response failed validation: {e}")
        return DocumentMetadata(doi=regex_doi)

    if regex_doi:
        metadata.doi = regex_doi
    return metadata
