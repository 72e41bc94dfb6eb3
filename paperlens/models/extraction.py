"""Extraction pipeline result models."""

from typing import Literal

from pydantic import BaseModel, Field

from paperlens.models.docs import Complexity, FileType

Route = Literal["vision", "text"]


class ComplexityReport(BaseModel):
    """Outcome of complexity classification with the signals that drove it."""

    complexity: Complexity
    route: Route
    estimated_pages: int = 0
    chars_per_page: float = 0.0
    has_tables: bool = False
    has_math: bool = False
    low_text_density: bool = False
    long_document: bool = False
    academic_paper: bool = False


class PiiDetectionResult(BaseModel):
    """Redacted text and the PII categories found in it."""

    redacted_text: str
    pii_found: bool
    types_detected: list[str] = Field(default_factory=list)


class ExtractionOutcome(BaseModel):
    """Finished, redacted Markdown ready for persistence."""

    content: str
    file_type: FileType
    complexity: Complexity
    page_count: int | None = None
    pii: PiiDetectionResult
