"""Document complexity classifier - decides between vision and text extraction."""

import re

from paperlens.models.extraction import ComplexityReport

TABLE_PATTERN = re.compile(r"(\|.*\|)|(\+[-+]+\+)|[┌├└│─]")
MATH_PATTERN = re.compile(r"[∑∫∂√∞≠≈±×÷∈∀∃∇∆λσμπ]|\\frac|\\sum|\\int|\\sqrt")
ACADEMIC_PATTERN = re.compile(r"\babstract\b|\breferences\b|\bdoi\b|\bet al\.", re.IGNORECASE)

LOW_DENSITY_CHARS_PER_PAGE = 200
LONG_DOCUMENT_PAGES = 10
ACADEMIC_MIN_PAGES = 5


def classify_pdf_text(raw_text: str) -> ComplexityReport:
    """Classify a PDF from its text layer.

    Pure function. Pages are estimated from form-feed markers. A document is
    complex when any signal holds: tables, math, low text density, long
    document, or academic paper.

    Args:
        raw_text: Layout-preserving text-layer output (may be empty)

    Returns:
        ComplexityReport with tag, route and every signal
    """
    estimated_pages = len(raw_text.split("\f"))
    chars_per_page = len(raw_text.strip()) / max(estimated_pages, 1)

    has_tables = TABLE_PATTERN.search(raw_text) is not None
    has_math = MATH_PATTERN.search(raw_text) is not None
    low_text_density = chars_per_page < LOW_DENSITY_CHARS_PER_PAGE
    long_document = estimated_pages >= LONG_DOCUMENT_PAGES
    academic_paper = (
        estimated_pages >= ACADEMIC_MIN_PAGES and ACADEMIC_PATTERN.search(raw_text) is not None
    )

    is_complex = has_tables or has_math or low_text_density or long_document or academic_paper

    return ComplexityReport(
        complexity="complex" if is_complex else "simple",
        route="vision" if is_complex else "text",
        estimated_pages=estimated_pages,
        chars_per_page=chars_per_page,
        has_tables=has_tables,
        has_math=has_math,
        low_text_density=low_text_density,
        long_document=long_document,
        academic_paper=academic_paper,
    )


def structured_report() -> ComplexityReport:
    """Spreadsheets bypass classification and always take the text route."""
    return ComplexityReport(complexity="structured", route="text")
