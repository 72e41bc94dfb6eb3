"""Text-layer extraction via format-specific tools.

Contract: every public extractor returns best-effort text or an empty string.
Missing or garbled content is signalled by short output. The one exception is
an external tool timeout, which propagates and fails the upload.
"""

import asyncio
import logging
import re
import zipfile
from pathlib import Path
from xml.etree import ElementTree as ET

import docx
import pandas as pd

from paperlens.config import get_settings
from paperlens.errors import ToolExecutionError
from paperlens.extraction.signatures import is_legacy_office
from paperlens.models.docs import FileType
from paperlens.tools.runner import ToolContext, run_tool

logger = logging.getLogger(__name__)

NO_CONTENT_PLACEHOLDER = "No text content could be extracted from this file."
MIN_PRIMARY_WORD_CHARS = 50

_SLIDE_RE = re.compile(r"ppt/slides/slide(\d+)\.xml$")


async def extract_pdf_text(path: Path, upload_id: str) -> str:
    """Layout-preserving text layer via pdftotext. Pages end with form feeds.

    Raises:
        ToolTimeoutError: pdftotext exceeded its timeout
    """
    settings = get_settings()
    try:
        stdout = await run_tool(
            ToolContext(upload_id=upload_id, tool_name="pdftotext"),
            ["pdftotext", "-layout", str(path), "-"],
            timeout_s=settings.pdftotext_timeout_s,
        )
    except ToolExecutionError as e:
        logger.error(f"pdftotext failed for {path.name}: {e}")
        return ""
    return stdout.decode("utf-8", errors="replace")


def extract_spreadsheet_text(path: Path) -> str:
    """Dump every sheet as delimited text under a heading separator."""
    try:
        sheets = pd.read_excel(path, sheet_name=None, header=None, dtype=str)
    except Exception as e:
        logger.error(f"Spreadsheet read failed for {path.name}: {e}")
        return ""

    parts = []
    for name, frame in sheets.items():
        frame = frame.dropna(how="all").dropna(axis=1, how="all")
        if frame.empty:
            continue
        csv_text = frame.to_csv(index=False, header=False).strip()
        parts.append(f"## Sheet: {name}\n\n{csv_text}")

    return "\n\n".join(parts)


def extract_docx_text(path: Path) -> str:
    """Primary Word extractor: paragraphs, then tables as pipe-delimited rows."""
    try:
        document = docx.Document(str(path))
    except Exception as e:
        logger.warning(f"python-docx could not open {path.name}: {e}")
        return ""

    lines = [p.text for p in document.paragraphs if p.text.strip()]
    for table in document.tables:
        for row in table.rows:
            cells = [cell.text.strip() for cell in row.cells]
            lines.append("| " + " | ".join(cells) + " |")

    return "\n".join(lines)


def _xml_text_runs(payload: bytes) -> list[str]:
    root = ET.fromstring(payload)
    return [
        node.text
        for node in root.iter()
        if node.tag.endswith("}t") and isinstance(node.text, str) and node.text.strip()
    ]


def extract_ooxml_text(path: Path) -> str:
    """Generic office parser: pull text runs out of an OOXML container.

    Handles pptx (slide by slide, in slide order) and docx (main body).
    """
    try:
        with zipfile.ZipFile(path) as archive:
            names = archive.namelist()
            slides = sorted(
                (name for name in names if _SLIDE_RE.search(name)),
                key=lambda name: int(_SLIDE_RE.search(name).group(1)),  # type: ignore[union-attr]
            )
            if slides:
                blocks = []
                for index, slide in enumerate(slides, start=1):
                    texts = _xml_text_runs(archive.read(slide))
                    if texts:
                        blocks.append(f"Slide {index}:\n" + "\n".join(texts))
                return "\n\n".join(blocks)

            if "word/document.xml" in names:
                return "\n".join(_xml_text_runs(archive.read("word/document.xml")))
    except (zipfile.BadZipFile, ET.ParseError, KeyError) as e:
        logger.warning(f"Office parser failed for {path.name}: {e}")

    return ""


async def convert_legacy_to_pdf(path: Path, out_dir: Path, upload_id: str) -> Path:
    """Convert a legacy binary office file to PDF with LibreOffice.

    Raises:
        ToolTimeoutError: conversion exceeded its timeout
        ToolExecutionError: conversion failed or produced no file
    """
    settings = get_settings()
    await run_tool(
        ToolContext(upload_id=upload_id, tool_name="soffice"),
        ["soffice", "--headless", "--convert-to", "pdf", "--outdir", str(out_dir), str(path)],
        timeout_s=settings.soffice_timeout_s,
    )
    converted = out_dir / f"{path.stem}.pdf"
    if not converted.exists():
        raise ToolExecutionError(f"soffice produced no output for {path.name}")
    return converted


async def _extract_legacy(path: Path, scratch: Path, upload_id: str) -> str:
    try:
        converted = await convert_legacy_to_pdf(path, scratch, upload_id)
    except ToolExecutionError as e:
        logger.error(f"Legacy conversion failed for {path.name}: {e}")
        return ""
    return await extract_pdf_text(converted, upload_id)


async def extract_text(
    path: Path,
    *,
    file_type: FileType,
    declared_mime: str,
    scratch: Path,
    upload_id: str,
) -> str:
    """Dispatch to the extractor for this file type.

    Args:
        path: Uploaded file on disk
        file_type: Validated file type tag
        declared_mime: Declared MIME type (distinguishes legacy binaries)
        scratch: Per-upload scratch directory for intermediate files
        upload_id: Upload attempt id for tracing

    Returns:
        Extracted text, possibly empty

    Raises:
        ToolTimeoutError: an external tool exceeded its timeout
    """
    if file_type == "pdf":
        return await extract_pdf_text(path, upload_id)

    if file_type == "xls":
        return await asyncio.to_thread(extract_spreadsheet_text, path)

    if is_legacy_office(declared_mime):
        return await _extract_legacy(path, scratch, upload_id)

    if file_type == "doc":
        text = await asyncio.to_thread(extract_docx_text, path)
        if len(text.strip()) >= MIN_PRIMARY_WORD_CHARS:
            return text
        logger.info(f"Primary Word extractor yielded {len(text.strip())} chars, using fallback")
        return await asyncio.to_thread(extract_ooxml_text, path)

    return await asyncio.to_thread(extract_ooxml_text, path)
