"""Upload pipeline: validate, extract, format, redact, persist.

Progress for each upload attempt is published on its own channel. Metadata
extraction and chunk indexing run as background tasks after the document
exists, each with a fresh session.
"""

import asyncio
import logging
import time
import uuid
from collections.abc import Awaitable, Callable, Coroutine, Iterator
from contextlib import contextmanager
from functools import partial
from pathlib import Path
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from paperlens.config import get_settings
from paperlens.db.context import RequestContext
from paperlens.db.engine import get_async_engine
from paperlens.db.models import Document
from paperlens.db.repositories import SqlDocumentRepository
from paperlens.docs.embedder import get_embedder
from paperlens.docs.indexer import index_document_chunks
from paperlens.errors import PathTraversalError, ToolTimeoutError, UnsupportedFileError
from paperlens.extraction.complexity import classify_pdf_text, structured_report
from paperlens.extraction.formatter import format_markdown, format_spreadsheet
from paperlens.extraction.metadata import extract_metadata
from paperlens.extraction.progress import get_progress_hub
from paperlens.extraction.signatures import (
    SIGNATURE_HEAD_BYTES,
    extension_for,
    validate_upload,
)
from paperlens.extraction.text import NO_CONTENT_PLACEHOLDER, extract_pdf_text, extract_text
from paperlens.extraction.vision import extract_markdown_from_images, rasterize_pdf
from paperlens.extraction.workspace import cleanup_paths, ensure_within, make_scratch_dir
from paperlens.llm.client import GenerationClient, get_llm_client
from paperlens.models.docs import FileType
from paperlens.models.events import ProgressEvent, ProgressStep
from paperlens.models.extraction import ComplexityReport, ExtractionOutcome
from paperlens.privacy.pii import detect_and_redact
from paperlens.utils.logging import step_logger
from paperlens.utils.metrics import pipeline_metrics

logger = logging.getLogger(__name__)

_background_tasks: set[asyncio.Task[Any]] = set()

PublishProgress = Callable[[ProgressStep, str], Awaitable[ProgressEvent]]


@contextmanager
def _timed_step(upload_id: str, step: str) -> Iterator[None]:
    """Record latency and outcome of one pipeline step."""
    start_time = time.monotonic()
    try:
        yield
    except Exception as e:
        latency_ms = (time.monotonic() - start_time) * 1000
        pipeline_metrics.record_latency(step, "error", latency_ms)
        step_logger.log_step(upload_id, step, "error", latency_ms, error_reason=type(e).__name__)
        raise
    latency_ms = (time.monotonic() - start_time) * 1000
    pipeline_metrics.record_latency(step, "success", latency_ms)
    step_logger.log_step(upload_id, step, "success", latency_ms)


async def _extract_pdf(
    path: Path,
    *,
    upload_id: str,
    client: GenerationClient,
    progress: PublishProgress,
    cleanup: list[Path],
) -> tuple[str, ComplexityReport, int | None]:
    await progress("analyzing", "Analyzing document structure")
    raw_text = await extract_pdf_text(path, upload_id)
    report = classify_pdf_text(raw_text)
    page_count = raw_text.count("\f") or None

    logger.info(
        f"PDF analysis: {report.estimated_pages} pages, "
        f"{report.chars_per_page:.0f} chars/page, complexity={report.complexity} "
        f"(tables={report.has_tables}, math={report.has_math}, "
        f"lowDensity={report.low_text_density}, long={report.long_document}, "
        f"academic={report.academic_paper})"
    )

    if report.route == "vision":
        await progress("extracting", "Using vision extraction")
        try:
            with _timed_step(upload_id, "vision"):
                images = await rasterize_pdf(path, upload_id)
                if images:
                    cleanup.append(images[0].parent)
                    content = await extract_markdown_from_images(client, images)
                    if content.strip():
                        return content, report, len(images)
        except (PathTraversalError, ToolTimeoutError):
            raise
        except Exception as e:
            logger.error(f"Vision extraction failed, falling back to text path: {e}")

    await progress("formatting", "Formatting extracted text")
    if not raw_text.strip():
        return NO_CONTENT_PLACEHOLDER, report, page_count
    with _timed_step(upload_id, "format"):
        return await format_markdown(raw_text, client), report, page_count


async def _extract_office(
    path: Path,
    *,
    file_type: FileType,
    declared_mime: str,
    scratch: Path,
    upload_id: str,
    client: GenerationClient,
    progress: PublishProgress,
) -> tuple[str, ComplexityReport]:
    report = (
        structured_report()
        if file_type == "xls"
        else ComplexityReport(complexity="simple", route="text")
    )

    await progress("extracting", "Extracting text")
    with _timed_step(upload_id, "extract"):
        raw_text = await extract_text(
            path,
            file_type=file_type,
            declared_mime=declared_mime,
            scratch=scratch,
            upload_id=upload_id,
        )

    if not raw_text.strip():
        return NO_CONTENT_PLACEHOLDER, report

    await progress("formatting", "Formatting extracted text")
    with _timed_step(upload_id, "format"):
        if file_type == "xls":
            return await format_spreadsheet(raw_text, client), report
        return await format_markdown(raw_text, client), report


async def process_upload(
    *,
    data: bytes,
    filename: str,
    declared_mime: str,
    ctx: RequestContext,
    upload_id: str,
    session: AsyncSession,
    client: GenerationClient,
) -> Document:
    """Turn an uploaded file into a persisted, redacted Document.

    Args:
        data: Raw file bytes
        filename: Original filename (becomes the document title)
        declared_mime: MIME type declared by the client
        ctx: Request context of the uploading user
        upload_id: Opaque per-upload token keying the uploader's progress channel
        session: Async database session
        client: Generation client for vision, formatting and PII phases

    Returns:
        The created Document row

    Raises:
        UnsupportedFileError: Type, signature or size rejected; nothing is written
        PathTraversalError: An internal path escaped the upload root
        ToolTimeoutError: An external tool timed out
    """
    settings = get_settings()
    progress = partial(get_progress_hub().publish, upload_id, owner=ctx.user_id)
    cleanup: list[Path] = []

    await progress("received", f"Received {filename}")

    try:
        await progress("validating", "Validating file type")
        if len(data) > settings.max_upload_bytes:
            raise UnsupportedFileError(
                f"File exceeds the {settings.max_upload_bytes} byte upload limit"
            )
        file_type = validate_upload(declared_mime, data[:SIGNATURE_HEAD_BYTES])

        upload_root = Path(settings.upload_dir)
        upload_root.mkdir(parents=True, exist_ok=True)
        stored_path = ensure_within(
            upload_root, upload_root / f"{uuid.uuid4().hex}{extension_for(declared_mime)}"
        )
        cleanup.append(stored_path)
        await asyncio.to_thread(stored_path.write_bytes, data)

        scratch = make_scratch_dir(upload_root, "scratch")
        cleanup.append(scratch)

        page_count: int | None = None
        if file_type == "pdf":
            content, report, page_count = await _extract_pdf(
                stored_path,
                upload_id=upload_id,
                client=client,
                progress=progress,
                cleanup=cleanup,
            )
        else:
            content, report = await _extract_office(
                stored_path,
                file_type=file_type,
                declared_mime=declared_mime,
                scratch=scratch,
                upload_id=upload_id,
                client=client,
                progress=progress,
            )

        await progress("redacting", "Scanning for personal information")
        with _timed_step(upload_id, "redact"):
            pii = await detect_and_redact(content, client)
        if pii.pii_found:
            logger.info(f"Upload {upload_id}: redacted PII types {pii.types_detected}")

        await progress("saving", "Saving document")
        outcome = ExtractionOutcome(
            content=pii.redacted_text,
            file_type=file_type,
            complexity=report.complexity,
            page_count=page_count,
            pii=pii,
        )
        with _timed_step(upload_id, "save"):
            doc = await SqlDocumentRepository(session).create_document(
                ctx, original_filename=filename, outcome=outcome
            )

        pipeline_metrics.inc_ingested(report.complexity)
        await progress("complete", f"Document {doc.document_id} ready")
        return doc

    except UnsupportedFileError as e:
        await progress("error", str(e))
        raise
    except Exception as e:
        logger.error(f"Upload {upload_id} failed: {e}")
        await progress("error", "Failed to process file")
        raise
    finally:
        cleanup_paths(cleanup)


def schedule_background(coro: Coroutine[Any, Any, None]) -> asyncio.Task[None]:
    """Run a coroutine after the response, holding a reference until it finishes."""
    task = asyncio.create_task(coro)
    _background_tasks.add(task)
    task.add_done_callback(_finish_background)
    return task


def _finish_background(task: asyncio.Task[Any]) -> None:
    _background_tasks.discard(task)
    if not task.cancelled() and task.exception() is not None:
        logger.error(f"Background task {task.get_name()} failed: {task.exception()}")


async def index_document_background(document_id: uuid.UUID) -> None:
    """Background task: chunk and embed a freshly created document."""
    async with AsyncSession(get_async_engine(), expire_on_commit=False) as session:
        try:
            doc = await session.get(Document, document_id)
            if doc is None:
                return
            await index_document_chunks(
                document_id=document_id,
                content=doc.content,
                embedder=get_embedder(),
                session=session,
            )
        except Exception as e:
            logger.error(f"Background indexing failed for document {document_id}: {e}")


async def extract_metadata_background(document_id: uuid.UUID) -> None:
    """Background task: derive and store bibliographic metadata."""
    async with AsyncSession(get_async_engine(), expire_on_commit=False) as session:
        try:
            doc = await session.get(Document, document_id)
            if doc is None:
                return
            client = await get_llm_client()
            metadata = await extract_metadata(doc.content, client)
            await SqlDocumentRepository(session).apply_document_metadata(document_id, metadata)
            logger.info(f"Stored metadata for document {document_id} (doi={metadata.doi})")
        except Exception as e:
            logger.error(f"Background metadata extraction failed for document {document_id}: {e}")


def schedule_post_ingest(document_id: uuid.UUID) -> None:
    """Start metadata extraction and indexing for a new document."""
    schedule_background(extract_metadata_background(document_id))
    schedule_background(index_document_background(document_id))
