"""Vision-based extraction: page images to Markdown via a multimodal model.

Each batch of pages is one generation call bounded by a token budget. A
truncated multi-page batch is halved and both halves retried concurrently
with a larger budget; a truncated single page is retried once at the cap and
then accepted as-is. Segments always come back in page order.
"""

import asyncio
import base64
import logging
import re
from pathlib import Path

from paperlens.config import get_settings
from paperlens.errors import ToolExecutionError, ToolTimeoutError
from paperlens.extraction.workspace import cleanup_paths, ensure_within, make_scratch_dir
from paperlens.llm.client import ChatMessages, Completion, GenerationClient
from paperlens.tools.runner import ToolContext, run_tool

logger = logging.getLogger(__name__)

VISION_BATCH_SIZE = 3
MAX_VISION_PAGES = 30
INITIAL_TOKEN_LIMIT = 16384
TOKEN_LIMIT_STEP = 4096
MAX_TOKEN_LIMIT = 32768
PAGE_SEPARATOR = "\n\n---\n\n"

PageImage = tuple[int, Path]  # (1-based page number, image path)

_PAGE_FILE_RE = re.compile(r"-(\d+)\.png$")

VISION_SYSTEM_PROMPT = """You are a document content extraction expert. Convert the provided document page images into well-structured Markdown.

Rules:
- Extract ALL text content faithfully
- Reproduce tables using proper Markdown table syntax (| col1 | col2 |)
- For mathematical formulas, use LaTeX notation wrapped in $ for inline and $$ for block
- For images/charts/diagrams, describe them in detail within an image block like: ![Description of image/chart](image)
- Preserve headings, bullet points, numbered lists
- Keep the document structure and hierarchy intact
- Separate pages with a horizontal rule (---)
- Do NOT add any commentary - just output the extracted markdown"""


async def rasterize_pdf(pdf_path: Path, upload_id: str) -> list[Path]:
    """Render every page to PNG inside a fresh scratch directory.

    Returns:
        Page image paths in page order (the directory is their parent)

    Raises:
        PathTraversalError: pdf_path is outside the upload root
        ToolTimeoutError / ToolExecutionError: pdftoppm failed
    """
    settings = get_settings()
    resolved = ensure_within(settings.upload_dir, pdf_path)
    output_dir = make_scratch_dir(settings.upload_dir, "pages")

    try:
        await run_tool(
            ToolContext(upload_id=upload_id, tool_name="pdftoppm"),
            ["pdftoppm", "-png", "-r", "150", str(resolved), str(output_dir / "page")],
            timeout_s=settings.pdftoppm_timeout_s,
        )
    except (ToolTimeoutError, ToolExecutionError):
        cleanup_paths([output_dir])
        raise

    images = [p for p in output_dir.iterdir() if _PAGE_FILE_RE.search(p.name)]
    images.sort(key=lambda p: int(_PAGE_FILE_RE.search(p.name).group(1)))  # type: ignore[union-attr]
    if not images:
        cleanup_paths([output_dir])
    return images


def _image_part(path: Path) -> dict:
    encoded = base64.b64encode(path.read_bytes()).decode("ascii")
    return {
        "type": "image_url",
        "image_url": {"url": f"data:image/png;base64,{encoded}", "detail": "auto"},
    }


def build_batch_messages(pages: list[PageImage]) -> ChatMessages:
    """Messages for one batch: instruction text followed by page images."""
    page_numbers = ", ".join(str(number) for number, _ in pages)
    return [
        {"role": "system", "content": VISION_SYSTEM_PROMPT},
        {
            "role": "user",
            "content": [
                {
                    "type": "text",
                    "text": (
                        f"Extract the content from these document pages (pages {page_numbers}) "
                        "into Markdown format."
                    ),
                },
                *(_image_part(path) for _, path in pages),
            ],
        },
    ]


async def extract_batch(
    client: GenerationClient,
    pages: list[PageImage],
    *,
    max_tokens: int,
) -> Completion:
    """Single multimodal call for a batch of pages."""
    return await client.complete(
        build_batch_messages(pages),
        max_tokens=max_tokens,
        model=get_settings().vision_model,
    )


async def extract_pages(
    client: GenerationClient,
    pages: list[PageImage],
    max_tokens: int = INITIAL_TOKEN_LIMIT,
) -> list[str]:
    """Extract a batch, splitting on truncation.

    Returns:
        Markdown segments in page order
    """
    completion = await extract_batch(client, pages, max_tokens=max_tokens)
    if not completion.truncated:
        return [completion.text]

    if len(pages) > 1:
        mid = len(pages) // 2
        next_limit = min(max_tokens + TOKEN_LIMIT_STEP, MAX_TOKEN_LIMIT)
        logger.info(
            f"Batch of {len(pages)} pages truncated at {max_tokens} tokens, "
            f"splitting at page {pages[mid][0]} with limit {next_limit}"
        )
        left, right = await asyncio.gather(
            extract_pages(client, pages[:mid], next_limit),
            extract_pages(client, pages[mid:], next_limit),
        )
        return left + right

    if max_tokens < MAX_TOKEN_LIMIT:
        logger.info(f"Page {pages[0][0]} truncated, retrying once at {MAX_TOKEN_LIMIT} tokens")
        completion = await extract_batch(client, pages, max_tokens=MAX_TOKEN_LIMIT)

    if completion.truncated:
        logger.warning(f"Page {pages[0][0]} still truncated, keeping partial output")
    return [completion.text]


def plan_batches(image_paths: list[Path]) -> list[list[PageImage]]:
    """Number pages, drop anything past MAX_VISION_PAGES, and group into batches."""
    pages = list(enumerate(image_paths[:MAX_VISION_PAGES], start=1))
    if len(pages) <= VISION_BATCH_SIZE:
        return [pages] if pages else []
    return [pages[i : i + VISION_BATCH_SIZE] for i in range(0, len(pages), VISION_BATCH_SIZE)]


async def extract_markdown_from_images(
    client: GenerationClient,
    image_paths: list[Path],
) -> str:
    """Convert page images to one Markdown document.

    Batches run concurrently; output is joined in page order with a
    horizontal-rule separator.
    """
    if len(image_paths) > MAX_VISION_PAGES:
        logger.info(f"Dropping {len(image_paths) - MAX_VISION_PAGES} pages past the vision limit")

    batches = plan_batches(image_paths)
    results = await asyncio.gather(*(extract_pages(client, batch) for batch in batches))

    segments = [segment.strip() for batch in results for segment in batch]
    return PAGE_SEPARATOR.join(segment for segment in segments if segment)
