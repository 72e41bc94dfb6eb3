"""Document chunker - heading-aware, math-aware splitting with overlap."""

import math
import re
from dataclasses import dataclass

CHUNK_SIZE = 4500
CHUNK_OVERLAP = 600
MATH_EXPANSION = 1.5
MATH_HEAVY_MIN_MATCHES = 3
MATH_HEAVY_MIN_RATIO = 0.15

HEADING_SPLIT = re.compile(r"^(?=#{1,3}\s)", re.MULTILINE)
HEADING_LINE = re.compile(r"^#{1,3}\s", re.MULTILINE)
PARAGRAPH_SPLIT = re.compile(r"\n\n+")
MATH_SPANS = re.compile(
    r"\$\$[\s\S]*?\$\$|\$[^$]+\$|\\begin\{(?:equation|align|gather|multline|eqnarray)"
)


@dataclass(frozen=True)
class ChunkSlice:
    """Ordered slice of a document ready for embedding."""

    index: int
    content: str

    @property
    def token_count(self) -> int:
        """Approximate tokens at four characters per token."""
        return math.ceil(len(self.content) / 4)


def contains_open_math_block(text: str) -> bool:
    """An odd number of $$ delimiters means a display-math block is still open."""
    return text.count("$$") % 2 != 0


def is_math_heavy(text: str) -> bool:
    """Dense formula regions get a larger chunk budget."""
    matches = [m.group(0) for m in MATH_SPANS.finditer(text)]
    return (
        len(matches) >= MATH_HEAVY_MIN_MATCHES
        or sum(len(m) for m in matches) > len(text) * MATH_HEAVY_MIN_RATIO
    )


def _accumulate(pieces: list[str], joiner: str) -> list[str]:
    """Greedily pack pieces into overlapping chunks.

    A flush happens only when the budget is exceeded and the buffer has no
    open $$ block. The next buffer starts with the tail of the flushed one.
    """
    chunks: list[str] = []
    buffer = ""

    for piece in pieces:
        buffer_has_open_math = contains_open_math_block(buffer)
        limit = CHUNK_SIZE
        if buffer_has_open_math or is_math_heavy(buffer) or is_math_heavy(piece):
            limit = CHUNK_SIZE * MATH_EXPANSION

        if len(buffer) + len(piece) > limit and buffer and not buffer_has_open_math:
            chunks.append(buffer.strip())
            overlap = buffer[max(0, len(buffer) - CHUNK_OVERLAP) :]
            buffer = overlap + joiner + piece
        else:
            buffer = buffer + joiner + piece if buffer else piece

    if buffer.strip():
        chunks.append(buffer.strip())

    return [c for c in chunks if c]


def chunk_document(content: str) -> list[ChunkSlice]:
    """Split finished Markdown into retrieval chunks.

    Pure function with no I/O or randomness. Sections are cut before level
    1-3 headings; content without such headings is split on paragraphs.

    Args:
        content: Finished (redacted) Markdown

    Returns:
        Chunks with 0-based, strictly increasing indices
    """
    if not content or not content.strip():
        return []

    chunks: list[str] = []
    if HEADING_LINE.search(content):
        sections = [s for s in HEADING_SPLIT.split(content) if s]
        chunks = _accumulate(sections, "")

    if not chunks:
        paragraphs = [p for p in PARAGRAPH_SPLIT.split(content) if p.strip()]
        chunks = _accumulate(paragraphs, "\n\n")

    return [ChunkSlice(index=i, content=text) for i, text in enumerate(chunks)]
