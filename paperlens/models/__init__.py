"""Models package - re-exports for convenience."""

from paperlens.models.chat import ChatMessage, ConversationDetail, ConversationSummary
from paperlens.models.docs import ChunkMatch, DocumentMetadata, UserDocument
from paperlens.models.events import ProgressEvent
from paperlens.models.extraction import ComplexityReport, ExtractionOutcome, PiiDetectionResult

__all__ = [
    # Documents
    "UserDocument",
    "DocumentMetadata",
    "ChunkMatch",
    # Chat
    "ChatMessage",
    "ConversationSummary",
    "ConversationDetail",
    # Pipeline
    "ComplexityReport",
    "ExtractionOutcome",
    "PiiDetectionResult",
    "ProgressEvent",
]
