"""Upload progress event models."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

ProgressStep = Literal[
    "received",
    "validating",
    "analyzing",
    "extracting",
    "formatting",
    "redacting",
    "saving",
    "complete",
    "error",
]

TERMINAL_STEPS: frozenset[str] = frozenset({"complete", "error"})


class ProgressEvent(BaseModel):
    """Event emitted while an upload moves through the pipeline.

    Events for one upload are ordered by sequence and carry the upload id,
    so concurrent uploads from the same user never share a stream.
    """

    upload_id: str
    sequence: int = Field(..., ge=0, description="Monotonic per upload")
    step: ProgressStep
    detail: str = Field(..., description="Human-readable detail")
    timestamp: datetime

    @property
    def is_terminal(self) -> bool:
        """Whether this event ends the stream."""
        return self.step in TERMINAL_STEPS
