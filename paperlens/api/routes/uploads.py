"""Upload progress endpoint - SSE stream per upload attempt."""

import json
from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import APIRouter, Depends, Path
from fastapi.responses import StreamingResponse

from paperlens.api.auth import get_current_context
from paperlens.db.context import RequestContext
from paperlens.extraction.progress import get_progress_hub

router = APIRouter(prefix="/uploads", tags=["uploads"])

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",  # Disable nginx buffering
}


@router.get("/{upload_id}/events")
async def stream_upload_events(
    upload_id: Annotated[str, Path(min_length=1, max_length=128)],
    ctx: Annotated[RequestContext, Depends(get_current_context)],
) -> StreamingResponse:
    """Stream progress events for one upload via SSE.

    Events already published are replayed first. The stream ends after the
    terminal event (complete or error) or when the channel goes idle. Only
    uploads made by the caller are visible; any other id stays empty until
    the idle timeout.

    Args:
        upload_id: Token passed with the upload request
        ctx: Request context

    Returns:
        SSE stream of progress events
    """
    hub = get_progress_hub()

    async def event_generator() -> AsyncGenerator[str, None]:
        """Generate SSE events."""
        async for event in hub.subscribe(upload_id, owner=ctx.user_id):
            yield "event: progress\n"
            yield f"data: {event.model_dump_json()}\n\n"
        yield "event: done\n"
        yield f"data: {json.dumps({'upload_id': upload_id})}\n\n"

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )
