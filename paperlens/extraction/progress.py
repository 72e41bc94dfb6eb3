"""Upload progress channel - ordered publish/subscribe keyed by upload attempt.

Each upload gets its own channel, so concurrent uploads from one user never
interleave. Channels are namespaced by the uploading user; a subscriber only
ever sees channels it owns. Channels keep their events for late subscribers
and end on a terminal step or after an idle timeout.
"""

import asyncio
import logging
import time
import uuid
from collections.abc import AsyncIterator
from datetime import datetime, timezone

from paperlens.config import get_settings
from paperlens.models.events import ProgressEvent, ProgressStep

logger = logging.getLogger(__name__)

ChannelKey = tuple[uuid.UUID | None, str]


class _Channel:
    def __init__(self) -> None:
        self.events: list[ProgressEvent] = []
        self.condition = asyncio.Condition()
        self.last_activity = time.monotonic()

    @property
    def finished(self) -> bool:
        return bool(self.events) and self.events[-1].is_terminal


class ProgressHub:
    """In-process registry of per-upload progress channels."""

    def __init__(self, idle_timeout_s: float) -> None:
        self._idle_timeout_s = idle_timeout_s
        self._channels: dict[ChannelKey, _Channel] = {}

    def _channel(self, key: ChannelKey) -> _Channel:
        channel = self._channels.get(key)
        if channel is None:
            channel = _Channel()
            self._channels[key] = channel
        return channel

    def _prune(self, now: float) -> None:
        stale = [
            key
            for key, channel in self._channels.items()
            if now - channel.last_activity > self._idle_timeout_s
        ]
        for key in stale:
            del self._channels[key]

    async def publish(
        self,
        upload_id: str,
        step: ProgressStep,
        detail: str,
        *,
        owner: uuid.UUID | None = None,
    ) -> ProgressEvent:
        """Append an event to the upload's channel and wake subscribers.

        A "received" event on a channel whose last attempt already finished
        starts the channel over, so a reused upload id never replays the
        previous attempt.
        """
        now = time.monotonic()
        self._prune(now)
        key = (owner, upload_id)
        channel = self._channel(key)

        if step == "received" and channel.finished:
            logger.info(f"Upload id {upload_id} reused, resetting its progress channel")
            channel = _Channel()
            self._channels[key] = channel

        async with channel.condition:
            event = ProgressEvent(
                upload_id=upload_id,
                sequence=len(channel.events),
                step=step,
                detail=detail,
                timestamp=datetime.now(timezone.utc),
            )
            channel.events.append(event)
            channel.last_activity = now
            channel.condition.notify_all()

        logger.debug(f"Upload {upload_id} progress: {step} - {detail}")
        return event

    async def subscribe(
        self, upload_id: str, *, owner: uuid.UUID | None = None
    ) -> AsyncIterator[ProgressEvent]:
        """Yield the upload's events in order, replaying any already published.

        Stops after a terminal event, or when nothing arrives for the idle timeout.
        """
        channel = self._channel((owner, upload_id))
        position = 0

        while True:
            async with channel.condition:
                try:
                    await asyncio.wait_for(
                        channel.condition.wait_for(lambda: len(channel.events) > position),
                        timeout=self._idle_timeout_s,
                    )
                except TimeoutError:
                    logger.info(f"Progress stream for upload {upload_id} idle, closing")
                    return
                pending = channel.events[position:]

            for event in pending:
                position += 1
                yield event
                if event.is_terminal:
                    return

    def history(self, upload_id: str, *, owner: uuid.UUID | None = None) -> list[ProgressEvent]:
        """Events published so far for an upload."""
        channel = self._channels.get((owner, upload_id))
        return list(channel.events) if channel else []


_progress_hub: ProgressHub | None = None


def get_progress_hub() -> ProgressHub:
    """Get global progress hub instance."""
    global _progress_hub
    if _progress_hub is None:
        _progress_hub = ProgressHub(idle_timeout_s=get_settings().progress_idle_timeout_s)
    return _progress_hub
