"""
UI message stream wire format.

Every event is one server-sent-events frame ``data: <json>\\n\\n``; the stream
is terminated by ``data: [DONE]``. The browser page and ``ChatController``
both read this format.
"""

import json
import logging
from typing import AsyncIterable, AsyncIterator, Dict, Any

logger = logging.getLogger(__name__)

MEDIA_TYPE = "text/event-stream"
STREAM_HEADERS = {
    "x-vercel-ai-ui-message-stream": "v1",
    "Cache-Control": "no-cache",
    "X-Accel-Buffering": "no",
}
DONE_FRAME = "data: [DONE]\n\n"

EVENT_TYPES = frozenset(
    {
        "start",
        "start-step",
        "text-start",
        "text-delta",
        "text-end",
        "tool-input-available",
        "tool-output-available",
        "tool-output-error",
        "finish-step",
        "finish",
        "error",
    }
)


class StreamProtocolError(Exception):
    """Raised when a stream does not follow the wire format."""


def encode_event(event: Dict[str, Any]) -> str:
    """Serialize one event as an SSE frame."""
    if event.get("type") not in EVENT_TYPES:
        raise StreamProtocolError(f"Unknown stream event type: {event.get('type')!r}")
    return f"data: {json.dumps(event, ensure_ascii=False, default=str)}\n\n"


async def iter_events(lines: AsyncIterable[str]) -> AsyncIterator[Dict[str, Any]]:
    """Decode SSE lines into event dicts, stopping at ``[DONE]``.

    Comment lines, blank lines and non-``data`` fields are skipped.
    """
    async for line in lines:
        line = line.rstrip("\r\n")
        if not line or line.startswith(":"):
            continue
        if not line.startswith("data:"):
            logger.debug(f"Skipping SSE field: {line}")
            continue

        payload = line[5:].strip()
        if payload == "[DONE]":
            return
        try:
            event = json.loads(payload)
        except json.JSONDecodeError as e:
            raise StreamProtocolError(f"Malformed stream frame: {payload[:80]!r}") from e
        if not isinstance(event, dict) or event.get("type") not in EVENT_TYPES:
            raise StreamProtocolError(f"Unknown stream event: {payload[:80]!r}")
        yield event
