"""
Conversation state and streaming transport.

``ChatController`` owns one conversation: the ordered message list, the
generation status, and at most one in-flight request task. Stream events are
applied to the last assistant message in arrival order.
"""

import asyncio
import logging
import uuid
from typing import Callable, Dict, List, Optional

import httpx

from .messages import (
    GenerationStatus,
    Message,
    TextPart,
    ToolInvocationPart,
    ToolResultPart,
)
from .stream_protocol import StreamProtocolError, iter_events

logger = logging.getLogger(__name__)


class ChatBusyError(RuntimeError):
    """Raised when an operation needs an idle conversation."""


class ChatStreamError(Exception):
    """The server reported an error inside the stream."""


def _new_id() -> str:
    return uuid.uuid4().hex


class ChatController:
    """Client-side conversation state.

    Parameters
    ----------
    api_url : str
        URL of the ``/api/chat`` endpoint.
    http_client : httpx.AsyncClient, optional
        Client used for requests; one is created (and owned) when omitted.
    messages : list of Message, optional
        Initial history.
    multi_turn : bool
        When False only system messages and the newest user turn are sent.
    on_change : callable, optional
        Called with the controller after every state change.
    """

    def __init__(
        self,
        api_url: str = "http://localhost:8000/api/chat",
        http_client: Optional[httpx.AsyncClient] = None,
        messages: Optional[List[Message]] = None,
        multi_turn: bool = True,
        on_change: Optional[Callable[["ChatController"], None]] = None,
    ):
        self.api_url = api_url
        self._owns_client = http_client is None
        self.http_client = http_client or httpx.AsyncClient(timeout=None)
        self.messages: List[Message] = list(messages or [])
        self.multi_turn = multi_turn
        self.on_change = on_change
        self.status = GenerationStatus.IDLE
        self.error: Optional[Exception] = None
        self._task: Optional[asyncio.Task] = None

        # Per-run stream state
        self._assistant: Optional[Message] = None
        self._assistant_id: Optional[str] = None
        self._open_text: Dict[str, TextPart] = {}

    @property
    def busy(self) -> bool:
        return self._task is not None and not self._task.done()

    def _changed(self):
        if self.on_change is not None:
            try:
                self.on_change(self)
            except Exception as e:
                logger.error(f"Error in on_change callback: {e}")

    def _set_status(self, status: GenerationStatus):
        self.status = status
        self._changed()

    def _ensure_idle(self):
        if self.busy:
            raise ChatBusyError("A response is still being generated")

    async def send_message(self, text: str) -> Optional[Message]:
        """Append a user message and start streaming the reply.

        Whitespace-only text is ignored and returns None.
        """
        if not text or not text.strip():
            return None
        self._ensure_idle()

        message = Message(id=_new_id(), role="user", parts=[TextPart(content=text)])
        self.messages.append(message)
        self._start()
        return message

    async def regenerate(self) -> None:
        """Drop everything after the last user message and request a new reply."""
        self._ensure_idle()
        last_user = None
        for index in range(len(self.messages) - 1, -1, -1):
            if self.messages[index].role == "user":
                last_user = index
                break
        if last_user is None:
            return
        del self.messages[last_user + 1 :]
        self._start()

    async def stop(self) -> None:
        """Abort the in-flight request, keeping whatever has streamed in."""
        task = self._task
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        # a task cancelled before it ran never reset the status itself
        if self.status in (GenerationStatus.SUBMITTED, GenerationStatus.STREAMING):
            self._set_status(GenerationStatus.IDLE)

    def set_messages(self, messages: List[Message], keep_system: bool = False) -> None:
        """Replace the history; with ``keep_system`` the current system
        messages are kept in front of ``messages``."""
        self._ensure_idle()
        prefix = [m for m in self.messages if m.role == "system"] if keep_system else []
        self.messages = prefix + list(messages)
        self.error = None
        self.status = GenerationStatus.IDLE
        self._changed()

    async def wait(self) -> None:
        """Wait for the in-flight request, if any, to finish."""
        if self._task is not None:
            try:
                await self._task
            except asyncio.CancelledError:
                pass

    async def aclose(self) -> None:
        await self.stop()
        if self._owns_client:
            await self.http_client.aclose()

    def _payload(self) -> dict:
        messages = self.messages
        if not self.multi_turn:
            system = [m for m in messages if m.role == "system"]
            latest = [m for m in messages if m.role == "user"][-1:]
            messages = system + latest
        return {"messages": [m.to_wire() for m in messages]}

    def _start(self):
        self.error = None
        self._assistant = None
        self._assistant_id = None
        self._open_text = {}
        payload = self._payload()
        self._set_status(GenerationStatus.SUBMITTED)
        self._task = asyncio.create_task(self._run(payload))

    async def _run(self, payload: dict):
        try:
            await self._request(payload)
        except asyncio.CancelledError:
            logger.info("Generation stopped by user")
            self._set_status(GenerationStatus.IDLE)
            raise
        except Exception as e:
            logger.error(f"Chat request failed: {e}")
            self.error = e
            self._set_status(GenerationStatus.ERROR)
        else:
            self._set_status(GenerationStatus.IDLE)

    async def _request(self, payload: dict):
        async with self.http_client.stream("POST", self.api_url, json=payload) as response:
            if response.status_code >= 400:
                await response.aread()
                raise httpx.HTTPStatusError(
                    f"HTTP {response.status_code}: {response.text[:200]}",
                    request=response.request,
                    response=response,
                )
            async for event in iter_events(response.aiter_lines()):
                if self.status == GenerationStatus.SUBMITTED:
                    self.status = GenerationStatus.STREAMING
                self._apply_event(event)
                self._changed()

    def _add_part(self, part):
        if self._assistant is None:
            self._assistant = Message(
                id=self._assistant_id or _new_id(), role="assistant", parts=[part]
            )
            self.messages.append(self._assistant)
        else:
            self._assistant.parts.append(part)

    def _apply_event(self, event: dict):
        event_type = event["type"]

        if event_type == "start":
            self._assistant_id = event.get("messageId") or _new_id()
        elif event_type == "text-start":
            part = TextPart(content="")
            self._open_text[event["id"]] = part
            self._add_part(part)
        elif event_type == "text-delta":
            part = self._open_text.get(event["id"])
            if part is None:
                raise StreamProtocolError(f"text-delta for unknown text id {event['id']}")
            part.content += event["delta"]
        elif event_type == "text-end":
            self._open_text.pop(event["id"], None)
        elif event_type == "tool-input-available":
            self._add_part(
                ToolInvocationPart(
                    tool_call_id=event["toolCallId"],
                    tool_name=event["toolName"],
                    arguments=event.get("input") or {},
                )
            )
        elif event_type in ("tool-output-available", "tool-output-error"):
            invocation = self._find_invocation(event["toolCallId"])
            if invocation is None:
                raise StreamProtocolError(
                    f"Tool result without invocation: {event['toolCallId']}"
                )
            if event_type == "tool-output-available":
                result = event.get("output")
            else:
                result = {"error": event.get("errorText", "")}
            self._add_part(
                ToolResultPart(
                    tool_call_id=invocation.tool_call_id,
                    tool_name=invocation.tool_name,
                    result=result,
                )
            )
        elif event_type == "error":
            raise ChatStreamError(event.get("errorText") or "Stream error")
        # start-step, finish-step and finish carry no message content

    def _find_invocation(self, tool_call_id: str) -> Optional[ToolInvocationPart]:
        if self._assistant is None:
            return None
        for part in self._assistant.parts:
            if isinstance(part, ToolInvocationPart) and part.tool_call_id == tool_call_id:
                return part
        return None
