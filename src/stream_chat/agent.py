import json
import logging
import uuid
from contextlib import aclosing
from typing import Any, AsyncIterator, Dict, List, Optional

from openai import AsyncOpenAI

from .config import Settings
from .messages import Message, TextPart, ToolInvocationPart, ToolResultPart
from .tool_call_assembler import ToolCallAssembler
from .tool_registry import ToolRegistry

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = """You are a helpful AI assistant in a chat interface.
Be concise, friendly, and direct. Format answers with markdown: use fenced code
blocks with a language tag for code, and tables or lists where they help."""

GENERIC_ERROR = "Internal server error"


class AgentLoggerAdapter(logging.LoggerAdapter):
    """Logger adapter that injects the request id into structured logs."""

    def __init__(self, logger, request_id):
        self.request_id = request_id
        super().__init__(logger, {})

    def process(self, msg, kwargs):
        if "extra" in kwargs and "structured" in kwargs["extra"]:
            kwargs["extra"]["structured"]["request_id"] = self.request_id
        return msg, kwargs


def log_item(log: logging.LoggerAdapter, item_type: str, extra: dict):
    structured = {"log_type": item_type, **extra}
    log.info(
        f"{item_type.replace('_', ' ').title()} received", extra={"structured": structured}
    )


def to_model_messages(messages: List[Message]) -> List[Dict[str, Any]]:
    """Convert UI messages into chat-completions messages.

    Assistant parts are split into steps: text and invocations form one
    assistant message, the results that follow become ``tool`` messages.
    Invocations without a result (an interrupted stream) and results without
    an invocation are left out, since the API rejects unpaired tool calls.
    """
    converted = []
    for message in messages:
        if message.role != "assistant":
            converted.append({"role": message.role, "content": message.text()})
            continue

        text, invocations, results = [], [], []

        def flush():
            answered = {r.tool_call_id for r in results}
            calls = [inv for inv in invocations if inv.tool_call_id in answered]
            if text or calls:
                entry = {"role": "assistant", "content": "".join(text) or None}
                if calls:
                    entry["tool_calls"] = [
                        {
                            "id": inv.tool_call_id,
                            "type": "function",
                            "function": {
                                "name": inv.tool_name,
                                "arguments": json.dumps(inv.arguments),
                            },
                        }
                        for inv in calls
                    ]
                converted.append(entry)
            requested = {inv.tool_call_id for inv in calls}
            for result in results:
                if result.tool_call_id in requested:
                    converted.append(
                        {
                            "role": "tool",
                            "tool_call_id": result.tool_call_id,
                            "content": json.dumps(result.result, default=str),
                        }
                    )
            text.clear()
            invocations.clear()
            results.clear()

        for part in message.parts:
            if isinstance(part, ToolResultPart):
                results.append(part)
                continue
            if results:
                flush()
            if isinstance(part, TextPart):
                text.append(part.content)
            elif isinstance(part, ToolInvocationPart):
                invocations.append(part)
        flush()
    return converted


class Environment:
    """Environment owns tools and the system prompt assembled from plugins."""

    def __init__(self, base_system_prompt: str, plugins: list, tool_timeout: float = 30.0):
        self.base_system_prompt = base_system_prompt
        self.plugins = plugins

        self.tool_registry = ToolRegistry(timeout=tool_timeout)
        for plugin in plugins:
            if hasattr(plugin, "hook_provide_tools"):
                for name, method in plugin.hook_provide_tools().items():
                    self.tool_registry.register_callable(method, name=name)

        self._instructions = self._assemble_system_prompt()

    def _assemble_system_prompt(self) -> str:
        instructions = self.base_system_prompt
        additions = []
        for plugin in self.plugins:
            if hasattr(plugin, "hook_provide_system_prompt"):
                try:
                    addition = plugin.hook_provide_system_prompt()
                    if addition and addition.strip():
                        additions.append(addition.strip())
                except Exception as e:
                    logger.error(
                        f"Error collecting system prompt from {plugin.__class__.__name__}: {e}"
                    )
        if additions:
            instructions = f"{instructions}\n\n" + "\n\n".join(additions)
        return instructions

    def instructions(self) -> str:
        """Return the assembled system prompt."""
        return self._instructions

    def tool_schemas(self) -> list:
        return self.tool_registry.get_schemas()


class Agent:
    """Runs the step-bounded model/tool loop and emits UI stream events.

    Each step streams one chat completion. When the model asks for tools,
    they are executed and their results fed into the next step. The last
    permitted step is sent with ``tool_choice="none"`` so that the model has
    to answer in text; any tool calls it returns anyway are not executed.
    """

    def __init__(
        self,
        plugins: list,
        settings: Settings,
        system_prompt: str = DEFAULT_SYSTEM_PROMPT,
        client: Optional[AsyncOpenAI] = None,
    ):
        self.settings = settings
        self.model_name = settings.model_name
        self.max_steps = settings.max_steps
        self.plugins = plugins
        self._client = client
        self.env = Environment(system_prompt, plugins, tool_timeout=settings.tool_timeout)

    @property
    def client(self) -> AsyncOpenAI:
        # Created on first use so that a missing key fails inside a request
        if self._client is None:
            self._client = AsyncOpenAI(
                api_key=self.settings.api_key,
                base_url=self.settings.base_url,
                timeout=self.settings.request_timeout,
            )
        return self._client

    async def _create_completion(self, context: list, step: int):
        create_args = {
            "model": self.model_name,
            "messages": list(context),
            "stream": True,
        }
        tools = self.env.tool_schemas()
        if tools:
            create_args["tools"] = tools
            create_args["tool_choice"] = "none" if step >= self.max_steps else "auto"
        return await self.client.chat.completions.create(**create_args)

    async def stream(
        self, messages: List[Message], request_id: Optional[str] = None
    ) -> AsyncIterator[Dict[str, Any]]:
        """Yield UI stream events for one assistant response.

        The first completion is requested before anything is yielded, so
        upstream failures at that point propagate to the caller. Later
        failures are logged and reported as a single ``error`` event.
        """
        log = AgentLoggerAdapter(logger, request_id or uuid.uuid4().hex)
        context = [{"role": "system", "content": self.env.instructions()}]
        context.extend(to_model_messages(messages))
        log_item(log, "chat_request", {"messages": len(messages)})

        completion = await self._create_completion(context, step=1)
        try:
            yield {"type": "start", "messageId": f"msg-{uuid.uuid4().hex}"}
        except GeneratorExit:
            await completion.close()
            raise

        try:
            async with aclosing(self._run_steps(context, completion, log)) as steps:
                async for event in steps:
                    yield event
        except Exception:
            log.exception("Error while streaming response")
            yield {"type": "error", "errorText": GENERIC_ERROR}
            return

        yield {"type": "finish"}

    async def _run_steps(self, context: list, completion, log) -> AsyncIterator[Dict[str, Any]]:
        step = 1
        while True:
            text_id = None
            text_chunks = []
            assembler = ToolCallAssembler()

            # the upstream response stays open until closed, also on abort
            try:
                yield {"type": "start-step"}
                async for chunk in completion:
                    if not chunk.choices:
                        continue
                    delta = chunk.choices[0].delta
                    if delta.content:
                        if text_id is None:
                            text_id = f"text-{uuid.uuid4().hex}"
                            yield {"type": "text-start", "id": text_id}
                        text_chunks.append(delta.content)
                        yield {"type": "text-delta", "id": text_id, "delta": delta.content}
                    for tool_delta in delta.tool_calls or []:
                        assembler.feed(tool_delta)
            finally:
                await completion.close()

            if text_id is not None:
                yield {"type": "text-end", "id": text_id}

            calls = assembler.flush()
            for error in assembler.errors:
                log.warning(f"Dropped malformed tool call: {error}")

            if calls and step >= self.max_steps:
                log.warning(
                    f"Step limit {self.max_steps} reached, ignoring {len(calls)} tool call(s)",
                    extra={
                        "structured": {
                            "log_type": "tool_signal",
                            "signal": "step_limit",
                            "tools": [call.name for call in calls],
                        }
                    },
                )
                calls = []

            if not calls:
                yield {"type": "finish-step"}
                return

            context.append(
                {
                    "role": "assistant",
                    "content": "".join(text_chunks) or None,
                    "tool_calls": [
                        {
                            "id": call.id,
                            "type": "function",
                            "function": {
                                "name": call.name,
                                "arguments": json.dumps(call.arguments),
                            },
                        }
                        for call in calls
                    ],
                }
            )

            for call in calls:
                log_item(
                    log,
                    "tool_call",
                    {"tool_name": call.name, "arguments": call.arguments, "call_id": call.id},
                )
                yield {
                    "type": "tool-input-available",
                    "toolCallId": call.id,
                    "toolName": call.name,
                    "input": call.arguments,
                }

            results = []
            for call in calls:
                result = await self.env.tool_registry.execute_tool_call(call)
                results.append(result)
                if result.ok:
                    yield {
                        "type": "tool-output-available",
                        "toolCallId": call.id,
                        "output": result.output,
                    }
                else:
                    yield {
                        "type": "tool-output-error",
                        "toolCallId": call.id,
                        "errorText": result.error,
                    }
                context.append(
                    {
                        "role": "tool",
                        "tool_call_id": call.id,
                        "content": json.dumps(result.for_model(), default=str),
                    }
                )

            log.info(
                f"Step {step} finished",
                extra={
                    "structured": {
                        "log_type": "tool_result",
                        "step": step,
                        "results": [
                            {"tool_name": r.call.name, "result": r.for_model()} for r in results
                        ],
                    }
                },
            )
            yield {"type": "finish-step"}

            step += 1
            completion = await self._create_completion(context, step)
