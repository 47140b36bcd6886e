"""
Assembles streamed chat-completion tool-call deltas into complete calls.

Fragments are accumulated per ``index``. At the end of a step ``flush()``
parses each argument string; calls whose arguments are not valid JSON objects
are dropped and recorded in ``errors``.
"""

import json

from .tool_registry import ToolCall


class ToolCallAssembler:
    """Buffers tool-call deltas and emits finished ``ToolCall`` objects."""

    def __init__(self):
        self._buf: dict[int, dict] = {}
        self.errors: list[str] = []

    def feed(self, delta) -> None:
        """Feed one ``choices[0].delta.tool_calls`` entry."""
        buf = self._buf.setdefault(delta.index, {"id": None, "name": "", "args": ""})

        if delta.id and not buf["id"]:
            buf["id"] = delta.id

        function = getattr(delta, "function", None)
        if function is not None:
            if function.name:
                buf["name"] += function.name
            if function.arguments:
                buf["args"] += function.arguments

    def flush(self) -> list[ToolCall]:
        """Finalize all buffered calls in index order and reset the buffer."""
        calls: list[ToolCall] = []
        for idx in sorted(self._buf):
            buf = self._buf[idx]
            raw_args = buf["args"] or "{}"
            try:
                args = json.loads(raw_args)
            except (json.JSONDecodeError, ValueError) as exc:
                self.errors.append(f"tool_call_json_parse_failed idx={idx} err={exc}")
                continue
            if not isinstance(args, dict):
                self.errors.append(f"tool_call_args_not_object idx={idx}")
                continue
            calls.append(
                ToolCall(name=buf["name"].strip(), arguments=args, id=buf["id"] or f"call_{idx}")
            )
        self._buf.clear()
        return calls
