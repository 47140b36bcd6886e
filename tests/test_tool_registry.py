"""Tests for the tool registry."""

from __future__ import annotations

import asyncio
import time
from typing import Annotated

import pytest
from pydantic import Field, ValidationError

from stream_chat.tool_registry import (
    ToolCall,
    ToolRegistry,
    callable_to_tool_schema,
)


def add(a: int, b: int = 2) -> int:
    """Add two numbers."""
    return a + b


async def shout(
    text: Annotated[str, Field(description="Text to shout")],
) -> str:
    return text.upper()


def broken(value: str) -> str:
    raise RuntimeError("backend unavailable")


class TestSchema:
    def test_function_schema_shape(self):
        schema = callable_to_tool_schema(add, "add")

        assert schema["type"] == "function"
        function = schema["function"]
        assert function["name"] == "add"
        assert function["description"] == "Add two numbers."
        params = function["parameters"]
        assert params["type"] == "object"
        assert params["required"] == ["a"]
        assert params["properties"]["a"] == {"type": "integer"}
        assert params["properties"]["b"]["default"] == 2
        assert "title" not in params

    def test_field_description_carried(self):
        schema = callable_to_tool_schema(shout, "shout")
        prop = schema["function"]["parameters"]["properties"]["text"]
        assert prop == {"type": "string", "description": "Text to shout"}

    def test_missing_docstring_gets_default_description(self):
        schema = callable_to_tool_schema(broken, "broken")
        assert schema["function"]["description"] == "Execute broken"


class TestRegistration:
    def test_register_and_lookup(self):
        registry = ToolRegistry()
        registry.register_callable(add)
        registry.register_callable(shout, name="shout_it")

        assert registry.get_tool_names() == ["add", "shout_it"]
        assert registry.has_tool("shout_it")
        assert not registry.has_tool("shout")
        assert len(registry) == 2
        assert [s["function"]["name"] for s in registry.get_schemas()] == ["add", "shout_it"]

    def test_duplicate_name_rejected(self):
        registry = ToolRegistry()
        registry.register_callable(add)
        with pytest.raises(ValueError, match="already registered"):
            registry.register_callable(shout, name="add")

    def test_clear(self):
        registry = ToolRegistry()
        registry.register_callable(add)
        registry.clear()
        assert len(registry) == 0
        assert registry.get_schemas() == []


class TestExecution:
    async def test_sync_tool(self):
        registry = ToolRegistry()
        registry.register_callable(add)
        assert await registry.execute_tool("add", {"a": 1}) == 3

    async def test_async_tool(self):
        registry = ToolRegistry()
        registry.register_callable(shout)
        assert await registry.execute_tool("shout", {"text": "hi"}) == "HI"

    async def test_invalid_arguments_raise(self):
        registry = ToolRegistry()
        registry.register_callable(add)
        with pytest.raises(ValidationError):
            await registry.execute_tool("add", {"a": "many"})

    async def test_unknown_tool_raises(self):
        registry = ToolRegistry()
        with pytest.raises(KeyError):
            await registry.execute_tool("missing", {})

    async def test_timeout(self):
        async def slow() -> str:
            await asyncio.sleep(5)
            return "late"

        registry = ToolRegistry(timeout=0.05)
        registry.register_callable(slow)
        with pytest.raises(asyncio.TimeoutError):
            await registry.execute_tool("slow", {})


class TestExecuteToolCall:
    """Failures become error results instead of exceptions."""

    async def test_success(self):
        registry = ToolRegistry()
        registry.register_callable(add)
        result = await registry.execute_tool_call(ToolCall("add", {"a": 2, "b": 5}, "c1"))
        assert result.ok
        assert result.output == 7
        assert result.for_model() == 7

    async def test_unknown_tool(self):
        result = await ToolRegistry().execute_tool_call(ToolCall("missing", {}, "c1"))
        assert not result.ok
        assert result.error == "Unknown tool: missing"
        assert result.for_model() == {"error": "Unknown tool: missing"}

    async def test_invalid_arguments(self):
        registry = ToolRegistry()
        registry.register_callable(add)
        result = await registry.execute_tool_call(ToolCall("add", {}, "c1"))
        assert result.error.startswith("Invalid arguments:")

    async def test_tool_exception(self):
        registry = ToolRegistry()
        registry.register_callable(broken)
        result = await registry.execute_tool_call(ToolCall("broken", {"value": "x"}, "c1"))
        assert result.error == "Error: backend unavailable"

    async def test_sync_tool_timeout(self):
        def sleepy() -> str:
            time.sleep(0.3)
            return "late"

        registry = ToolRegistry(timeout=0.05)
        registry.register_callable(sleepy)
        result = await registry.execute_tool_call(ToolCall("sleepy", {}, "c1"))
        assert result.error == "Tool timed out after 0.05 seconds"
