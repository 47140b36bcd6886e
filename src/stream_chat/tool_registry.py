"""
Tool registry with schema generation, input validation and bounded execution.

Each registered callable gets a pydantic input model derived from its
signature. The model validates arguments coming from the LLM and provides the
JSON schema advertised to the chat-completions API.
"""

import asyncio
import inspect
import logging
from typing import Any, Callable, Dict, List, NamedTuple, Optional, Type, get_type_hints

from pydantic import BaseModel, ValidationError, create_model

logger = logging.getLogger(__name__)


class ToolCall(NamedTuple):
    """A complete tool call requested by the model."""

    name: str
    arguments: Dict[str, Any]
    id: str = ""


class ToolResult:
    """Outcome of a tool call: either ``output`` or an ``error`` message."""

    def __init__(self, call: ToolCall, output: Any = None, error: Optional[str] = None):
        self.call = call
        self.output = output
        self.error = error

    @property
    def ok(self) -> bool:
        return self.error is None

    def for_model(self) -> Any:
        """Payload folded back into the model context."""
        return self.output if self.ok else {"error": self.error}

    def __repr__(self):
        if self.ok:
            return f"ToolResult({self.call.name}, output={self.output!r})"
        return f"ToolResult({self.call.name}, error={self.error!r})"


def _strip_titles(schema: Dict[str, Any]) -> Dict[str, Any]:
    schema.pop("title", None)
    for prop in schema.get("properties", {}).values():
        prop.pop("title", None)
    return schema


def callable_to_input_model(callable_func: Callable, name: str) -> Type[BaseModel]:
    """Build a pydantic model whose fields mirror the callable's parameters."""
    sig = inspect.signature(callable_func)
    type_hints = get_type_hints(callable_func, include_extras=True)

    fields = {}
    for param_name, param in sig.parameters.items():
        if param_name == "self":
            continue
        annotation = type_hints.get(param_name, str)
        default = ... if param.default is inspect.Parameter.empty else param.default
        fields[param_name] = (annotation, default)

    return create_model(f"{name}_input", **fields)


def callable_to_tool_schema(
    callable_func: Callable,
    name: str,
    description: Optional[str] = None,
    input_model: Optional[Type[BaseModel]] = None,
) -> Dict[str, Any]:
    """
    Convert a Python callable to the chat-completions tool schema format.

    Args:
        callable_func: The callable to convert
        name: Tool name
        description: Optional description (defaults to the docstring)
        input_model: Pre-built input model, generated when omitted

    Returns:
        Tool schema dictionary
    """
    if description is None:
        doc = inspect.getdoc(callable_func)
        description = doc.strip() if doc else f"Execute {name}"

    if input_model is None:
        input_model = callable_to_input_model(callable_func, name)

    return {
        "type": "function",
        "function": {
            "name": name,
            "description": description,
            "parameters": _strip_titles(input_model.model_json_schema()),
        },
    }


class ToolRegistry:
    """Registry for managing tools and their schemas."""

    def __init__(self, timeout: Optional[float] = 30.0):
        self.timeout = timeout
        self.tools: Dict[str, Callable] = {}  # name -> callable
        self.input_models: Dict[str, Type[BaseModel]] = {}
        self.schemas: List[Dict[str, Any]] = []

    def register_callable(
        self,
        callable_func: Callable,
        name: Optional[str] = None,
        description: Optional[str] = None,
    ) -> None:
        """
        Register a callable and generate its input model and tool schema.

        Args:
            callable_func: The callable to register
            name: Optional name override (defaults to callable name)
            description: Optional description

        Raises:
            ValueError: If a tool with the same name is already registered
        """
        tool_name = name or callable_func.__name__
        if tool_name in self.tools:
            raise ValueError(f"Tool '{tool_name}' is already registered")

        input_model = callable_to_input_model(callable_func, tool_name)
        schema = callable_to_tool_schema(
            callable_func, tool_name, description, input_model=input_model
        )

        self.tools[tool_name] = callable_func
        self.input_models[tool_name] = input_model
        self.schemas.append(schema)

    def get_schemas(self) -> List[Dict[str, Any]]:
        """Get all tool schemas for the chat-completions API."""
        return self.schemas

    def get_tool_names(self) -> List[str]:
        return list(self.tools.keys())

    def has_tool(self, name: str) -> bool:
        return name in self.tools

    async def execute_tool(self, name: str, args: Dict[str, Any]) -> Any:
        """
        Validate arguments and execute a registered tool by name.

        Sync callables run in a worker thread so that the timeout applies to
        them as well.

        Raises:
            KeyError: If tool is not registered
            pydantic.ValidationError: If the arguments do not match the schema
            asyncio.TimeoutError: If the tool exceeds ``self.timeout``
        """
        if name not in self.tools:
            raise KeyError(f"Tool '{name}' not found in registry")

        callable_func = self.tools[name]
        input_model = self.input_models[name]
        validated = input_model.model_validate(args)
        kwargs = {field: getattr(validated, field) for field in input_model.model_fields}

        if inspect.iscoroutinefunction(callable_func):
            pending = callable_func(**kwargs)
        else:
            pending = asyncio.to_thread(callable_func, **kwargs)
        return await asyncio.wait_for(pending, timeout=self.timeout)

    async def execute_tool_call(self, call: ToolCall) -> ToolResult:
        """Execute a model tool call, converting every failure into an error result."""
        try:
            output = await self.execute_tool(call.name, call.arguments)
        except KeyError:
            logger.info(f"TOOL ERROR: unknown tool {call.name}")
            return ToolResult(call, error=f"Unknown tool: {call.name}")
        except ValidationError as e:
            logger.info(f"TOOL VALIDATION ERROR: {call.name} - {e}")
            return ToolResult(call, error=f"Invalid arguments: {e}")
        except asyncio.TimeoutError:
            logger.warning(f"TOOL TIMEOUT: {call.name} after {self.timeout}s")
            return ToolResult(call, error=f"Tool timed out after {self.timeout} seconds")
        except Exception as e:
            logger.info(f"TOOL ERROR: {call.name} - {str(e)}")
            return ToolResult(call, error=f"Error: {str(e)}")
        return ToolResult(call, output=output)

    def clear(self) -> None:
        """Clear all registered tools."""
        self.tools.clear()
        self.input_models.clear()
        self.schemas.clear()

    def __len__(self) -> int:
        return len(self.tools)
