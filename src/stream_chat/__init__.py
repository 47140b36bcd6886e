"""
Stream Chat - a browser chat that streams responses from an OpenAI-compatible
gateway.

This package provides the streaming ``/api/chat`` endpoint with step-bounded
tool calls, the client-side conversation controller with its input box and
copy-code action, and the markdown rendering pipeline used by the chat page.
"""

__version__ = "0.1.0"

from .agent import Agent
from .chat_input import ChatInput
from .client import ChatBusyError, ChatController
from .clipboard import CodeCopier, CopyState
from .messages import GenerationStatus, Message
from .render import RenderBoundary, render_conversation, render_message
from .tool_registry import ToolRegistry, callable_to_tool_schema

__all__ = [
    "Agent",
    "ChatBusyError",
    "ChatController",
    "ChatInput",
    "CodeCopier",
    "CopyState",
    "GenerationStatus",
    "Message",
    "RenderBoundary",
    "ToolRegistry",
    "callable_to_tool_schema",
    "render_conversation",
    "render_message",
]
