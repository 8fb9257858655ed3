"""Tool-call surface over the session tracker."""

from .base import ConversationTool, ToolContext, ToolResult
from .dispatcher import ToolDispatcher
from .registry import ToolRegistry

__all__ = [
    "ConversationTool",
    "ToolContext",
    "ToolDispatcher",
    "ToolRegistry",
    "ToolResult",
]
