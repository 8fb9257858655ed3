"""Tool discovery and lookup."""

from typing import Optional

import structlog

from .base import ConversationTool

logger = structlog.get_logger()


class ToolRegistry:
    """Registry of conversation tools, keyed by name."""

    def __init__(self) -> None:
        self._tools: dict[str, ConversationTool] = {}

    def register(self, tool: ConversationTool) -> None:
        """Register a tool. Re-registering a name replaces the old tool."""
        if tool.name in self._tools:
            logger.warning("Tool replaced", name=tool.name)
        self._tools[tool.name] = tool
        logger.info("Tool registered", name=tool.name)

    def get(self, name: str) -> Optional[ConversationTool]:
        return self._tools.get(name)

    def list_tools(self, permissions: Optional[list[str]] = None) -> list[ConversationTool]:
        """List tools, optionally only those the given permissions unlock."""
        tools = list(self._tools.values())
        if permissions is None:
            return tools
        return [
            t for t in tools
            if not t.required_permission or t.required_permission in permissions
        ]
