"""Tool dispatcher -- routes tool calls and turns failures into results."""

from typing import Any

import structlog

from src.sheets.exceptions import SheetStoreError

from .base import ToolContext, ToolResult
from .registry import ToolRegistry

logger = structlog.get_logger()


class ToolDispatcher:
    """Run a named tool against a session context."""

    def __init__(self, registry: ToolRegistry) -> None:
        self._registry = registry

    async def dispatch(
        self,
        tool_name: str,
        args: dict[str, Any],
        ctx: ToolContext,
    ) -> ToolResult:
        """Execute ``tool_name``; never raises for tool-level failures.

        Store errors come back as a failed result with user-visible text.
        """
        tool = self._registry.get(tool_name)
        if not tool:
            return ToolResult(content=f"Unknown tool: {tool_name}", is_error=True)

        permission = tool.required_permission
        if permission and permission not in ctx.identity.permissions:
            logger.warning(
                "Tool call denied",
                tool=tool_name,
                email=ctx.identity.email,
                permission=permission,
            )
            return ToolResult(
                content=f"Permission '{permission}' required for {tool_name}",
                is_error=True,
            )

        try:
            result = await tool.run(args, ctx)
        except SheetStoreError as exc:
            logger.error(
                "Tool store error",
                tool=tool_name,
                error_type=type(exc).__name__,
                error=str(exc),
            )
            return ToolResult(
                content=f"Error saving conversation: {exc}",
                is_error=True,
                metadata={"error_type": type(exc).__name__},
            )
        except Exception as exc:
            logger.error("Tool handler failed", tool=tool_name, error=str(exc))
            return ToolResult(
                content=f"Error running {tool_name}: {exc}",
                is_error=True,
                metadata={"error_type": type(exc).__name__},
            )

        logger.info("Tool handled", tool=tool_name, is_error=result.is_error)
        return result
