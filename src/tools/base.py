"""Base protocol for conversation tools."""

from dataclasses import dataclass, field
from typing import Any, Optional, Protocol, runtime_checkable

from src.session.models import IdentityContext
from src.session.tracker import SessionTracker


@dataclass
class ToolResult:
    """Result of a tool invocation, shown to the user as text."""

    content: str
    is_error: bool = False
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class ToolContext:
    """Per-call context: who is calling and which session they own."""

    identity: IdentityContext
    tracker: SessionTracker


@runtime_checkable
class ConversationTool(Protocol):
    """Protocol for tools exposed over the tool-call surface."""

    name: str
    description: str
    required_permission: Optional[str]

    async def run(self, args: dict[str, Any], ctx: ToolContext) -> ToolResult:
        """Execute with already-validated arguments."""
        ...
