"""MCP endpoint: wires the sheet store, session tracking and tools together."""

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional

import structlog
from fastmcp import Context, FastMCP
from fastmcp.exceptions import ToolError
from pydantic import BaseModel

from src.config.settings import Settings
from src.session.autosave import AutoSaveService
from src.session.models import IdentityContext, Role
from src.session.storage import InMemorySessionStorage, SessionStorage
from src.session.tracker import SessionTracker
from src.sheets.client import SheetsClient
from src.sheets.exceptions import SheetStoreError
from src.sheets.locator import RowLocator
from src.sheets.reconciler import AppendLogReconciler
from src.tools.base import ToolContext, ToolResult
from src.tools.conversation import default_tools
from src.tools.dispatcher import ToolDispatcher
from src.tools.registry import ToolRegistry

logger = structlog.get_logger()

SERVER_NAME = "MCP CRM Chat Assistant"
DEFAULT_SESSION = "default"


class ChatMessage(BaseModel):
    role: Role
    content: str


class AssistantApp:
    """Owns the store client, the open sessions and the tool dispatcher."""

    def __init__(
        self,
        settings: Settings,
        client: Optional[SheetsClient] = None,
        storage: Optional[SessionStorage] = None,
    ) -> None:
        self.settings = settings
        self.client = client or SheetsClient.from_settings(settings)
        self.locator = RowLocator(self.client)
        self.reconciler = AppendLogReconciler(
            self.client, self.locator, strict_identity=settings.strict_identity
        )
        self.storage = storage or InMemorySessionStorage()

        self.registry = ToolRegistry()
        for tool in default_tools(self.locator):
            self.registry.register(tool)
        self.dispatcher = ToolDispatcher(self.registry)

        self.autosave: Optional[AutoSaveService] = None
        if settings.autosave_interval_seconds > 0:
            self.autosave = AutoSaveService(settings.autosave_interval_seconds)

        self._trackers: Dict[str, SessionTracker] = {}

    def default_identity(self) -> IdentityContext:
        return IdentityContext(
            email=self.settings.mcp_user_email,
            user_id=self.settings.mcp_user_id,
            permissions=self.settings.mcp_permission_list,
        )

    async def startup(self) -> None:
        """Make sure the sheet has its header row. Failure is not fatal."""
        try:
            await self.client.ensure_headers()
        except SheetStoreError as exc:
            logger.warning("Could not initialize sheet headers", error=str(exc))

    async def session(
        self, identity: IdentityContext, session_id: str = DEFAULT_SESSION
    ) -> SessionTracker:
        """Get the tracker for a session, opening it on first use."""
        tracker = self._trackers.get(session_id)
        if tracker is None:
            tracker = await SessionTracker.open(
                self.reconciler,
                identity,
                storage=self.storage,
                session_id=session_id,
                every_turns=self.settings.autosave_every_turns,
            )
            self._trackers[session_id] = tracker
            if self.autosave:
                await self.autosave.start(tracker)
        return tracker

    async def call(
        self,
        tool_name: str,
        args: dict[str, Any],
        identity: Optional[IdentityContext] = None,
        session_id: str = DEFAULT_SESSION,
    ) -> ToolResult:
        identity = identity or self.default_identity()
        tracker = await self.session(identity, session_id)
        return await self.dispatcher.dispatch(
            tool_name, args, ToolContext(identity=identity, tracker=tracker)
        )

    async def end_session(self, session_id: str) -> None:
        """Final flush for a session; errors are logged, not raised."""
        if self.autosave:
            await self.autosave.stop(session_id)
        tracker = self._trackers.pop(session_id, None)
        if tracker is None:
            return
        try:
            await tracker.close()
        except SheetStoreError as exc:
            logger.warning(
                "End-of-session flush failed",
                session_id=session_id,
                unsaved=tracker.state.unsaved_count,
                error=str(exc),
            )

    async def shutdown(self) -> None:
        for session_id in list(self._trackers.keys()):
            await self.end_session(session_id)
        await self.client.close()


def _unwrap(result: ToolResult) -> str:
    if result.is_error:
        raise ToolError(result.content)
    return result.content


def session_key(ctx: Optional[Context]) -> str:
    """Tracker key for the MCP connection a tool call arrived on.

    Each streamable-http or SSE client gets its own buffer; transports
    that carry no session id (stdio) share the single default session.
    """
    if ctx is None:
        return DEFAULT_SESSION
    return ctx.session_id or DEFAULT_SESSION


def create_server(app: AssistantApp) -> FastMCP:
    """Build the MCP server exposing the conversation tools."""

    @asynccontextmanager
    async def lifespan(server: FastMCP) -> AsyncIterator[None]:
        await app.startup()
        try:
            yield
        finally:
            await app.shutdown()

    mcp = FastMCP(SERVER_NAME, lifespan=lifespan)

    @mcp.tool()
    async def handle_user_message(
        user_message: str,
        assistant_response: str,
        save_to_sheet: bool = True,
        ctx: Context = None,
    ) -> str:
        """Handle any user message and provide appropriate response."""
        return _unwrap(
            await app.call(
                "handle_user_message",
                {
                    "user_message": user_message,
                    "assistant_response": assistant_response,
                    "save_to_sheet": save_to_sheet,
                },
                session_id=session_key(ctx),
            )
        )

    @mcp.tool()
    async def set_contact_number(contact_number: str, ctx: Context = None) -> str:
        """Set the user's contact number."""
        return _unwrap(
            await app.call(
                "set_contact_number",
                {"contact_number": contact_number},
                session_id=session_key(ctx),
            )
        )

    @mcp.tool()
    async def import_conversation_history(
        messages: List[ChatMessage], ctx: Context = None
    ) -> str:
        """Import existing conversation history from a previous session."""
        return _unwrap(
            await app.call(
                "import_conversation_history",
                {"messages": [m.model_dump() for m in messages]},
                session_id=session_key(ctx),
            )
        )

    @mcp.tool()
    async def save_conversation(ctx: Context = None) -> str:
        """Manually save the current conversation to Google Sheets."""
        return _unwrap(
            await app.call("save_conversation", {}, session_id=session_key(ctx))
        )

    @mcp.tool()
    async def get_session_status(ctx: Context = None) -> str:
        """Get current session status and conversation info."""
        return _unwrap(
            await app.call("get_session_status", {}, session_id=session_key(ctx))
        )

    @mcp.tool()
    async def find_identity_row(ctx: Context = None) -> str:
        """Show the stored sheet row for the current email and contact number."""
        return _unwrap(
            await app.call("find_identity_row", {}, session_id=session_key(ctx))
        )

    return mcp
