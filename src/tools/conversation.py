"""Conversation tools: record turns, set the contact, save, inspect."""

import json
from typing import Any, Optional

from src.sheets.keys import normalize_phone
from src.sheets.locator import RowLocator

from .base import ToolContext, ToolResult


class HandleUserMessageTool:
    """Record a user/assistant exchange and optionally save it."""

    name: str = "handle_user_message"
    description: str = "Handle any user message and provide appropriate response"
    required_permission: Optional[str] = None

    async def run(self, args: dict[str, Any], ctx: ToolContext) -> ToolResult:
        tracker = ctx.tracker
        user_message = args["user_message"]

        await tracker.record_turn("user", user_message)
        await tracker.record_turn("assistant", args["assistant_response"])
        await tracker.pick_up_contact(user_message)

        if args.get("save_to_sheet", True):
            flush = await tracker.flush()
        else:
            flush = await tracker.maybe_flush()

        total = len(tracker.state.turns)
        return ToolResult(
            content=f"Conversation recorded: {total} messages total",
            metadata={"flush": flush.outcome.value if flush else None},
        )


class SetContactNumberTool:
    """Set the session's contact number and save."""

    name: str = "set_contact_number"
    description: str = "Set the user's contact number"
    required_permission: Optional[str] = None

    async def run(self, args: dict[str, Any], ctx: ToolContext) -> ToolResult:
        raw = args["contact_number"]
        if not normalize_phone(raw):
            return ToolResult(
                content=f"'{raw}' does not look like a phone number.",
                is_error=True,
            )
        key = await ctx.tracker.set_contact(raw)

        await ctx.tracker.record_turn(
            "assistant", f"Contact number {key} saved successfully."
        )
        await ctx.tracker.flush()
        return ToolResult(content=f"Contact number {key} has been saved.")


class ImportConversationHistoryTool:
    """Replace the session buffer with an earlier conversation and save it."""

    name: str = "import_conversation_history"
    description: str = "Import existing conversation history from a previous session"
    required_permission: Optional[str] = None

    async def run(self, args: dict[str, Any], ctx: ToolContext) -> ToolResult:
        count = await ctx.tracker.import_history(args["messages"])
        await ctx.tracker.flush()
        contact = ctx.tracker.contact or "Not found"
        return ToolResult(content=f"Imported {count} messages. Contact: {contact}")


class SaveConversationTool:
    """Explicit save of everything not yet written."""

    name: str = "save_conversation"
    description: str = "Manually save the current conversation to Google Sheets"
    required_permission: Optional[str] = None

    async def run(self, args: dict[str, Any], ctx: ToolContext) -> ToolResult:
        result = await ctx.tracker.flush()
        content = result.message
        if result.saved_count:
            content += f", Contact: {ctx.tracker.contact}"
        return ToolResult(
            content=content,
            metadata={"outcome": result.outcome.value, "row_index": result.row_index},
        )


class GetSessionStatusTool:
    name: str = "get_session_status"
    description: str = "Get current session status and conversation info"
    required_permission: Optional[str] = None

    async def run(self, args: dict[str, Any], ctx: ToolContext) -> ToolResult:
        return ToolResult(content=json.dumps(ctx.tracker.status(), indent=2))


class FindIdentityRowTool:
    """Look up the sheet row for the current identity."""

    name: str = "find_identity_row"
    description: str = "Show the stored sheet row for the current email and contact number"
    required_permission: Optional[str] = None

    def __init__(self, locator: RowLocator) -> None:
        self._locator = locator

    async def run(self, args: dict[str, Any], ctx: ToolContext) -> ToolResult:
        contact = ctx.tracker.contact
        email = ctx.tracker.state.email
        if not contact:
            return ToolResult(content="Contact number not set; nothing to look up.")

        matches = await self._locator.find_all(email, contact)
        if not matches:
            return ToolResult(content=f"No row stored yet for {email} / {contact}.")

        first = matches[0]
        history = first.row.history
        info = {
            "rowIndex": first.row_index,
            "timestamp": first.row.timestamp,
            "summary": first.row.summary,
            "historyLines": len(history.splitlines()) if history else 0,
            "duplicateRows": [m.row_index for m in matches[1:]],
        }
        return ToolResult(content=json.dumps(info, indent=2))


def default_tools(locator: RowLocator) -> list[Any]:
    """The conversation tool set exposed by the server."""
    return [
        HandleUserMessageTool(),
        SetContactNumberTool(),
        ImportConversationHistoryTool(),
        SaveConversationTool(),
        GetSessionStatusTool(),
        FindIdentityRowTool(locator),
    ]
