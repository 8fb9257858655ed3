"""Session state models."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

Role = Literal["user", "assistant"]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class IdentityContext:
    """Authenticated caller identity supplied by the host."""

    email: str
    user_id: str = ""
    permissions: List[str] = field(default_factory=list)


class ConversationTurn(BaseModel):
    """One message in the conversation buffer."""

    role: Role
    content: str
    timestamp: str

    def format_line(self) -> str:
        """Render as a history line: ``[timestamp] ROLE: content``."""
        return f"[{self.timestamp}] {self.role.upper()}: {self.content}"


class SessionState(BaseModel):
    """Everything a session needs to resume after a reconnect."""

    session_id: str
    email: str
    user_id: str = ""
    contact: Optional[str] = None
    turns: List[ConversationTurn] = Field(default_factory=list)
    last_flushed_index: int = 0
    session_start: str = Field(default_factory=lambda: utc_now().isoformat())
    last_saved_at: Optional[str] = None

    @property
    def unsaved_count(self) -> int:
        return len(self.turns) - self.last_flushed_index


class FlushOutcome(str, Enum):
    SAVED = "saved"
    NOOP = "noop"
    SKIPPED = "skipped"  # no contact number yet


@dataclass
class FlushResult:
    """Result of a single flush attempt."""

    outcome: FlushOutcome
    saved_count: int = 0
    total_count: int = 0
    row_index: Optional[int] = None
    created: bool = False

    @property
    def message(self) -> str:
        if self.outcome is FlushOutcome.SKIPPED:
            return "Contact number not set yet; conversation kept in memory."
        if self.outcome is FlushOutcome.NOOP:
            return "No new messages to save."
        return (
            f"Successfully appended {self.saved_count} new messages to Google Sheets! "
            f"Total: {self.total_count} messages"
        )
