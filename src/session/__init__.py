"""Conversation session tracking and flush policy."""

from .autosave import AutoSaveService
from .models import (
    ConversationTurn,
    FlushOutcome,
    FlushResult,
    IdentityContext,
    SessionState,
)
from .storage import InMemorySessionStorage, SessionStorage
from .tracker import SessionTracker

__all__ = [
    "AutoSaveService",
    "ConversationTurn",
    "FlushOutcome",
    "FlushResult",
    "IdentityContext",
    "InMemorySessionStorage",
    "SessionState",
    "SessionStorage",
    "SessionTracker",
]
