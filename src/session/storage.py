"""Keyed storage for session state."""

from typing import Dict, Optional, Protocol

from .models import SessionState


class SessionStorage(Protocol):
    """Durable per-session slot, looked up by session id."""

    async def load(self, session_id: str) -> Optional[SessionState]:
        ...

    async def save(self, state: SessionState) -> None:
        ...

    async def delete(self, session_id: str) -> None:
        ...


class InMemorySessionStorage:
    """Process-local session storage."""

    def __init__(self) -> None:
        self._states: Dict[str, SessionState] = {}

    async def load(self, session_id: str) -> Optional[SessionState]:
        state = self._states.get(session_id)
        return state.model_copy(deep=True) if state else None

    async def save(self, state: SessionState) -> None:
        self._states[state.session_id] = state.model_copy(deep=True)

    async def delete(self, session_id: str) -> None:
        self._states.pop(session_id, None)
