"""SessionTracker -- buffers conversation turns and decides what to flush.

A tracker owns one session's turn buffer and its high-water mark (the
index of the first turn not yet written to the sheet). Every save
trigger, whether an explicit tool call, the every-N-turns threshold, the
interval loop or session end, ends up in ``flush()``, which only ever
sends the turns past the high-water mark.
"""

import asyncio
import uuid
from datetime import datetime
from typing import Any, Callable, Iterable, Mapping, Optional

import structlog

from src.sheets.keys import extract_contact_number, looks_like_contact, normalize_phone
from src.sheets.models import ReconcileOutcome, RowMeta
from src.sheets.reconciler import AppendLogReconciler

from .models import (
    ConversationTurn,
    FlushOutcome,
    FlushResult,
    IdentityContext,
    Role,
    SessionState,
    utc_now,
)
from .storage import SessionStorage

logger = structlog.get_logger()

WELCOME_MESSAGE = "Welcome! Please provide your contact number to get started."


def build_summary(total: int, new: int) -> str:
    return f"Session: {total} messages total, Latest: {new} new messages"


class SessionTracker:
    """Per-session conversation buffer with incremental flushes."""

    def __init__(
        self,
        reconciler: AppendLogReconciler,
        state: SessionState,
        storage: Optional[SessionStorage] = None,
        every_turns: int = 0,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._reconciler = reconciler
        self._state = state
        self._storage = storage
        self._every_turns = every_turns
        self._clock = clock
        self._flush_lock = asyncio.Lock()

    @classmethod
    async def open(
        cls,
        reconciler: AppendLogReconciler,
        identity: IdentityContext,
        storage: Optional[SessionStorage] = None,
        session_id: Optional[str] = None,
        every_turns: int = 0,
        clock: Callable[[], datetime] = utc_now,
    ) -> "SessionTracker":
        """Resume a stored session or start a new one with a welcome turn."""
        session_id = session_id or uuid.uuid4().hex
        state = await storage.load(session_id) if storage else None
        if state is not None:
            logger.info(
                "Session resumed",
                session_id=session_id,
                turns=len(state.turns),
                unsaved=state.unsaved_count,
            )
            return cls(reconciler, state, storage, every_turns, clock)

        state = SessionState(
            session_id=session_id,
            email=identity.email,
            user_id=identity.user_id,
            session_start=clock().isoformat(),
        )
        tracker = cls(reconciler, state, storage, every_turns, clock)
        await tracker.record_turn("assistant", WELCOME_MESSAGE)
        logger.info("Session started", session_id=session_id, email=identity.email)
        return tracker

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def session_id(self) -> str:
        return self._state.session_id

    @property
    def contact(self) -> Optional[str]:
        return self._state.contact

    async def record_turn(self, role: Role, content: str) -> ConversationTurn:
        """Append a turn to the buffer. Never writes to the sheet."""
        turn = ConversationTurn(
            role=role, content=content, timestamp=self._clock().isoformat()
        )
        self._state.turns.append(turn)
        await self._persist()
        return turn

    async def set_contact(self, raw: str) -> str:
        """Store the normalized contact key for this session."""
        key = normalize_phone(raw)
        self._state.contact = key or None
        await self._persist()
        return key

    async def pick_up_contact(self, text: str) -> Optional[str]:
        """Set the contact from a free-text message if it carries a number."""
        if not looks_like_contact(text):
            return None
        number = extract_contact_number(text)
        if number:
            await self.set_contact(number)
        return number

    async def import_history(self, messages: Iterable[Mapping[str, Any]]) -> int:
        """Replace the buffer with previously recorded messages.

        The high-water mark is reset, so the next flush sends all of them.
        The contact comes from the first user message that carries one.
        Waits for any in-flight flush, which would otherwise move the mark
        past the imported turns.
        """
        turns = [
            ConversationTurn(
                role=msg["role"],
                content=msg["content"],
                timestamp=self._clock().isoformat(),
            )
            for msg in messages
        ]
        async with self._flush_lock:
            self._state.turns = turns
            self._state.last_flushed_index = 0
            await self._persist()

        for turn in turns:
            if turn.role == "user" and await self.pick_up_contact(turn.content):
                break
        return len(turns)

    async def flush(self) -> FlushResult:
        """Send turns past the high-water mark to the reconciler.

        The mark only moves after a successful write, so a failed flush
        leaves the same lines queued for the next one. Store errors
        propagate to the caller.
        """
        async with self._flush_lock:
            state = self._state
            total = len(state.turns)

            if not state.contact:
                logger.debug(
                    "Flush skipped, no contact", session_id=state.session_id
                )
                return FlushResult(outcome=FlushOutcome.SKIPPED, total_count=total)

            pending = state.turns[state.last_flushed_index:total]
            now = self._clock().isoformat()
            result = await self._reconciler.reconcile(
                state.email,
                state.contact,
                [turn.format_line() for turn in pending],
                RowMeta(
                    timestamp=now,
                    summary=build_summary(total, len(pending)),
                    user_id=state.user_id,
                ),
            )

            if result.outcome is ReconcileOutcome.NOOP:
                return FlushResult(outcome=FlushOutcome.NOOP, total_count=total)

            state.last_flushed_index = total
            state.last_saved_at = now
            await self._persist()
            logger.info(
                "Session flushed",
                session_id=state.session_id,
                saved=len(pending),
                outcome=result.outcome.value,
            )
            return FlushResult(
                outcome=FlushOutcome.SAVED,
                saved_count=len(pending),
                total_count=total,
                row_index=result.row_index,
                created=result.outcome is ReconcileOutcome.CREATED,
            )

    def threshold_reached(self) -> bool:
        """True once ``every_turns`` unsaved turns have piled up."""
        return self._every_turns > 0 and self._state.unsaved_count >= self._every_turns

    async def maybe_flush(self) -> Optional[FlushResult]:
        """Flush only if the every-N-turns threshold has been reached."""
        if not self.threshold_reached():
            return None
        return await self.flush()

    async def close(self) -> FlushResult:
        """End-of-session flush."""
        result = await self.flush()
        logger.info(
            "Session closed",
            session_id=self.session_id,
            unsaved=self._state.unsaved_count,
        )
        return result

    def status(self) -> dict[str, Any]:
        state = self._state
        return {
            "sessionId": state.session_id,
            "sessionStart": state.session_start,
            "totalMessages": len(state.turns),
            "unsavedMessages": state.unsaved_count,
            "contactNumber": state.contact or "Not set",
            "userEmail": state.email,
            "lastSaved": state.last_saved_at,
        }

    async def _persist(self) -> None:
        if self._storage:
            await self._storage.save(self._state)
