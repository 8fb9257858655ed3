"""Tests for SessionTracker flush behaviour."""

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.session.models import FlushOutcome, IdentityContext, SessionState
from src.session.storage import InMemorySessionStorage
from src.session.tracker import WELCOME_MESSAGE, SessionTracker, build_summary
from src.sheets.exceptions import StoreUnavailable
from src.sheets.models import ReconcileOutcome, ReconcileResult
from src.sheets.reconciler import AppendLogReconciler


class StepClock:
    """Returns a new instant, one second later, on every call."""

    def __init__(self) -> None:
        self.current = datetime(2024, 5, 1, 10, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        self.current += timedelta(seconds=1)
        return self.current


IDENTITY = IdentityContext(email="User@Example.com", user_id="user_01")


def _tracker(reconciler, **kwargs) -> SessionTracker:
    state = SessionState(session_id="s1", email="user@example.com", user_id="user_01")
    return SessionTracker(reconciler, state, clock=StepClock(), **kwargs)


def _mock_reconciler(outcome=ReconcileOutcome.CREATED) -> MagicMock:
    reconciler = MagicMock()
    reconciler.reconcile = AsyncMock(
        return_value=ReconcileResult(outcome=outcome, row_index=2, lines_written=1)
    )
    return reconciler


class TestOpen:
    async def test_new_session_starts_with_welcome_turn(self) -> None:
        tracker = await SessionTracker.open(_mock_reconciler(), IDENTITY, session_id="s1")

        assert [t.content for t in tracker.state.turns] == [WELCOME_MESSAGE]
        assert tracker.state.turns[0].role == "assistant"
        assert tracker.state.email == "User@Example.com"
        assert tracker.contact is None

    async def test_resumes_stored_session(self) -> None:
        storage = InMemorySessionStorage()
        first = await SessionTracker.open(
            _mock_reconciler(), IDENTITY, storage=storage, session_id="s1"
        )
        await first.record_turn("user", "hi")
        await first.set_contact("555-123-4567")

        resumed = await SessionTracker.open(
            _mock_reconciler(), IDENTITY, storage=storage, session_id="s1"
        )

        assert len(resumed.state.turns) == 2
        assert resumed.contact == "5551234567"

    async def test_generates_session_id(self) -> None:
        tracker = await SessionTracker.open(_mock_reconciler(), IDENTITY)
        assert len(tracker.session_id) == 32


class TestRecordAndContact:
    async def test_record_turn_does_not_flush(self) -> None:
        reconciler = _mock_reconciler()
        tracker = _tracker(reconciler)

        turn = await tracker.record_turn("user", "hi")

        assert turn.format_line() == f"[{turn.timestamp}] USER: hi"
        reconciler.reconcile.assert_not_called()

    async def test_set_contact_normalizes(self) -> None:
        tracker = _tracker(_mock_reconciler())
        assert await tracker.set_contact("+1 (555) 123-4567") == "5551234567"
        assert tracker.contact == "5551234567"

    async def test_pick_up_contact_from_message(self) -> None:
        tracker = _tracker(_mock_reconciler())
        assert await tracker.pick_up_contact("sure, it's 555 123 4567") == "5551234567"
        assert tracker.contact == "5551234567"

    async def test_pick_up_contact_ignores_plain_text(self) -> None:
        tracker = _tracker(_mock_reconciler())
        assert await tracker.pick_up_contact("hello") is None
        assert tracker.contact is None


class TestFlush:
    async def test_without_contact_is_skipped(self) -> None:
        reconciler = _mock_reconciler()
        tracker = _tracker(reconciler)
        await tracker.record_turn("user", "hi")

        result = await tracker.flush()

        assert result.outcome is FlushOutcome.SKIPPED
        reconciler.reconcile.assert_not_called()
        assert tracker.state.unsaved_count == 1

    async def test_sends_only_new_lines(self) -> None:
        reconciler = _mock_reconciler()
        tracker = _tracker(reconciler)
        await tracker.set_contact("5551234567")
        await tracker.record_turn("user", "hi")
        await tracker.flush()
        await tracker.record_turn("assistant", "hello")

        result = await tracker.flush()

        assert result.outcome is FlushOutcome.SAVED
        assert result.saved_count == 1
        email, contact, lines, meta = reconciler.reconcile.call_args.args
        assert email == "user@example.com"
        assert contact == "5551234567"
        assert len(lines) == 1
        assert lines[0].endswith("ASSISTANT: hello")
        assert meta.summary == build_summary(2, 1)
        assert meta.user_id == "user_01"

    async def test_advances_mark_and_records_save_time(self) -> None:
        tracker = _tracker(_mock_reconciler())
        await tracker.set_contact("5551234567")
        await tracker.record_turn("user", "hi")

        result = await tracker.flush()

        assert result.created is True
        assert result.row_index == 2
        assert tracker.state.last_flushed_index == 1
        assert tracker.state.last_saved_at is not None

    async def test_failure_keeps_lines_queued(self) -> None:
        reconciler = _mock_reconciler()
        reconciler.reconcile.side_effect = StoreUnavailable("down")
        tracker = _tracker(reconciler)
        await tracker.set_contact("5551234567")
        await tracker.record_turn("user", "hi")

        with pytest.raises(StoreUnavailable):
            await tracker.flush()
        assert tracker.state.last_flushed_index == 0

        reconciler.reconcile.side_effect = None
        await tracker.record_turn("user", "again")
        result = await tracker.flush()

        assert result.saved_count == 2
        lines = reconciler.reconcile.call_args.args[2]
        assert [line.split(": ", 1)[1] for line in lines] == ["hi", "again"]

    async def test_noop_leaves_mark_unchanged(self) -> None:
        reconciler = _mock_reconciler(outcome=ReconcileOutcome.NOOP)
        tracker = _tracker(reconciler)
        await tracker.set_contact("5551234567")

        result = await tracker.flush()

        assert result.outcome is FlushOutcome.NOOP
        assert tracker.state.last_flushed_index == 0
        assert tracker.state.last_saved_at is None

    async def test_double_flush_writes_once(self, sheets_client, fake_sheet) -> None:
        tracker = _tracker(AppendLogReconciler(sheets_client))
        await tracker.set_contact("5551234567")
        await tracker.record_turn("user", "hi")

        first = await tracker.flush()
        writes_after_first = len(fake_sheet.writes)
        second = await tracker.flush()

        assert first.outcome is FlushOutcome.SAVED
        assert second.outcome is FlushOutcome.NOOP
        assert writes_after_first == 1
        assert len(fake_sheet.writes) == 1
        assert fake_sheet.data_rows()[0][4].count("USER: hi") == 1


class TestThreshold:
    async def test_maybe_flush_waits_for_threshold(self) -> None:
        reconciler = _mock_reconciler()
        tracker = _tracker(reconciler, every_turns=3)
        await tracker.set_contact("5551234567")
        await tracker.record_turn("user", "1")
        await tracker.record_turn("assistant", "2")

        assert await tracker.maybe_flush() is None
        reconciler.reconcile.assert_not_called()

        await tracker.record_turn("user", "3")
        result = await tracker.maybe_flush()

        assert result is not None
        assert result.saved_count == 3

    async def test_disabled_threshold_never_flushes(self) -> None:
        tracker = _tracker(_mock_reconciler())
        await tracker.record_turn("user", "1")
        assert not tracker.threshold_reached()
        assert await tracker.maybe_flush() is None


class TestImportHistory:
    async def test_replaces_buffer_and_resets_mark(self) -> None:
        tracker = _tracker(_mock_reconciler())
        await tracker.set_contact("5550000000")
        await tracker.record_turn("user", "old")
        await tracker.flush()

        count = await tracker.import_history(
            [
                {"role": "assistant", "content": "What is your number?"},
                {"role": "user", "content": "555-123-4567"},
                {"role": "user", "content": "also 555-999-0000"},
            ]
        )

        assert count == 3
        assert tracker.state.last_flushed_index == 0
        assert [t.content for t in tracker.state.turns][0] == "What is your number?"
        assert tracker.contact == "5551234567"

    async def test_invalid_role_leaves_buffer_intact(self) -> None:
        tracker = _tracker(_mock_reconciler())
        await tracker.record_turn("user", "keep me")

        with pytest.raises(ValueError):
            await tracker.import_history([{"role": "system", "content": "x"}])

        assert [t.content for t in tracker.state.turns] == ["keep me"]

    async def test_import_waits_for_in_flight_flush(self) -> None:
        release = asyncio.Event()
        sent = []

        async def slow_reconcile(email, contact, lines, meta):
            sent.append(list(lines))
            await release.wait()
            return ReconcileResult(
                outcome=ReconcileOutcome.UPDATED, row_index=2, lines_written=len(lines)
            )

        reconciler = MagicMock()
        reconciler.reconcile = AsyncMock(side_effect=slow_reconcile)
        tracker = _tracker(reconciler)
        await tracker.set_contact("5551234567")
        for i in range(5):
            await tracker.record_turn("user", f"old{i}")

        flushing = asyncio.create_task(tracker.flush())
        await asyncio.sleep(0)
        importing = asyncio.create_task(
            tracker.import_history(
                [
                    {"role": "user", "content": "new0"},
                    {"role": "assistant", "content": "new1"},
                ]
            )
        )
        await asyncio.sleep(0)
        release.set()
        await flushing
        await importing

        assert tracker.state.last_flushed_index == 0
        assert tracker.state.unsaved_count == 2

        await tracker.flush()
        assert [line.rsplit(": ", 1)[1] for line in sent[1]] == ["new0", "new1"]
        assert tracker.state.unsaved_count == 0


class TestStatusAndClose:
    async def test_status_reports_counts(self) -> None:
        tracker = _tracker(_mock_reconciler())
        await tracker.record_turn("user", "hi")

        status = tracker.status()

        assert status["totalMessages"] == 1
        assert status["unsavedMessages"] == 1
        assert status["contactNumber"] == "Not set"
        assert status["userEmail"] == "user@example.com"
        assert status["lastSaved"] is None

    async def test_close_flushes(self) -> None:
        reconciler = _mock_reconciler()
        tracker = _tracker(reconciler)
        await tracker.set_contact("5551234567")
        await tracker.record_turn("user", "bye")

        result = await tracker.close()

        assert result.outcome is FlushOutcome.SAVED
        reconciler.reconcile.assert_awaited_once()
