"""Append-log reconciler: upsert chat lines into one row per identity.

The row store has no transactions, unique index or locking. Every call
re-runs the full lookup and then issues exactly one write, and calls for
the same identity within this process are serialized. Two processes
racing on a brand-new identity can still both append; the locator then
keeps returning the earliest row.
"""

import asyncio
from typing import Dict, Optional, Sequence, Tuple

import structlog

from .client import SheetsClient
from .exceptions import AmbiguousIdentity
from .keys import normalize_email, normalize_phone
from .locator import RowLocator
from .models import IdentityRow, ReconcileOutcome, ReconcileResult, RowMeta

logger = structlog.get_logger()


def merge_history(history: str, new_lines: Sequence[str]) -> str:
    """Append lines to a newline-delimited history blob."""
    joined = "\n".join(new_lines)
    if not history:
        return joined
    return f"{history}\n{joined}"


class AppendLogReconciler:
    """Find-or-create the identity row and append new lines to its history."""

    def __init__(
        self,
        client: SheetsClient,
        locator: Optional[RowLocator] = None,
        strict_identity: bool = False,
    ) -> None:
        self._client = client
        self._locator = locator or RowLocator(client)
        self._strict = strict_identity
        # Dropped once no call holds or waits on them
        self._locks: Dict[Tuple[str, str], asyncio.Lock] = {}
        self._lock_users: Dict[Tuple[str, str], int] = {}

    async def reconcile(
        self,
        email: str,
        contact: str,
        new_lines: Sequence[str],
        meta: RowMeta,
    ) -> ReconcileResult:
        """Merge ``new_lines`` into the row for (email, contact).

        Returns NOOP without touching the store when there is nothing new.
        Store errors propagate unchanged; there are no retries here.
        """
        if not new_lines:
            return ReconcileResult(outcome=ReconcileOutcome.NOOP)

        email_key = normalize_email(email)
        contact_key = normalize_phone(contact)
        key = (email_key, contact_key)

        lock = self._locks.setdefault(key, asyncio.Lock())
        self._lock_users[key] = self._lock_users.get(key, 0) + 1
        try:
            async with lock:
                return await self._write(email_key, contact_key, new_lines, meta)
        finally:
            self._lock_users[key] -= 1
            if not self._lock_users[key]:
                del self._lock_users[key]
                del self._locks[key]

    async def _write(
        self,
        email_key: str,
        contact_key: str,
        new_lines: Sequence[str],
        meta: RowMeta,
    ) -> ReconcileResult:
        matches = await self._locator.find_all(email_key, contact_key)

        if len(matches) > 1:
            indices = [m.row_index for m in matches]
            if self._strict:
                raise AmbiguousIdentity(email_key, indices)
            logger.warning(
                "Duplicate identity rows, writing to earliest",
                email=email_key,
                row_indices=indices,
            )

        if matches:
            located = matches[0]
            row = IdentityRow(
                timestamp=meta.timestamp,
                email=email_key,
                contact=contact_key,
                summary=meta.summary,
                history=merge_history(located.row.history, new_lines),
                user_id=meta.user_id,
            )
            await self._client.update_row(located.row_index, row.to_values())
            logger.info(
                "Identity row updated",
                email=email_key,
                row_index=located.row_index,
                new_lines=len(new_lines),
            )
            return ReconcileResult(
                outcome=ReconcileOutcome.UPDATED,
                row_index=located.row_index,
                lines_written=len(new_lines),
            )

        row = IdentityRow(
            timestamp=meta.timestamp,
            email=email_key,
            contact=contact_key,
            summary=meta.summary,
            history=merge_history("", new_lines),
            user_id=meta.user_id,
        )
        row_index = await self._client.append_row(row.to_values())
        logger.info(
            "Identity row created",
            email=email_key,
            row_index=row_index,
            new_lines=len(new_lines),
        )
        return ReconcileResult(
            outcome=ReconcileOutcome.CREATED,
            row_index=row_index,
            lines_written=len(new_lines),
        )
