"""Find identity rows by normalized (email, contact) key."""

from typing import List, Optional

import structlog

from .client import SheetsClient
from .keys import normalize_email, normalize_phone
from .models import IdentityRow, LocatedRow

logger = structlog.get_logger()

# Data rows start below the header row
FIRST_DATA_ROW = 2


class RowLocator:
    """Scan the identity table for rows matching a query key.

    Stored cells are normalized with the same functions as the query, so a
    contact saved as "+1 555-123-4567" matches a lookup for "5551234567".
    Read failures propagate; an unreachable store is never reported as
    "no match".
    """

    def __init__(self, client: SheetsClient) -> None:
        self._client = client

    async def find_all(self, email: str, contact: str) -> List[LocatedRow]:
        """Every matching row, in sheet order."""
        email_key = normalize_email(email)
        contact_key = normalize_phone(contact)

        rows = await self._client.read_data_rows()
        matches = []
        for offset, values in enumerate(rows):
            row = IdentityRow.from_values(values)
            if row.matches(email_key, contact_key):
                matches.append(LocatedRow(row_index=FIRST_DATA_ROW + offset, row=row))

        logger.debug(
            "Identity lookup",
            email=email_key,
            rows_scanned=len(rows),
            matches=len(matches),
        )
        return matches

    async def find(self, email: str, contact: str) -> Optional[LocatedRow]:
        """The earliest matching row, or None."""
        matches = await self.find_all(email, contact)
        return matches[0] if matches else None
