"""Pydantic models for identity rows and reconcile outcomes."""

from dataclasses import dataclass
from enum import Enum
from typing import Any, List, Optional, Sequence

from pydantic import BaseModel

from .keys import normalize_email, normalize_phone

COLUMN_COUNT = 6

HEADER_TITLES = [
    "Timestamp",
    "User Email",
    "Contact Number",
    "Summary",
    "Chat History",
    "User ID",
]


class IdentityRow(BaseModel):
    """One identity record: a fixed six-column spreadsheet row."""

    timestamp: str = ""
    email: str = ""
    contact: str = ""
    summary: str = ""
    history: str = ""
    user_id: str = ""

    @classmethod
    def from_values(cls, values: Sequence[Any]) -> "IdentityRow":
        """Create from a raw row as returned by the store.

        Rows come back trimmed of trailing empty cells, so missing columns
        default to an empty string here and nowhere else.
        """
        cells = [str(v) if v is not None else "" for v in list(values)[:COLUMN_COUNT]]
        cells += [""] * (COLUMN_COUNT - len(cells))
        return cls(
            timestamp=cells[0],
            email=cells[1],
            contact=cells[2],
            summary=cells[3],
            history=cells[4],
            user_id=cells[5],
        )

    def to_values(self) -> List[str]:
        """Serialize to the column order the sheet uses."""
        return [
            self.timestamp,
            self.email,
            self.contact,
            self.summary,
            self.history,
            self.user_id,
        ]

    @property
    def email_key(self) -> str:
        return normalize_email(self.email)

    @property
    def contact_key(self) -> str:
        return normalize_phone(self.contact)

    def matches(self, email_key: str, contact_key: str) -> bool:
        """Exact match on both normalized identity columns."""
        return self.email_key == email_key and self.contact_key == contact_key


@dataclass
class LocatedRow:
    """A row found by the locator, with its 1-based sheet row number."""

    row_index: int
    row: IdentityRow


@dataclass
class RowMeta:
    """Per-write metadata carried into the identity row."""

    timestamp: str
    summary: str
    user_id: str = ""


class ReconcileOutcome(str, Enum):
    UPDATED = "updated"
    CREATED = "created"
    NOOP = "noop"


@dataclass
class ReconcileResult:
    """What a reconcile call did to the store."""

    outcome: ReconcileOutcome
    row_index: Optional[int] = None
    lines_written: int = 0

    @property
    def wrote(self) -> bool:
        return self.outcome is not ReconcileOutcome.NOOP
