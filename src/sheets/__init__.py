"""Spreadsheet-backed identity store: one row per (email, contact)."""

from .client import SheetsClient
from .exceptions import (
    AmbiguousIdentity,
    AuthRefreshFailed,
    SheetStoreError,
    StoreUnavailable,
)
from .keys import normalize_email, normalize_phone
from .locator import RowLocator
from .models import IdentityRow, ReconcileOutcome, ReconcileResult, RowMeta
from .reconciler import AppendLogReconciler

__all__ = [
    "AmbiguousIdentity",
    "AppendLogReconciler",
    "AuthRefreshFailed",
    "IdentityRow",
    "ReconcileOutcome",
    "ReconcileResult",
    "RowLocator",
    "RowMeta",
    "SheetStoreError",
    "SheetsClient",
    "StoreUnavailable",
    "normalize_email",
    "normalize_phone",
]
