"""Row store exceptions."""

from typing import Optional, Sequence


class SheetStoreError(Exception):
    """Base error for the spreadsheet-backed row store."""


class StoreUnavailable(SheetStoreError):
    """The row store could not be reached or answered with a non-2xx status."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        status_code: Optional[int] = None,
    ) -> None:
        self.operation = operation
        self.status_code = status_code
        super().__init__(message)


class AuthRefreshFailed(SheetStoreError):
    """Exchanging the refresh token for a new access token failed."""


class AmbiguousIdentity(SheetStoreError):
    """More than one row matches a single (email, contact) identity."""

    def __init__(self, email: str, row_indices: Sequence[int]) -> None:
        self.email = email
        self.row_indices = list(row_indices)
        super().__init__(
            f"Identity {email} matches {len(self.row_indices)} rows: "
            f"{', '.join(str(i) for i in self.row_indices)}"
        )
