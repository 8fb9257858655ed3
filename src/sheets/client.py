"""Google Sheets values API client for the identity table.

This is the only module that speaks HTTP to the row store. It reads
ranges, appends rows and overwrites whole rows; callers compare keys and
decide what to write.
"""

import re
from typing import Any, List, Optional, Sequence
from urllib.parse import quote

import httpx
import structlog

from .auth import GOOGLE_TOKEN_URL, TokenRefresher
from .exceptions import StoreUnavailable
from .models import COLUMN_COUNT, HEADER_TITLES

logger = structlog.get_logger()

SHEETS_BASE_URL = "https://sheets.googleapis.com/v4"
LAST_COLUMN = "F"

_ROW_NUMBER = re.compile(r"![A-Z]+(\d+)")


class SheetsClient:
    """Row-level access to a single sheet of a spreadsheet."""

    def __init__(
        self,
        sheet_id: str,
        access_token: str,
        sheet_name: str = "Sheet1",
        refresh_token: Optional[str] = None,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        timeout: float = 10.0,
        base_url: str = SHEETS_BASE_URL,
        token_url: str = GOOGLE_TOKEN_URL,
        value_input_option: str = "RAW",
        http_client: Optional[httpx.AsyncClient] = None,
        tokens: Optional[TokenRefresher] = None,
    ) -> None:
        self.sheet_id = sheet_id
        self.sheet_name = sheet_name
        self._base_url = base_url.rstrip("/")
        self._value_input_option = value_input_option
        self._http = http_client or httpx.AsyncClient(timeout=timeout)
        self._owns_http = http_client is None
        self._tokens = tokens or TokenRefresher(
            access_token=access_token,
            refresh_token=refresh_token,
            client_id=client_id,
            client_secret=client_secret,
            token_url=token_url,
        )

    @classmethod
    def from_settings(cls, settings: Any) -> "SheetsClient":
        """Build a client from application settings."""
        return cls(
            sheet_id=settings.google_sheet_id,
            access_token=settings.google_access_token_str,
            sheet_name=settings.sheet_name,
            refresh_token=settings.google_refresh_token_str,
            client_id=settings.google_client_id,
            client_secret=settings.google_client_secret_str,
            timeout=settings.store_timeout_seconds,
            base_url=settings.sheets_base_url,
            token_url=settings.token_url,
        )

    async def close(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    async def __aenter__(self) -> "SheetsClient":
        return self

    async def __aexit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        await self.close()

    # --- ranges ---

    def row_range(self, row_index: int) -> str:
        """A1 range covering one full identity row, e.g. ``Sheet1!A5:F5``."""
        return f"{self.sheet_name}!A{row_index}:{LAST_COLUMN}{row_index}"

    @property
    def data_range(self) -> str:
        """Every data row below the header, open-ended so the table can grow."""
        return f"{self.sheet_name}!A2:{LAST_COLUMN}"

    def _values_url(self, range_a1: str, suffix: str = "") -> str:
        return (
            f"{self._base_url}/spreadsheets/{self.sheet_id}/values/"
            f"{quote(range_a1, safe='!:')}{suffix}"
        )

    # --- operations ---

    async def read_range(self, range_a1: str) -> List[List[str]]:
        """Read a range; rows may be shorter than the range is wide."""
        response = await self._request("GET", self._values_url(range_a1), "read_range")
        values = _json(response, "read_range").get("values") or []
        return [[str(cell) for cell in row] for row in values]

    async def read_data_rows(self) -> List[List[str]]:
        return await self.read_range(self.data_range)

    async def append_row(self, values: Sequence[str]) -> Optional[int]:
        """Append one row at the end of the table.

        Returns the 1-based row number the store reports having written,
        or None when the response does not say.
        """
        response = await self._request(
            "POST",
            self._values_url(self.sheet_name, ":append"),
            "append_row",
            params={
                "valueInputOption": self._value_input_option,
                "insertDataOption": "INSERT_ROWS",
            },
            json={"values": [list(values)]},
        )
        updated_range = (
            _json(response, "append_row").get("updates", {}).get("updatedRange", "")
        )
        match = _ROW_NUMBER.search(updated_range)
        return int(match.group(1)) if match else None

    async def update_row(self, row_index: int, values: Sequence[str]) -> None:
        """Overwrite the whole row at ``row_index`` (1-based).

        All columns must be supplied; the store blanks whatever is omitted.
        """
        if row_index < 1:
            raise ValueError(f"Row index must be 1-based, got {row_index}")
        if len(values) != COLUMN_COUNT:
            raise ValueError(
                f"Expected {COLUMN_COUNT} columns for a full row, got {len(values)}"
            )
        await self._request(
            "PUT",
            self._values_url(self.row_range(row_index)),
            "update_row",
            params={"valueInputOption": self._value_input_option},
            json={"values": [list(values)]},
        )

    async def ensure_headers(self) -> bool:
        """Write the column titles into row 1 if it is empty.

        Returns True when headers were written.
        """
        existing = await self.read_range(self.row_range(1))
        if existing and any(cell for cell in existing[0]):
            return False
        await self.update_row(1, HEADER_TITLES)
        logger.info("Sheet headers written", sheet=self.sheet_name)
        return True

    async def _request(
        self,
        method: str,
        url: str,
        operation: str,
        **kwargs: Any,
    ) -> httpx.Response:
        token = await self._tokens.get_token(self._http)
        headers = {"Authorization": f"Bearer {token}"}

        try:
            response = await self._http.request(method, url, headers=headers, **kwargs)
        except httpx.TimeoutException as exc:
            raise StoreUnavailable(
                f"Sheets {operation} timed out", operation=operation
            ) from exc
        except httpx.TransportError as exc:
            raise StoreUnavailable(
                f"Sheets {operation} failed: {exc}", operation=operation
            ) from exc

        if response.is_error:
            logger.warning(
                "Sheets request rejected",
                operation=operation,
                status_code=response.status_code,
            )
            raise StoreUnavailable(
                f"Sheets {operation} failed ({response.status_code}): {response.text}",
                operation=operation,
                status_code=response.status_code,
            )
        return response


def _json(response: httpx.Response, operation: str) -> dict:
    try:
        return response.json()
    except ValueError as exc:
        raise StoreUnavailable(
            f"Sheets {operation} returned invalid JSON", operation=operation
        ) from exc
